"""Tooling for phonon cards: EVM redemption, configuration, telemetry, provisioning helpers and a web backend."""

__version__ = "0.1.0"