"""Loading and saving the phonon client configuration file."""

from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import yaml

from phononkit.telemetry import TelemetryHandler

logger = logging.getLogger(__name__)

CONFIG_NAME = "phonon"
CONFIG_FILE = "phonon.yml"
ENV_PREFIX = "PHONON_"
_CANDIDATE_NAMES = (CONFIG_NAME + ".yaml", CONFIG_NAME + ".yml", CONFIG_NAME)
_ENV_VAR = re.compile(r"\$\{(\w+)\}|\$(\w+)")


class ConfigError(Exception):
    """Raised when a configuration file cannot be read, parsed or written."""


@dataclass
class Config:
    """Client configuration."""

    certificate: str = ""
    telemetry_key: str = ""


def default_config() -> Config:
    """Return the configuration used when no file is present."""
    return Config(certificate="alpha")


def _current_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform in ("win32", "cygwin"):
        return "windows"
    return sys.platform


def _expand_env(text: str) -> str:
    return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), text)


def config_search_paths(platform: Optional[str] = None) -> List[str]:
    """Return the directories searched for the configuration file, in order."""
    platform = platform or _current_platform()
    if platform in ("linux", "darwin"):
        templates = [
            "$HOME/.phonon/",
            "$XDG_CONFIG_HOME/.phonon/phonon.yml",
            "/usr/var/phonon/phonon.yml",
        ]
    elif platform == "windows":
        templates = ["$HOME\\.phonon\\"]
    else:
        raise ConfigError(f"unknown os: {platform} encountered")
    return [_expand_env(template) for template in templates]


def default_config_path(platform: Optional[str] = None) -> str:
    """Return the directory the configuration file is saved to."""
    platform = platform or _current_platform()
    home = os.path.expanduser("~")
    if platform in ("linux", "darwin"):
        return home + "/.phonon/"
    if platform == "windows":
        return home + "\\.phonon\\"
    raise ConfigError(f"unable to set configuration path for {platform}")


def _find_config_file(directories: List[str]) -> Optional[Path]:
    for directory in directories:
        for name in _CANDIDATE_NAMES:
            candidate = Path(directory) / name
            if candidate.is_file():
                return candidate
    return None


def _as_text(value) -> str:
    return "" if value is None else str(value)


def _install_telemetry(key: str) -> None:
    root = logging.getLogger()
    if any(isinstance(h, TelemetryHandler) and h.api_key == key for h in root.handlers):
        return
    logger.debug("setting up logging hook")
    root.addHandler(TelemetryHandler(key))


def load_config(path: Union[str, os.PathLike, None] = None) -> Config:
    """Load the configuration from ``path`` or from the search directories.

    When no path is given and no file is found, the default configuration is
    returned. Environment variables PHONON_CERTIFICATE and PHONON_TELEMETRYKEY
    override values read from a file. A telemetry key installs a
    TelemetryHandler on the root logger.
    """
    if path is None:
        found = _find_config_file(config_search_paths())
        if found is None:
            logger.debug("config file not found, using default config")
            return default_config()
        path = found
    try:
        text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("unable to read configuration file: %s", exc)
        raise ConfigError(f"unable to read configuration file {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"configuration file {path} does not hold a mapping")
    settings = {str(key).lower(): value for key, value in data.items()}
    for key in ("certificate", "telemetrykey"):
        override = os.environ.get(ENV_PREFIX + key.upper())
        if override is not None:
            settings[key] = override
    config = Config(
        certificate=_as_text(settings.get("certificate")),
        telemetry_key=_as_text(settings.get("telemetrykey")),
    )
    if config.telemetry_key:
        _install_telemetry(config.telemetry_key)
    return config


def save_config(config: Config, path: Union[str, os.PathLike, None] = None) -> Path:
    """Write ``config`` as YAML, by default to the platform's config directory."""
    target = Path(path) if path is not None else Path(default_config_path()) / CONFIG_FILE
    try:
        target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        target.write_text(
            yaml.safe_dump({"certificate": config.certificate, "telemetrykey": config.telemetry_key}),
            encoding="utf-8",
        )
    except OSError as exc:
        raise ConfigError(f"unable to write configuration file {target}: {exc}") from exc
    return target