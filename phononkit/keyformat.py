"""Generating certificate-authority keypairs and printing them as source byte lists."""

from __future__ import annotations

import argparse
from typing import List, Optional, Sequence, Tuple

from phononkit.ethcrypto import generate_private_key, public_key_from_private

_ITEMS_PER_LINE = 8
_UNCOMPRESSED_PREFIX = 0x04


def _format_bytes(key: bytes, mark_high_bytes: bool) -> str:
    parts: List[str] = []
    width = 0
    for position, value in enumerate(bytes(key)):
        if width and width % _ITEMS_PER_LINE == 0:
            parts.append("\n")
            width = 0
        if mark_high_bytes and value >= 0x80:
            parts.append("(byte) ")
        parts.append(f"0x{value:02X}, ")
        width += 1
        # The uncompressed point prefix stands on a line of its own.
        if position == 0 and value == _UNCOMPRESSED_PREFIX:
            parts.append("\n")
            width = 0
    return "".join(parts)


def format_go_bytes(key: bytes) -> str:
    """Format ``key`` as a comma separated hex byte list, eight bytes per line."""
    return _format_bytes(key, mark_high_bytes=False)


def format_javacard_bytes(key: bytes) -> str:
    """Like format_go_bytes, with a "(byte) " cast before every value of 0x80 or more."""
    return _format_bytes(key, mark_high_bytes=True)


def generate_ca_keypair() -> Tuple[bytes, bytes]:
    """Return a new (32-byte private key, 65-byte uncompressed public key) pair."""
    scalar = generate_private_key()
    return scalar.to_bytes(32, "big"), public_key_from_private(scalar)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Generate a CA keypair and print it in the formats the card sources need."""
    parser = argparse.ArgumentParser(
        prog="generateCAKeypair",
        description="Generates a keypair for use as a phonon card certificate authority.",
    )
    parser.parse_args(argv)
    private_key, public_key = generate_ca_keypair()
    print("PrivKey:")
    print(format_go_bytes(private_key))
    print("PubKey: ")
    print(format_go_bytes(public_key))
    print("Javacard PubKey: ")
    print(format_javacard_bytes(public_key))
    return 0