"""Ethereum primitives: Keccak hashing, secp256k1 keys, addresses, RLP and legacy transactions."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

from Crypto.Hash import keccak

SECP256K1_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)
ADDRESS_LENGTH = 20

_Point = Optional[Tuple[int, int]]


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def _point_add(a: _Point, b: _Point) -> _Point:
    if a is None:
        return b
    if b is None:
        return a
    (x1, y1), (x2, y2) = a, b
    if x1 == x2:
        if (y1 + y2) % SECP256K1_P == 0:
            return None
        slope = 3 * x1 * x1 * pow(2 * y1, -1, SECP256K1_P) % SECP256K1_P
    else:
        slope = (y2 - y1) * pow(x2 - x1, -1, SECP256K1_P) % SECP256K1_P
    x3 = (slope * slope - x1 - x2) % SECP256K1_P
    return x3, (slope * (x1 - x3) - y1) % SECP256K1_P


def _point_mul(k: int, point: _Point) -> _Point:
    result: _Point = None
    addend = point
    while k:
        if k & 1:
            result = _point_add(result, addend)
        addend = _point_add(addend, addend)
        k >>= 1
    return result


def _on_curve(point: Tuple[int, int]) -> bool:
    x, y = point
    return (y * y - x * x * x - 7) % SECP256K1_P == 0


def _encode_point(point: Tuple[int, int]) -> bytes:
    x, y = point
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def _decode_public_key(public_key: bytes) -> Tuple[int, int]:
    data = bytes(public_key)
    if len(data) == 65 and data[0] == 4:
        data = data[1:]
    if len(data) != 64:
        raise ValueError("public key must be 64 or 65 bytes in uncompressed form")
    point = (int.from_bytes(data[:32], "big"), int.from_bytes(data[32:], "big"))
    if not _on_curve(point):
        raise ValueError("public key is not a point on secp256k1")
    return point


def _private_scalar(private_key: Union[int, bytes]) -> int:
    scalar = int.from_bytes(private_key, "big") if isinstance(private_key, (bytes, bytearray)) else int(private_key)
    if not 1 <= scalar < SECP256K1_N:
        raise ValueError("private key out of range for secp256k1")
    return scalar


def generate_private_key() -> int:
    """Return a fresh random secp256k1 private key scalar."""
    return secrets.randbelow(SECP256K1_N - 1) + 1


def public_key_from_private(private_key: Union[int, bytes]) -> bytes:
    """Return the 65-byte uncompressed public key for ``private_key``."""
    point = _point_mul(_private_scalar(private_key), _G)
    assert point is not None
    return _encode_point(point)


def to_checksum_address(address: Union[str, bytes]) -> str:
    """Return the mixed-case checksummed form of an address."""
    if isinstance(address, (bytes, bytearray)):
        if len(address) != ADDRESS_LENGTH:
            raise ValueError("address must be 20 bytes")
        lowered = bytes(address).hex()
    else:
        if not is_hex_address(address):
            raise ValueError(f"invalid hex address: {address!r}")
        lowered = address[2:].lower() if address[:2] in ("0x", "0X") else address.lower()
    digest = keccak256(lowered.encode("ascii")).hex()
    checked = "".join(
        char.upper() if char.isalpha() and int(digest[i], 16) >= 8 else char
        for i, char in enumerate(lowered)
    )
    return "0x" + checked


def pubkey_to_address(public_key: bytes) -> str:
    """Derive the checksummed account address of a public key."""
    x, y = _decode_public_key(public_key)
    digest = keccak256(x.to_bytes(32, "big") + y.to_bytes(32, "big"))
    return to_checksum_address(digest[-ADDRESS_LENGTH:])


def is_hex_address(address: str) -> bool:
    """Tell whether ``address`` is 40 hex digits, with or without a 0x prefix."""
    body = address[2:] if address[:2] in ("0x", "0X") else address
    return len(body) == 2 * ADDRESS_LENGTH and all(c in string.hexdigits for c in body)


def hex_to_address(address: str) -> bytes:
    """Decode a hex string into 20 address bytes, keeping the rightmost bytes."""
    body = address[2:] if address[:2] in ("0x", "0X") else address
    if len(body) % 2:
        body = "0" + body
    raw = bytes.fromhex(body)
    return raw[-ADDRESS_LENGTH:].rjust(ADDRESS_LENGTH, b"\x00")


def _rlp_length(length: int, offset: int) -> bytes:
    if length < 56:
        return bytes([offset + length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([offset + 55 + len(encoded)]) + encoded


def rlp_encode(item) -> bytes:
    """RLP-encode bytes, strings, non-negative integers and nested lists."""
    if isinstance(item, (list, tuple)):
        payload = b"".join(rlp_encode(element) for element in item)
        return _rlp_length(len(payload), 0xC0) + payload
    if isinstance(item, int):
        if item < 0:
            raise ValueError("RLP cannot encode negative integers")
        item = item.to_bytes((item.bit_length() + 7) // 8, "big")
    elif isinstance(item, str):
        item = item.encode("utf-8")
    elif isinstance(item, (bytes, bytearray)):
        item = bytes(item)
    else:
        raise TypeError(f"cannot RLP-encode {type(item).__name__}")
    if len(item) == 1 and item[0] < 0x80:
        return item
    return _rlp_length(len(item), 0x80) + item


def _nonces(scalar: int, msg_hash: bytes) -> Iterator[int]:
    """Deterministic nonce candidates following RFC 6979 with HMAC-SHA256."""
    x = scalar.to_bytes(32, "big")
    h1 = (int.from_bytes(msg_hash, "big") % SECP256K1_N).to_bytes(32, "big")
    v = b"\x01" * 32
    k = b"\x00" * 32
    k = hmac.new(k, v + b"\x00" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    k = hmac.new(k, v + b"\x01" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    while True:
        v = hmac.new(k, v, hashlib.sha256).digest()
        candidate = int.from_bytes(v, "big")
        if 1 <= candidate < SECP256K1_N:
            yield candidate
        k = hmac.new(k, v + b"\x00", hashlib.sha256).digest()
        v = hmac.new(k, v, hashlib.sha256).digest()


def _sign_hash(msg_hash: bytes, private_key: Union[int, bytes]) -> Tuple[int, int, int]:
    scalar = _private_scalar(private_key)
    z = int.from_bytes(msg_hash, "big") % SECP256K1_N
    for k in _nonces(scalar, msg_hash):
        point = _point_mul(k, _G)
        assert point is not None
        r = point[0] % SECP256K1_N
        if r == 0:
            continue
        s = pow(k, -1, SECP256K1_N) * (z + r * scalar) % SECP256K1_N
        if s == 0:
            continue
        recovery_id = (point[1] & 1) | (2 if point[0] >= SECP256K1_N else 0)
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
            recovery_id ^= 1
        return r, s, recovery_id
    raise RuntimeError("nonce generation exhausted")  # pragma: no cover


def recover_public_key(msg_hash: bytes, r: int, s: int, recovery_id: int) -> bytes:
    """Recover the uncompressed public key that produced signature (r, s)."""
    if recovery_id not in (0, 1, 2, 3):
        raise ValueError("recovery id must be between 0 and 3")
    if not (1 <= r < SECP256K1_N and 1 <= s < SECP256K1_N):
        raise ValueError("signature values out of range")
    x = r + (recovery_id >> 1) * SECP256K1_N
    if x >= SECP256K1_P:
        raise ValueError("invalid signature: r out of field range")
    alpha = (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P
    beta = pow(alpha, (SECP256K1_P + 1) // 4, SECP256K1_P)
    if beta * beta % SECP256K1_P != alpha:
        raise ValueError("invalid signature: no curve point for r")
    y = beta if (beta & 1) == (recovery_id & 1) else SECP256K1_P - beta
    z = int.from_bytes(msg_hash, "big") % SECP256K1_N
    r_inv = pow(r, -1, SECP256K1_N)
    point = _point_add(
        _point_mul(s * r_inv % SECP256K1_N, (x, y)),
        _point_mul(-z * r_inv % SECP256K1_N, _G),
    )
    if point is None:
        raise ValueError("invalid signature: recovered point at infinity")
    return _encode_point(point)


@dataclass(frozen=True)
class LegacyTransaction:
    """A pre-EIP-2718 value transfer transaction."""

    nonce: int
    to: Optional[bytes]
    value: int
    gas_limit: int
    gas_price: int
    data: bytes = b""

    def _fields(self) -> list:
        return [self.nonce, self.gas_price, self.gas_limit, self.to or b"", self.value, self.data]

    def signing_payload(self, chain_id: int) -> bytes:
        """RLP payload hashed for an EIP-155 signature on ``chain_id``."""
        return rlp_encode(self._fields() + [chain_id, 0, 0])

    def sign(self, chain_id: int, private_key: Union[int, bytes]) -> "SignedTransaction":
        """Sign the transaction with EIP-155 replay protection."""
        r, s, recovery_id = _sign_hash(keccak256(self.signing_payload(chain_id)), private_key)
        return SignedTransaction(self, recovery_id + 35 + 2 * chain_id, r, s)


@dataclass(frozen=True)
class SignedTransaction:
    """A legacy transaction with its EIP-155 signature."""

    tx: LegacyTransaction
    v: int
    r: int
    s: int

    def raw(self) -> bytes:
        """Wire encoding suitable for eth_sendRawTransaction."""
        return rlp_encode(self.tx._fields() + [self.v, self.r, self.s])

    def tx_hash(self) -> str:
        """Hex transaction hash with 0x prefix."""
        return "0x" + keccak256(self.raw()).hex()