"""
Module 02 - Hashing Utilities

Owner: Protocol/Crypto Engineer

This module provides:
- SHA-256 for archive checksums
- Keccak-256 for on-chain references (bytes32 values the oracle contract stores)
- Hex encoding/decoding with 0x prefix

Security/Determinism Notes:
- Always hash raw bytes exactly as given
- All operations are deterministic
"""
from __future__ import annotations

import hashlib

from eth_utils import keccak


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash of raw bytes.

    Example:
        >>> sha256(b"hello").hex()
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """Ethereum Keccak-256 (not NIST SHA3-256) of raw bytes."""
    return keccak(primitive=data)


def keccak_text(text: str) -> str:
    """Keccak-256 of a UTF-8 string, as 0x-prefixed hex."""
    return to_hex(keccak256(text.encode("utf-8")))


def to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string with 0x prefix.

    Example:
        >>> to_hex(bytes.fromhex("deadbeef"))
        '0xdeadbeef'
    """
    return "0x" + data.hex()


def from_hex(hex_string: str) -> bytes:
    """
    Convert a 0x-prefixed hexadecimal string to bytes.

    Raises:
        ValueError: If string doesn't start with 0x, has odd length,
                   or contains invalid hex characters
    """
    if not hex_string.startswith("0x"):
        raise ValueError(
            f"Hex string must start with '0x' prefix, got: {hex_string[:10]}..."
        )

    hex_content = hex_string[2:]
    if len(hex_content) % 2 != 0:
        raise ValueError(
            f"Hex string must have even length after 0x prefix, "
            f"got length {len(hex_content)}"
        )

    try:
        return bytes.fromhex(hex_content)
    except ValueError as e:
        raise ValueError(f"Invalid hex characters in string: {e}") from e


def int_to_bytes32(value: int) -> bytes:
    """Big-endian 32-byte encoding of a non-negative integer (Solidity uint256/bytes32)."""
    if value < 0 or value >= 1 << 256:
        raise ValueError(f"Value does not fit in 32 bytes: {value}")
    return value.to_bytes(32, "big")


def int_to_hex32(value: int) -> str:
    """0x-prefixed, zero-padded 64-character hex of an integer."""
    return to_hex(int_to_bytes32(value))


__all__ = [
    "sha256",
    "keccak256",
    "keccak_text",
    "to_hex",
    "from_hex",
    "int_to_bytes32",
    "int_to_hex32",
]
