"""
Module 02 - Commitment Primitives

Field-safe salt sampling, fixed-point price encoding and the audit
commitment that can be re-checked by anyone once the salt is disclosed.

The ZK commitment itself (Poseidon inside the circuit) is produced by the
proof engine; the audit commitment here is an independent keccak binding of
the same witness, matching Solidity's abi.encodePacked(uint256, uint256, bytes32).
"""
from __future__ import annotations

import secrets
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from eth_abi.packed import encode_packed

from .hashing import int_to_bytes32, keccak256, to_hex


# BN254 (alt_bn128) scalar field modulus; every circuit input must be below it.
FIELD_MODULUS = int(
    "21888242871839275222246405745257275088548364400416034343698204186575808495617"
)

PRICE_DECIMALS = 8
PRICE_SCALE = 10 ** PRICE_DECIMALS

_SALT_BYTES = 32
_SALT_MASK = (1 << FIELD_MODULUS.bit_length()) - 1

# Randomness source: takes a byte count, returns that many random bytes.
RandomBytes = Callable[[int], bytes]


def to_fixed_point(price: float | str | Decimal) -> int:
    """
    Encode a price as an integer with 8 implied decimals, rounding half-up.

    Example:
        >>> to_fixed_point(616.51)
        61651000000
    """
    try:
        value = Decimal(str(price))
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric price: {price!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Price must be a positive finite number, got {price!r}")
    return int(value.scaleb(PRICE_DECIMALS).to_integral_value(rounding=ROUND_HALF_UP))


def from_fixed_point(value: int) -> float:
    """Inverse of to_fixed_point (lossy for display only)."""
    return value / PRICE_SCALE


def draw_salt(random_bytes: RandomBytes = secrets.token_bytes) -> int:
    """
    Draw a salt uniformly from [0, FIELD_MODULUS).

    Samples 32 bytes, masks to the modulus bit length and resamples on
    values >= FIELD_MODULUS. Rejection keeps the distribution uniform where
    a modulo reduction would bias it.
    """
    while True:
        candidate = int.from_bytes(random_bytes(_SALT_BYTES), "big") & _SALT_MASK
        if candidate < FIELD_MODULUS:
            return candidate


def audit_commitment(price_fixed_point: int, timestamp: int, salt: int) -> str:
    """
    keccak256(abi.encodePacked(uint256 price, uint256 timestamp, bytes32 salt)).

    Returns:
        0x-prefixed 32-byte hex digest.
    """
    packed = encode_packed(
        ["uint256", "uint256", "bytes32"],
        [price_fixed_point, timestamp, int_to_bytes32(salt)],
    )
    return to_hex(keccak256(packed))


def verify_audit_commitment(
    price_fixed_point: int,
    timestamp: int,
    salt: int,
    commitment: str,
) -> bool:
    """Re-derive the audit commitment from a disclosed salt and compare."""
    return audit_commitment(price_fixed_point, timestamp, salt) == commitment.lower()


__all__ = [
    "FIELD_MODULUS",
    "PRICE_DECIMALS",
    "PRICE_SCALE",
    "to_fixed_point",
    "from_fixed_point",
    "draw_salt",
    "audit_commitment",
    "verify_audit_commitment",
]
