"""
Core cryptographic utilities.

Module 02 provides hashing, field-safe salts and the audit commitment.
"""
from .hashing import (
    sha256,
    keccak256,
    keccak_text,
    to_hex,
    from_hex,
    int_to_bytes32,
    int_to_hex32,
)
from .commitment import (
    FIELD_MODULUS,
    PRICE_SCALE,
    to_fixed_point,
    from_fixed_point,
    draw_salt,
    audit_commitment,
    verify_audit_commitment,
)

__all__ = [
    "sha256",
    "keccak256",
    "keccak_text",
    "to_hex",
    "from_hex",
    "int_to_bytes32",
    "int_to_hex32",
    "FIELD_MODULUS",
    "PRICE_SCALE",
    "to_fixed_point",
    "from_fixed_point",
    "draw_salt",
    "audit_commitment",
    "verify_audit_commitment",
]
