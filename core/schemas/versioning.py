"""
Module 01 - Schemas & Canonicalization
File: versioning.py

Purpose: Centralize record format version constants.
No imports from other schema files to avoid circular dependencies.
"""

# Archived ProofRecord layout. v1 was the pre-Groth16 keccak commit-reveal record.
RECORD_VERSION: str = "v2"

SUPPORTED_RECORD_VERSIONS: frozenset[str] = frozenset({"v2"})


def is_supported_record_version(version: str) -> bool:
    return version in SUPPORTED_RECORD_VERSIONS
