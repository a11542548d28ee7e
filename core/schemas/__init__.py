"""
Module 01 - Schemas & Canonicalization

Value objects, canonical serialization and the error taxonomy shared by
every component of the oracle agent.
"""

from .canonical import dumps_canonical, dumps_canonical_bytes, format_datetime_canonical
from .errors import (
    AggregationError,
    CanonicalizationException,
    ChainError,
    ConfigError,
    ErrorCodes,
    NetworkError,
    OracleError,
    OracleException,
    ProofError,
    SourceFetchError,
    StorageError,
)
from .oracle import (
    EXPECTED_CHECKSUM_COUNT,
    OVERRIDE_SOURCE,
    AggregationResult,
    ArchiveEntry,
    OnChainReference,
    PendingTransaction,
    PriceObservation,
    ProofBundle,
    ProofRecord,
    PublicWitness,
    SubmissionReceipt,
    SubmissionRecord,
    Witness,
    ZkProof,
)
from .versioning import RECORD_VERSION

__all__ = [
    "dumps_canonical",
    "dumps_canonical_bytes",
    "format_datetime_canonical",
    "AggregationError",
    "CanonicalizationException",
    "ChainError",
    "ConfigError",
    "ErrorCodes",
    "NetworkError",
    "OracleError",
    "OracleException",
    "ProofError",
    "SourceFetchError",
    "StorageError",
    "EXPECTED_CHECKSUM_COUNT",
    "OVERRIDE_SOURCE",
    "AggregationResult",
    "ArchiveEntry",
    "OnChainReference",
    "PendingTransaction",
    "PriceObservation",
    "ProofBundle",
    "ProofRecord",
    "PublicWitness",
    "SubmissionReceipt",
    "SubmissionRecord",
    "Witness",
    "ZkProof",
    "RECORD_VERSION",
]
