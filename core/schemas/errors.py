"""
Module 01 - Schemas & Canonicalization
File: errors.py

Purpose: Standard error taxonomy across the oracle agent.
Defines both Pydantic models for structured error communication
and Python exceptions for control flow.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Codes (Machine-Readable Constants)
# =============================================================================

class ErrorCodes:
    """Stable machine-readable error codes used across the agent."""

    # Schema & Validation Errors
    SCHEMA_VALIDATION_ERROR = "SCHEMA_VALIDATION_ERROR"
    CANONICALIZATION_ERROR = "CANONICALIZATION_ERROR"

    # Configuration
    CONFIG_ERROR = "CONFIG_ERROR"
    ARTIFACT_MISSING = "ARTIFACT_MISSING"

    # Price collection
    SOURCE_FETCH_ERROR = "SOURCE_FETCH_ERROR"
    QUORUM_NOT_MET = "QUORUM_NOT_MET"
    SOURCE_DISAGREEMENT = "SOURCE_DISAGREEMENT"
    INVALID_OVERRIDE = "INVALID_OVERRIDE"

    # Proving
    PROOF_GENERATION_FAILED = "PROOF_GENERATION_FAILED"
    LOCAL_VERIFICATION_FAILED = "LOCAL_VERIFICATION_FAILED"
    PUBLIC_SIGNALS_MISMATCH = "PUBLIC_SIGNALS_MISMATCH"

    # Chain
    ENDPOINTS_UNREACHABLE = "ENDPOINTS_UNREACHABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    RECEIPT_TIMEOUT = "RECEIPT_TIMEOUT"
    TRANSACTION_REVERTED = "TRANSACTION_REVERTED"
    CHAIN_ERROR = "CHAIN_ERROR"

    # Unexpected failures inside a cycle step
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Storage
    STORAGE_ERROR = "STORAGE_ERROR"
    LOCAL_WRITE_FAILED = "LOCAL_WRITE_FAILED"


# =============================================================================
# Pydantic Error Models (Structured Communication)
# =============================================================================

class OracleError(BaseModel):
    """
    Base error model for structured error communication.

    Used when an error has to travel as data (the CLI JSON output)
    rather than as a raised exception.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(
        ...,
        description="Stable machine-readable error code",
        examples=[ErrorCodes.QUORUM_NOT_MET],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    category: str = Field(
        default="OracleException",
        description="Exception class the error belongs to",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured details about the error",
    )
    retryable: bool = Field(
        default=False,
        description="Whether the operation can be retried",
    )


# =============================================================================
# Python Exceptions (Control Flow)
# =============================================================================

class OracleException(Exception):
    """
    Base exception for all oracle agent errors.

    Carries structured error information and can be converted
    to/from OracleError models.
    """

    def __init__(
        self,
        message: str,
        code: str = "ORACLE_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable

    @property
    def category(self) -> str:
        return self.__class__.__name__

    def to_error_model(self) -> OracleError:
        """Convert this exception to an OracleError model."""
        return OracleError(
            code=self.code,
            message=self.message,
            category=self.category,
            details=self.details,
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ConfigError(OracleException):
    """Missing artifact or credential. Fatal, never retried."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.CONFIG_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details, retryable=False)


class SourceFetchError(OracleException):
    """A single price source failed. Tolerated up to quorum."""

    def __init__(
        self,
        message: str,
        source_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if source_name:
            full_details["source"] = source_name
        super().__init__(
            message=message,
            code=ErrorCodes.SOURCE_FETCH_ERROR,
            details=full_details,
            retryable=False,
        )


class AggregationError(OracleException):
    """Insufficient quorum or excess source disagreement."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.QUORUM_NOT_MET,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details, retryable=False)


class ProofError(OracleException):
    """Proof generation failure or failed local verification."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.PROOF_GENERATION_FAILED,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message=message, code=code, details=details, retryable=retryable)


class NetworkError(OracleException):
    """No reachable RPC endpoint or a transient transport failure."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.NETWORK_ERROR,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, code=code, details=details, retryable=retryable)


class ChainError(OracleException):
    """Transaction reverted or rejected by the chain. Not retried."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.CHAIN_ERROR,
        tx_hash: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if tx_hash:
            full_details["tx_hash"] = tx_hash
        super().__init__(message=message, code=code, details=full_details, retryable=False)


class StorageError(OracleException):
    """Archive storage failure. Remote failures downgrade to local-only."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.STORAGE_ERROR,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, code=code, details=details, retryable=retryable)


class CanonicalizationException(OracleException):
    """Exception raised when canonical serialization fails."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.CANONICALIZATION_ERROR,
            details=details,
            retryable=False,
        )

