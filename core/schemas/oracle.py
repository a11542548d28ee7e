"""
Module 01 - Schemas & Canonicalization
File: oracle.py

Purpose: Value objects that flow through one oracle cycle.

All of these are cycle-scoped; only ProofRecord (archive) and
SubmissionRecord (submission log) are ever persisted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.crypto.commitment import FIELD_MODULUS, PRICE_SCALE

from .versioning import RECORD_VERSION


OVERRIDE_SOURCE = "OVERRIDE"

# 1 whole-payload hash + 4 data shard hashes + 2 parity shard hashes
EXPECTED_CHECKSUM_COUNT = 7
CHECKSUM_SIZE = 32


# =============================================================================
# Aggregation
# =============================================================================

class PriceObservation(BaseModel):
    """One source's answer for one cycle."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source_name: str = Field(..., min_length=1)
    value: float | None = Field(default=None)
    ok: bool = Field(...)
    error: str | None = Field(default=None)

    @model_validator(mode="after")
    def _value_positive_when_ok(self) -> "PriceObservation":
        if self.ok and (self.value is None or not self.value > 0):
            raise ValueError("ok observations require a positive value")
        return self

    @classmethod
    def failed(cls, source_name: str, error: str) -> "PriceObservation":
        return cls(source_name=source_name, ok=False, error=error)

    def summary(self) -> str:
        """Short form used in archives: 'Binance:$616.51' or 'Kraken:fail'."""
        if self.ok and self.value is not None:
            return f"{self.source_name}:${self.value:.2f}"
        return f"{self.source_name}:fail"


class AggregationResult(BaseModel):
    """Consensus price plus everything needed to audit how it was reached."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    consensus_price: float = Field(..., gt=0)
    observations: list[PriceObservation] = Field(default_factory=list)
    valid_count: int = Field(..., ge=1)
    outliers: list[PriceObservation] = Field(default_factory=list)
    spread_bps: int = Field(default=0, ge=0)
    is_override: bool = Field(default=False)

    @property
    def source_names(self) -> list[str]:
        return [o.source_name for o in self.observations]

    def source_summary(self) -> list[str]:
        return [o.summary() for o in self.observations]


# =============================================================================
# Commitment & Proof
# =============================================================================

class Witness(BaseModel):
    """
    Private circuit input. The salt is secret until deliberately disclosed.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    price_fixed_point: int = Field(..., gt=0)
    timestamp: int = Field(..., gt=0)
    salt: int = Field(..., ge=0)

    @field_validator("salt")
    @classmethod
    def _salt_in_field(cls, v: int) -> int:
        if v >= FIELD_MODULUS:
            raise ValueError("salt must be below the field modulus")
        return v

    @property
    def price(self) -> float:
        return self.price_fixed_point / PRICE_SCALE

    def circuit_input(self) -> dict[str, str]:
        """Input document in the decimal-string form circom witnesses expect."""
        return {
            "price": str(self.price_fixed_point),
            "timestamp": str(self.timestamp),
            "salt": str(self.salt),
        }


class ZkProof(BaseModel):
    """Opaque proof plus its public signals [commitment, price, timestamp]."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    proof: dict[str, Any] = Field(..., description="Engine-native proof object")
    public_signals: list[str] = Field(..., min_length=3, max_length=3)
    protocol: Literal["groth16"] = "groth16"
    curve: Literal["bn128"] = "bn128"

    @property
    def commitment_int(self) -> int:
        return int(self.public_signals[0])


class ProofBundle(BaseModel):
    """Prover output: witness, locally verified proof and both commitments."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    witness: Witness
    proof: ZkProof
    price: float = Field(..., gt=0)
    commitment: str = Field(..., pattern=r"^0x[0-9a-f]{64}$")
    audit_commitment: str = Field(..., pattern=r"^0x[0-9a-f]{64}$")
    generated_at: datetime
    elapsed_ms: int = Field(default=0, ge=0)


# =============================================================================
# Chain
# =============================================================================

class PendingTransaction(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    tx_hash: str
    endpoint_url: str


class SubmissionReceipt(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    tx_hash: str
    block_number: int
    gas_used: int = 0
    endpoint_url: str = ""


class SubmissionRecord(BaseModel):
    """Outcome of one successful cycle. Immutable once written."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cycle_id: str
    consensus_price: float
    commitment: str
    tx_hash: str
    block_number: int
    archive_ref: str
    elapsed_ms: int
    source_summary: list[str] = Field(default_factory=list)
    valid_sources: int = 0
    spread_bps: int = 0
    gas_used: int = 0
    on_remote: bool = False
    is_override: bool = False


# =============================================================================
# Archive
# =============================================================================

class PublicWitness(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    price: str
    price_usd: float
    timestamp: str
    commitment: str
    audit_commitment: str


class OnChainReference(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    tx_hash: str
    chain: str = ""
    contract: str | None = None
    block_number: int | None = None


class ProofRecord(BaseModel):
    """
    Archived proof document.

    The witness section carries the raw salt. It is stored unencrypted,
    see DESIGN.md for the open review item.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str = Field(default=RECORD_VERSION)
    protocol: str = "groth16-bn128"
    circuit: str = "price_commitment.circom"
    public: PublicWitness
    zk_proof: ZkProof
    witness: dict[str, str] = Field(..., description="{'salt': decimal string}")
    sources: list[str] = Field(default_factory=list)
    on_chain: OnChainReference
    stored_at: datetime
    submitter: str | None = None

    @property
    def timestamp(self) -> int:
        return int(self.public.timestamp)

    @property
    def is_pending(self) -> bool:
        return self.on_chain.tx_hash.startswith("pending-")


class ArchiveEntry(BaseModel):
    """A stored archive object and the metadata the remote store needs."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    object_name: str
    payload: bytes
    checksums: list[bytes]
    stored_at: datetime
    on_remote: bool = False
    reference: str = Field(..., pattern=r"^0x[0-9a-f]{64}$")
    local_path: str | None = None

    @field_validator("checksums")
    @classmethod
    def _checksum_shape(cls, v: list[bytes]) -> list[bytes]:
        if len(v) != EXPECTED_CHECKSUM_COUNT:
            raise ValueError(
                f"expected {EXPECTED_CHECKSUM_COUNT} checksums, got {len(v)}"
            )
        if any(len(c) != CHECKSUM_SIZE for c in v):
            raise ValueError(f"every checksum must be {CHECKSUM_SIZE} bytes")
        return v

    @property
    def payload_size(self) -> int:
        return len(self.payload)
