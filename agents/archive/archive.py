"""
Proof Archive

Persists every proof record locally first, then best effort to the remote
object store. The local copy is the safety net: a remote failure downgrades
the entry to local-only, a local failure fails the write.

Layout of the local directory:
    <local_dir>/<object_name>     canonical JSON payload
    <local_dir>/index.jsonl       append-only archive log, one line per write
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from agents.base import AgentCapability, BaseAgent
from agents.context import Clock, RealClock
from core.crypto import from_hex, keccak_text
from core.schemas.canonical import dumps_canonical_bytes, format_datetime_canonical
from core.schemas.errors import ErrorCodes, StorageError
from core.schemas.oracle import (
    AggregationResult,
    ArchiveEntry,
    OnChainReference,
    ProofBundle,
    ProofRecord,
    PublicWitness,
)
from core.schemas.versioning import is_supported_record_version

from .checksums import compute_checksums
from .store import ObjectStore, select_primary_provider

if TYPE_CHECKING:
    from agents.context import AgentContext

logger = logging.getLogger(__name__)

INDEX_FILE = "index.jsonl"
PENDING_PREFIX = "pending-"


def object_name_for(timestamp: int | str, tx_hash: str) -> str:
    return f"veris-proof-{timestamp}-{tx_hash[:10]}.json"


def pending_label(timestamp: int | str) -> str:
    """Placeholder transaction hash for the pre-submission archive."""
    return f"{PENDING_PREFIX}{timestamp}"


class ProofArchive(BaseAgent):
    """Local-first archive with a best-effort remote mirror."""

    _name = "ProofArchive"
    _version = "v2"
    _capabilities = {AgentCapability.STORAGE}

    def __init__(
        self,
        local_dir: str | Path,
        *,
        bucket: str = "verisafe-oracle-proofs",
        store: Optional[ObjectStore] = None,
        clock: Optional[Clock] = None,
        chain_label: str = "",
        contract: Optional[str] = None,
        submitter: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.local_dir = Path(local_dir)
        self.bucket = bucket
        self.store = store
        self.clock = clock or RealClock()
        self.chain_label = chain_label
        self.contract = contract
        self.submitter = submitter
        self._bucket_ready = False

    @classmethod
    def from_context(
        cls,
        ctx: "AgentContext",
        store: Optional[ObjectStore] = None,
        submitter: Optional[str] = None,
    ) -> "ProofArchive":
        cfg = ctx.config
        return cls(
            cfg.archive.local_dir,
            bucket=cfg.archive.bucket,
            store=store,
            clock=ctx.clock,
            chain_label=cfg.chain.chain_label,
            contract=cfg.chain.oracle_address,
            submitter=submitter,
        )

    @property
    def index_path(self) -> Path:
        return self.local_dir / INDEX_FILE

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def build_record(
        self,
        bundle: ProofBundle,
        aggregation: AggregationResult,
        tx_hash: str,
        block_number: Optional[int] = None,
    ) -> ProofRecord:
        """Assemble the archived document for a bundle and its on-chain reference."""
        witness = bundle.witness
        return ProofRecord(
            public=PublicWitness(
                price=str(witness.price_fixed_point),
                price_usd=bundle.price,
                timestamp=str(witness.timestamp),
                commitment=bundle.commitment,
                audit_commitment=bundle.audit_commitment,
            ),
            zk_proof=bundle.proof,
            witness={"salt": str(witness.salt)},
            sources=aggregation.source_summary(),
            on_chain=OnChainReference(
                tx_hash=tx_hash,
                chain=self.chain_label,
                contract=self.contract,
                block_number=block_number,
            ),
            stored_at=self.clock.now(),
            submitter=self.submitter,
        )

    def object_name(self, record: ProofRecord) -> str:
        return object_name_for(record.public.timestamp, record.on_chain.tx_hash)

    def reference(self, object_name: str) -> str:
        return keccak_text(object_name)

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def archive(self, record: ProofRecord) -> ArchiveEntry:
        """
        Store a record locally, then remotely.

        Raises:
            StorageError: the local write failed (code LOCAL_WRITE_FAILED).
                Remote failures never raise.
        """
        name = self.object_name(record)
        payload = dumps_canonical_bytes(record)
        checksums = compute_checksums(payload)
        reference = self.reference(name)
        stored_at = self.clock.now()

        local_path = self._write_local(name, payload)
        on_remote = self._push_remote(name, payload, checksums)

        entry = ArchiveEntry(
            object_name=name,
            payload=payload,
            checksums=checksums,
            stored_at=stored_at,
            on_remote=on_remote,
            reference=reference,
            local_path=str(local_path),
        )
        self._append_index(entry)

        logger.info(
            f"Archived {name} ({len(payload)} bytes, {'remote+local' if on_remote else 'local only'})",
            extra={"object_name": name, "on_remote": on_remote},
        )
        return entry

    def _write_local(self, name: str, payload: bytes) -> Path:
        target = self.local_dir / name
        try:
            self.local_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.local_dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, target)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(
                f"local archive write failed for {name}: {e}",
                code=ErrorCodes.LOCAL_WRITE_FAILED,
                retryable=False,
                details={"path": str(target)},
            ) from e
        return target

    def _append_index(self, entry: ArchiveEntry) -> None:
        line = json.dumps({
            "object_name": entry.object_name,
            "reference": entry.reference,
            "stored_at": format_datetime_canonical(entry.stored_at),
            "on_remote": entry.on_remote,
            "payload_size": entry.payload_size,
            "checksums": ["0x" + c.hex() for c in entry.checksums],
        }, sort_keys=True)
        try:
            with open(self.index_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StorageError(
                f"archive log append failed: {e}",
                code=ErrorCodes.LOCAL_WRITE_FAILED,
                retryable=False,
            ) from e

    def ensure_bucket(self) -> None:
        """Create the bucket on the primary provider if it does not exist."""
        if self._bucket_ready or self.store is None:
            return
        if not self.store.bucket_exists(self.bucket):
            provider = select_primary_provider(self.store.providers())
            self.store.create_bucket(self.bucket, provider)
        self._bucket_ready = True

    def _push_remote(self, name: str, payload: bytes, checksums: list[bytes]) -> bool:
        if self.store is None:
            return False
        try:
            self.ensure_bucket()
            self.store.create_object(self.bucket, name, len(payload), checksums, "application/json")
            self.store.upload_object(self.bucket, name, payload)
        except StorageError as e:
            logger.warning(
                f"Remote archive failed for {name}, kept local copy: {e.message}",
                extra={"object_name": name, "error_code": e.code},
            )
            return False
        return True

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def _read_index(self) -> list[dict]:
        if not self.index_path.exists():
            return []
        rows = []
        with open(self.index_path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rows.append(json.loads(line))
                except ValueError:
                    logger.warning(f"Skipping corrupt archive log line {lineno}")
        return rows

    def list(self, limit: int = 20) -> list[ArchiveEntry]:
        """
        Most recent entries first, one per object (latest write wins).

        When the remote store answers, its listing decides on_remote;
        otherwise the value recorded at write time is kept.
        """
        remote_names: Optional[set[str]] = None
        if self.store is not None:
            try:
                remote_names = set(self.store.list_objects(self.bucket))
            except StorageError as e:
                logger.warning(f"Remote listing unavailable: {e.message}")

        entries: list[ArchiveEntry] = []
        seen: set[str] = set()
        for row in reversed(self._read_index()):
            if len(entries) >= limit:
                break
            name = row["object_name"]
            if name in seen:
                continue
            seen.add(name)

            path = self.local_dir / name
            try:
                payload = path.read_bytes()
            except OSError:
                logger.warning(f"Archived payload missing on disk: {name}")
                continue

            on_remote = bool(row.get("on_remote", False))
            if remote_names is not None:
                on_remote = name in remote_names

            entries.append(ArchiveEntry(
                object_name=name,
                payload=payload,
                checksums=[from_hex(c) for c in row["checksums"]],
                stored_at=row["stored_at"],
                on_remote=on_remote,
                reference=row["reference"],
                local_path=str(path),
            ))
        return entries

    def read_record(self, object_name: str) -> ProofRecord:
        path = self.local_dir / object_name
        try:
            record = ProofRecord.model_validate_json(path.read_bytes())
        except OSError as e:
            raise StorageError(f"cannot read {object_name}: {e}", retryable=False) from e
        except ValueError as e:
            raise StorageError(f"{object_name} is not a valid proof record: {e}", retryable=False) from e
        if not is_supported_record_version(record.version):
            raise StorageError(
                f"{object_name} has unsupported record version {record.version!r}",
                retryable=False,
                details={"version": record.version},
            )
        return record
