"""
Module 09B - Oracle Agent

Drives one submission cycle through aggregation, proving, archiving and
on-chain submission, and repeats it in continuous mode.

Cycle:
    AGGREGATING -> PROVING -> LOCALLY_VERIFYING -> PRE_ARCHIVING
    -> SUBMITTING -> CONFIRMING -> POST_ARCHIVING -> DONE

The agent is the single place where categorized errors are caught: a
failed cycle is logged with its step and category, and continuous mode
moves on to the next cycle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from agents.aggregator import PriceAggregator
from agents.archive import ProofArchive, build_object_store, pending_label
from agents.archive.store import ObjectStore
from agents.context import AgentContext, Clock, unix_seconds
from agents.prover import CircuitArtifacts, CommitmentProver, ProofEngine, build_engine
from agents.submitter import ChainSubmitter
from agents.submitter.endpoints import Web3Factory
from core.config import RuntimeConfig
from core.resilience import RetryPolicy
from core.schemas.errors import OracleException, StorageError
from core.schemas.oracle import SubmissionRecord

from .sop_executor import CycleState, CycleStep, SOPExecutor, SOPStep, make_step

logger = logging.getLogger(__name__)


class HealthReport(BaseModel):
    """Read-only snapshot of signer, oracle contract and local artifacts."""

    model_config = ConfigDict(extra="forbid")

    checked_at: datetime
    signer_address: Optional[str] = None
    balance: Optional[str] = Field(default=None, description="Native balance, decimal string")
    healthy_endpoint: Optional[str] = None
    oracle_price: Optional[float] = None
    oracle_timestamp: Optional[int] = None
    oracle_age_s: Optional[int] = None
    oracle_fresh: Optional[bool] = None
    zk_verified: Optional[bool] = None
    artifacts: dict[str, bool] = Field(default_factory=dict)
    components: dict[str, dict[str, Any]] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and all(self.artifacts.values())


@dataclass
class LoopStats:
    cycles: int = 0
    successes: int = 0
    failures: int = 0
    last_record: Optional[SubmissionRecord] = None
    last_error: Optional[OracleException] = None
    errors_by_category: dict[str, int] = field(default_factory=dict)


class OracleAgent:
    """
    Composes the aggregator, prover, submitter and archive into cycles.

    Usage:
        agent = OracleAgent.from_config(RuntimeConfig.from_env())
        record = agent.submit_once()
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        prover: CommitmentProver,
        submitter: ChainSubmitter,
        archive: ProofArchive,
        *,
        proof_retry: Optional[RetryPolicy] = None,
        log_dir: Optional[str | Path] = None,
        interval_s: float = 60.0,
        freshness_s: int = 3600,
        explorer_tx_url: str = "",
        clock: Optional[Clock] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.aggregator = aggregator
        self.prover = prover
        self.submitter = submitter
        self.archive = archive
        self.proof_retry = proof_retry or RetryPolicy(max_attempts=2, initial_delay=1.0)
        self.log_dir = Path(log_dir) if log_dir else None
        self.interval_s = interval_s
        self.freshness_s = freshness_s
        self.explorer_tx_url = explorer_tx_url
        self.clock = clock or prover.clock
        self._sleep = sleep or time.sleep
        self.last_state: Optional[CycleState] = None

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        *,
        ctx: Optional[AgentContext] = None,
        engine: Optional[ProofEngine] = None,
        store: Optional[ObjectStore] = None,
        web3_factory: Optional[Web3Factory] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> "OracleAgent":
        """
        Wire every component from configuration.

        Raises:
            ConfigError: signing key or oracle address missing
        """
        config.validate_for_submission()
        ctx = ctx or AgentContext.create(config)

        if engine is None:
            engine = build_engine(
                config.prover.wasm_path,
                config.prover.zkey_path,
                config.prover.vkey_path,
                snarkjs_bin=config.prover.snarkjs_bin,
                timeout_s=config.prover.prove_timeout_s,
            )
        if store is None and config.archive.remote_enabled:
            store = build_object_store(
                config.archive.providers,
                access_key=config.archive.access_key,
                secret_key=config.archive.secret_key,
                secure=config.archive.secure,
            )

        submitter = ChainSubmitter.from_context(ctx, web3_factory=web3_factory, sleep=sleep)
        return cls(
            PriceAggregator.from_context(ctx),
            CommitmentProver.from_context(ctx, engine),
            submitter,
            ProofArchive.from_context(ctx, store=store, submitter=submitter.signer_address),
            proof_retry=RetryPolicy(
                max_attempts=config.prover.max_attempts,
                initial_delay=config.prover.retry_delay_s,
            ),
            log_dir=config.agent.log_dir,
            interval_s=config.agent.interval_s,
            freshness_s=config.chain.freshness_s,
            explorer_tx_url=config.chain.explorer_tx_url,
            clock=ctx.clock,
            sleep=sleep,
        )

    # -------------------------------------------------------------------------
    # Cycle steps
    # -------------------------------------------------------------------------

    def _aggregate(self, state: CycleState) -> CycleState:
        state.aggregation = self.aggregator.aggregate(state.override_price)
        logger.info(
            f"Price ${state.aggregation.consensus_price:.2f} "
            f"({state.aggregation.valid_count} sources, spread {state.aggregation.spread_bps}bps)",
            extra={"cycle_id": state.cycle_id, "override": state.aggregation.is_override},
        )
        return state

    def _prove(self, state: CycleState) -> CycleState:
        def attempt():
            if state.step is not CycleStep.PROVING:
                state.advance(CycleStep.PROVING)
            return self.prover.generate_proof(
                state.aggregation.consensus_price,
                on_verify=lambda: state.advance(CycleStep.LOCALLY_VERIFYING),
            )

        state.bundle = self.proof_retry.call(attempt, label="proof", sleep=self._sleep)
        logger.info(
            f"Proof verified locally, commitment {state.bundle.commitment}",
            extra={"cycle_id": state.cycle_id},
        )
        return state

    def _pre_archive(self, state: CycleState) -> CycleState:
        record = self.archive.build_record(
            state.bundle,
            state.aggregation,
            pending_label(state.bundle.witness.timestamp),
        )
        state.pre_entry = self.archive.archive(record)
        return state

    def _submit(self, state: CycleState) -> CycleState:
        state.pending = self.submitter.send(state.bundle, state.pre_entry.reference)
        if self.explorer_tx_url:
            logger.info(f"Explorer: {self.explorer_tx_url}{state.pending.tx_hash}")
        return state

    def _confirm(self, state: CycleState) -> CycleState:
        state.receipt = self.submitter.confirm(state.pending)
        logger.info(
            f"Confirmed in block {state.receipt.block_number} (gas {state.receipt.gas_used})",
            extra={"cycle_id": state.cycle_id, "tx_hash": state.receipt.tx_hash},
        )
        return state

    def _post_archive(self, state: CycleState) -> CycleState:
        record = self.archive.build_record(
            state.bundle,
            state.aggregation,
            state.receipt.tx_hash,
            block_number=state.receipt.block_number,
        )
        # The price is already on-chain; a local failure here must not fail the cycle
        try:
            state.post_entry = self.archive.archive(record)
        except StorageError as e:
            logger.warning(
                f"Post-submission archive failed: {e.message}",
                extra={"cycle_id": state.cycle_id, "error_code": e.code},
            )

        on_remote = bool(
            state.pre_entry.on_remote and state.post_entry is not None and state.post_entry.on_remote
        )
        state.record = SubmissionRecord(
            cycle_id=state.cycle_id,
            consensus_price=state.aggregation.consensus_price,
            commitment=state.bundle.commitment,
            tx_hash=state.receipt.tx_hash,
            block_number=state.receipt.block_number,
            archive_ref=state.pre_entry.reference,
            elapsed_ms=state.elapsed_ms,
            source_summary=state.aggregation.source_summary(),
            valid_sources=state.aggregation.valid_count,
            spread_bps=state.aggregation.spread_bps,
            gas_used=state.receipt.gas_used,
            on_remote=on_remote,
            is_override=state.aggregation.is_override,
        )
        return state

    def steps(self) -> list[SOPStep]:
        return [
            make_step("aggregate", CycleStep.AGGREGATING, self._aggregate),
            make_step("prove", CycleStep.PROVING, self._prove),
            make_step("pre_archive", CycleStep.PRE_ARCHIVING, self._pre_archive),
            make_step("submit", CycleStep.SUBMITTING, self._submit),
            make_step("confirm", CycleStep.CONFIRMING, self._confirm),
            make_step("post_archive", CycleStep.POST_ARCHIVING, self._post_archive),
        ]

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def submit_once(self, override_price: Any = None) -> SubmissionRecord:
        """
        Run one full cycle.

        Raises:
            OracleException: the categorized error of the failing step
        """
        state = CycleState(override_price=override_price)
        self.last_state = state
        logger.info("Submission cycle start", extra={"cycle_id": state.cycle_id})

        try:
            SOPExecutor().execute(self.steps(), state)
        except OracleException as e:
            logger.error(
                f"Cycle failed at {state.failed_step.value if state.failed_step else 'unknown'}: "
                f"[{e.category}/{e.code}] {e.message}",
                extra={
                    "cycle_id": state.cycle_id,
                    "step": state.failed_step.value if state.failed_step else None,
                    "category": e.category,
                    "code": e.code,
                    "retryable": e.retryable,
                },
            )
            raise

        record = state.record
        self._write_submission_log(record, state.bundle.witness.timestamp)
        if record.on_remote:
            logger.info(
                f"Cycle completed in {record.elapsed_ms}ms: tx {record.tx_hash}",
                extra={"cycle_id": record.cycle_id, "tx_hash": record.tx_hash},
            )
        else:
            logger.warning(
                f"Cycle completed (degraded: local-only archive) in {record.elapsed_ms}ms: "
                f"tx {record.tx_hash}",
                extra={"cycle_id": record.cycle_id, "tx_hash": record.tx_hash, "degraded": True},
            )
        return record

    def _write_submission_log(self, record: SubmissionRecord, timestamp: int) -> None:
        if self.log_dir is None:
            return
        path = self.log_dir / f"submission-{timestamp}.json"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write submission log {path}: {e}")

    def run_continuous(
        self,
        interval_s: Optional[float] = None,
        override_price: Any = None,
        max_cycles: Optional[int] = None,
    ) -> LoopStats:
        """
        Run cycles forever (or max_cycles times), sleeping interval_s between them.

        A failed cycle is counted and logged; it never stops the loop.
        """
        interval = self.interval_s if interval_s is None else interval_s
        stats = LoopStats()
        logger.info(f"Continuous mode: every {interval}s")

        while max_cycles is None or stats.cycles < max_cycles:
            stats.cycles += 1
            try:
                stats.last_record = self.submit_once(override_price)
                stats.successes += 1
            except OracleException as e:
                stats.failures += 1
                stats.last_error = e
                stats.errors_by_category[e.category] = stats.errors_by_category.get(e.category, 0) + 1

            logger.info(
                f"Stats: {stats.successes} ok / {stats.failures} failed",
                extra={"cycles": stats.cycles, "successes": stats.successes, "failures": stats.failures},
            )
            if max_cycles is not None and stats.cycles >= max_cycles:
                break
            self._sleep(interval)

        return stats

    def close(self) -> None:
        """Stop the source worker pool and close its HTTP sessions."""
        self.aggregator.close()

    def health_check(self) -> HealthReport:
        """Collect a read-only health snapshot. Never raises for read failures."""
        now = self.clock.now()
        report: dict[str, Any] = {
            "checked_at": now,
            "signer_address": self.submitter.signer_address,
            "components": {
                c.name: c.describe()
                for c in (self.aggregator, self.prover, self.submitter, self.archive)
            },
            "errors": [],
        }

        try:
            report["healthy_endpoint"], _ = self.submitter.pool.probe_healthy()
        except OracleException as e:
            report["errors"].append(f"{e.category}: {e.message}")

        try:
            report["balance"] = str(self.submitter.signer_balance())
        except OracleException as e:
            report["errors"].append(f"{e.category}: {e.message}")

        try:
            latest = self.submitter.latest_price()
            age = unix_seconds(self.clock) - latest.timestamp
            report.update(
                oracle_price=latest.price_usd,
                oracle_timestamp=latest.timestamp,
                oracle_age_s=age,
                oracle_fresh=age <= self.freshness_s,
                zk_verified=latest.zk_verified,
            )
        except OracleException as e:
            report["errors"].append(f"{e.category}: {e.message}")

        artifacts = self.prover.artifacts
        if isinstance(artifacts, CircuitArtifacts):
            missing = set(artifacts.missing())
            report["artifacts"] = {name: name not in missing for name in ("wasm", "zkey", "vkey")}

        health = HealthReport(**report)
        logger.info(
            f"Health: endpoint={health.healthy_endpoint} balance={health.balance} "
            f"price={health.oracle_price} age={health.oracle_age_s}s zk={health.zk_verified}",
            extra={"errors": len(health.errors)},
        )
        return health
