"""
Commitment Prover

Binds a consensus price to a fresh secret salt and proves knowledge of the
salt with a Groth16 proof. Nothing leaves this module unless the proof has
passed local verification.

Public signals follow circom's convention: outputs first, then public
inputs, i.e. [commitment, price, timestamp].
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, Optional, TYPE_CHECKING

from agents.base import AgentCapability, BaseAgent
from agents.context import Clock, RealClock, unix_seconds
from core.crypto import (
    FIELD_MODULUS,
    audit_commitment,
    draw_salt,
    int_to_hex32,
    to_fixed_point,
)
from core.crypto.commitment import RandomBytes
from core.schemas.errors import ErrorCodes, OracleException, ProofError
from core.schemas.oracle import ProofBundle, Witness, ZkProof

from .engine import CircuitArtifacts, ProofEngine

if TYPE_CHECKING:
    from agents.context import AgentContext

logger = logging.getLogger(__name__)


class CommitmentProver(BaseAgent):
    """Produces locally verified ProofBundles for a price."""

    _name = "CommitmentProver"
    _version = "v2"
    _capabilities = {AgentCapability.PROVING}

    def __init__(
        self,
        engine: ProofEngine,
        *,
        artifacts: Optional[CircuitArtifacts] = None,
        clock: Optional[Clock] = None,
        random_bytes: RandomBytes = secrets.token_bytes,
    ) -> None:
        super().__init__()
        self.engine = engine
        self.artifacts = artifacts
        self.clock = clock or RealClock()
        self.random_bytes = random_bytes

    @classmethod
    def from_context(cls, ctx: "AgentContext", engine: ProofEngine) -> "CommitmentProver":
        cfg = ctx.config.prover
        return cls(
            engine,
            artifacts=CircuitArtifacts.from_paths(cfg.wasm_path, cfg.zkey_path, cfg.vkey_path),
            clock=ctx.clock,
        )

    def generate_proof(
        self,
        price: float,
        timestamp: Optional[int] = None,
        *,
        on_verify: Optional[Callable[[], None]] = None,
    ) -> ProofBundle:
        """
        Prove knowledge of a salt binding (price, timestamp).

        A fresh salt is drawn on every call, so retrying this method never
        reuses a salt. on_verify, if given, is called once the proof exists
        and local verification is about to start.

        Raises:
            ConfigError: circuit artifacts are missing
            ProofError: engine failure (retryable), signals that do not echo
                the witness, or failed local verification (not retryable)
        """
        if self.artifacts is not None:
            self.artifacts.require()

        try:
            price_fp = to_fixed_point(price)
        except ValueError as e:
            raise ProofError(str(e)) from e

        ts = timestamp if timestamp is not None else unix_seconds(self.clock)
        witness = Witness(
            price_fixed_point=price_fp,
            timestamp=ts,
            salt=draw_salt(self.random_bytes),
        )

        logger.info(f"Generating Groth16 proof: price ${price} ({price_fp} raw), timestamp {ts}")
        started = time.monotonic()

        try:
            proof, public_signals = self.engine.prove(witness.circuit_input())
        except OracleException:
            raise
        except Exception as e:
            raise ProofError(f"proof engine failed: {e}", retryable=True) from e

        zk_proof = self._check_signals(witness, proof, public_signals)
        if on_verify is not None:
            on_verify()

        try:
            valid = self.engine.verify(zk_proof.proof, zk_proof.public_signals)
        except OracleException:
            raise
        except Exception as e:
            raise ProofError(f"local verification errored: {e}", retryable=True) from e

        if not valid:
            raise ProofError(
                "proof failed local verification",
                code=ErrorCodes.LOCAL_VERIFICATION_FAILED,
                retryable=False,
                details={"public_signals": zk_proof.public_signals},
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        commitment = int_to_hex32(zk_proof.commitment_int)
        logger.info(f"Proof generated and verified in {elapsed_ms}ms, commitment {commitment}")

        return ProofBundle(
            witness=witness,
            proof=zk_proof,
            price=float(price),
            commitment=commitment,
            audit_commitment=audit_commitment(price_fp, ts, witness.salt),
            generated_at=self.clock.now(),
            elapsed_ms=elapsed_ms,
        )

    def verify_bundle(self, bundle: ProofBundle) -> bool:
        """Re-run the engine verifier on an existing bundle."""
        return bool(self.engine.verify(bundle.proof.proof, bundle.proof.public_signals))

    @staticmethod
    def _check_signals(witness: Witness, proof: dict, public_signals: list) -> ZkProof:
        signals = [str(s) for s in public_signals]
        if len(signals) != 3:
            raise ProofError(
                f"expected 3 public signals, got {len(signals)}",
                code=ErrorCodes.PUBLIC_SIGNALS_MISMATCH,
            )

        commitment_raw, price_raw, ts_raw = signals
        if price_raw != str(witness.price_fixed_point) or ts_raw != str(witness.timestamp):
            raise ProofError(
                "public signals do not match the witness",
                code=ErrorCodes.PUBLIC_SIGNALS_MISMATCH,
                details={
                    "expected": [str(witness.price_fixed_point), str(witness.timestamp)],
                    "got": [price_raw, ts_raw],
                },
            )

        try:
            commitment = int(commitment_raw)
        except ValueError:
            raise ProofError(
                f"commitment signal is not an integer: {commitment_raw!r}",
                code=ErrorCodes.PUBLIC_SIGNALS_MISMATCH,
            )
        if not 0 <= commitment < FIELD_MODULUS:
            raise ProofError(
                "commitment signal outside the scalar field",
                code=ErrorCodes.PUBLIC_SIGNALS_MISMATCH,
            )

        return ZkProof(proof=proof, public_signals=signals)
