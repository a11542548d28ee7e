"""
Proof Engines

The proving mathematics is an external capability. A ProofEngine takes the
circuit input document and returns (proof, public_signals); it can also
verify a proof against the verification key.

SnarkjsProofEngine drives the snarkjs CLI over subprocess, the same way the
circuit setup scripts do. Each call has a wall-clock timeout so a stalled
prover cannot hold the cycle forever.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from core.schemas.errors import ConfigError, ErrorCodes, ProofError

logger = logging.getLogger(__name__)


@runtime_checkable
class ProofEngine(Protocol):
    """Groth16 prover and verifier over a fixed circuit."""

    def prove(self, circuit_input: dict[str, str]) -> tuple[dict[str, Any], list[str]]:
        ...

    def verify(self, proof: dict[str, Any], public_signals: list[str]) -> bool:
        ...


@dataclass(frozen=True)
class CircuitArtifacts:
    """Paths to the compiled circuit, proving key and verification key."""
    wasm: Path
    zkey: Path
    vkey: Path

    @classmethod
    def from_paths(cls, wasm: str, zkey: str, vkey: str) -> "CircuitArtifacts":
        return cls(wasm=Path(wasm), zkey=Path(zkey), vkey=Path(vkey))

    def missing(self) -> list[str]:
        """Names of artifacts that do not exist on disk."""
        return [
            label for label, path in (("wasm", self.wasm), ("zkey", self.zkey), ("vkey", self.vkey))
            if not path.is_file()
        ]

    def require(self) -> None:
        missing = self.missing()
        if missing:
            raise ConfigError(
                f"Circuit artifacts not found: {', '.join(missing)} "
                f"(run circuits/setup.sh first)",
                code=ErrorCodes.ARTIFACT_MISSING,
                details={
                    "missing": missing,
                    "wasm": str(self.wasm),
                    "zkey": str(self.zkey),
                    "vkey": str(self.vkey),
                },
            )


class SnarkjsProofEngine:
    """
    Groth16 via the snarkjs command line.

    fullprove:  snarkjs groth16 fullprove input.json circuit.wasm circuit.zkey proof.json public.json
    verify:     snarkjs groth16 verify vkey.json public.json proof.json   (exit 0 == valid)
    """

    def __init__(
        self,
        artifacts: CircuitArtifacts,
        *,
        snarkjs_bin: str = "snarkjs",
        timeout_s: float = 300.0,
    ) -> None:
        self.artifacts = artifacts
        self.snarkjs_bin = snarkjs_bin
        self.timeout_s = timeout_s

    def _binary(self) -> str:
        resolved = shutil.which(self.snarkjs_bin)
        if resolved is None:
            raise ConfigError(
                f"snarkjs executable not found: {self.snarkjs_bin}",
                details={"snarkjs_bin": self.snarkjs_bin},
            )
        return resolved

    def _run(self, args: list[str], *, action: str) -> subprocess.CompletedProcess:
        cmd = [self._binary(), *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            raise ProofError(
                f"snarkjs {action} timed out after {self.timeout_s}s",
                retryable=True,
                details={"timeout_s": self.timeout_s},
            ) from e
        except OSError as e:
            raise ProofError(f"snarkjs {action} could not start: {e}", retryable=True) from e

    def prove(self, circuit_input: dict[str, str]) -> tuple[dict[str, Any], list[str]]:
        self.artifacts.require()
        with tempfile.TemporaryDirectory(prefix="veris-prove-") as tmp:
            tmp_path = Path(tmp)
            input_file = tmp_path / "input.json"
            proof_file = tmp_path / "proof.json"
            public_file = tmp_path / "public.json"
            input_file.write_text(json.dumps(circuit_input))

            result = self._run(
                [
                    "groth16", "fullprove",
                    str(input_file),
                    str(self.artifacts.wasm),
                    str(self.artifacts.zkey),
                    str(proof_file),
                    str(public_file),
                ],
                action="fullprove",
            )
            if result.returncode != 0:
                raise ProofError(
                    f"snarkjs fullprove failed (exit {result.returncode})",
                    retryable=True,
                    details={"stderr": result.stderr.strip()[-2000:]},
                )

            try:
                proof = json.loads(proof_file.read_text())
                public_signals = [str(s) for s in json.loads(public_file.read_text())]
            except (OSError, ValueError) as e:
                raise ProofError(f"snarkjs produced unreadable output: {e}", retryable=True) from e

        return proof, public_signals

    def verify(self, proof: dict[str, Any], public_signals: list[str]) -> bool:
        self.artifacts.require()
        with tempfile.TemporaryDirectory(prefix="veris-verify-") as tmp:
            tmp_path = Path(tmp)
            proof_file = tmp_path / "proof.json"
            public_file = tmp_path / "public.json"
            proof_file.write_text(json.dumps(proof))
            public_file.write_text(json.dumps(public_signals))

            result = self._run(
                ["groth16", "verify", str(self.artifacts.vkey), str(public_file), str(proof_file)],
                action="verify",
            )
        if result.returncode != 0:
            logger.warning(f"snarkjs verify rejected proof: {result.stdout.strip()[-500:]}")
            return False
        return True


def build_engine(
    wasm_path: str,
    zkey_path: str,
    vkey_path: str,
    *,
    snarkjs_bin: str = "snarkjs",
    timeout_s: float = 300.0,
) -> SnarkjsProofEngine:
    return SnarkjsProofEngine(
        CircuitArtifacts.from_paths(wasm_path, zkey_path, vkey_path),
        snarkjs_bin=snarkjs_bin,
        timeout_s=timeout_s,
    )
