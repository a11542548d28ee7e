"""
Commitment Prover

Salted commitment, Groth16 proof through a pluggable engine, and the local
verification gate.
"""

from .engine import CircuitArtifacts, ProofEngine, SnarkjsProofEngine, build_engine
from .prover import CommitmentProver

__all__ = [
    "CircuitArtifacts",
    "CommitmentProver",
    "ProofEngine",
    "SnarkjsProofEngine",
    "build_engine",
]
