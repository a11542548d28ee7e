"""
Oracle contract ABI and calldata formatting.

The verifier contract expects the G2 point pi_b with the two coordinates of
each Fp2 element swapped relative to snarkjs' JSON output. The swap below
matches what the deployed Groth16 verifier was generated against and must
stay byte-for-byte as is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.crypto import from_hex
from core.schemas.errors import ErrorCodes, ProofError
from core.schemas.oracle import ProofBundle


ORACLE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "submitPriceWithProof",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "price", "type": "uint256"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "commitment", "type": "bytes32"},
            {"name": "proof_a", "type": "uint256[2]"},
            {"name": "proof_b", "type": "uint256[2][2]"},
            {"name": "proof_c", "type": "uint256[2]"},
            {"name": "greenfieldRef", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "latestPrice",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "price", "type": "uint256"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "commitment", "type": "bytes32"},
            {"name": "verified", "type": "bool"},
            {"name": "zkVerified", "type": "bool"},
        ],
    },
]


@dataclass(frozen=True)
class SolidityCallArgs:
    """Arguments of submitPriceWithProof in declaration order."""
    price: int
    timestamp: int
    commitment: bytes
    proof_a: tuple[int, int]
    proof_b: tuple[tuple[int, int], tuple[int, int]]
    proof_c: tuple[int, int]
    archive_ref: bytes

    def as_args(self) -> tuple:
        return (
            self.price,
            self.timestamp,
            self.commitment,
            list(self.proof_a),
            [list(row) for row in self.proof_b],
            list(self.proof_c),
            self.archive_ref,
        )


def format_proof(proof: dict[str, Any]) -> tuple[
    tuple[int, int],
    tuple[tuple[int, int], tuple[int, int]],
    tuple[int, int],
]:
    """
    Convert a snarkjs Groth16 proof object to (proof_a, proof_b, proof_c).

    Projective coordinates beyond the first two are dropped.
    """
    try:
        pi_a = proof["pi_a"]
        pi_b = proof["pi_b"]
        pi_c = proof["pi_c"]
        proof_a = (int(pi_a[0]), int(pi_a[1]))
        proof_b = (
            (int(pi_b[0][1]), int(pi_b[0][0])),
            (int(pi_b[1][1]), int(pi_b[1][0])),
        )
        proof_c = (int(pi_c[0]), int(pi_c[1]))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProofError(
            f"malformed proof object: {e}",
            code=ErrorCodes.PROOF_GENERATION_FAILED,
        ) from e
    return proof_a, proof_b, proof_c


def build_call_args(bundle: ProofBundle, archive_ref: str) -> SolidityCallArgs:
    """Assemble submitPriceWithProof arguments from a verified bundle."""
    proof_a, proof_b, proof_c = format_proof(bundle.proof.proof)
    ref = from_hex(archive_ref)
    if len(ref) != 32:
        raise ValueError(f"archive reference must be 32 bytes, got {len(ref)}")
    return SolidityCallArgs(
        price=bundle.witness.price_fixed_point,
        timestamp=bundle.witness.timestamp,
        commitment=from_hex(bundle.commitment),
        proof_a=proof_a,
        proof_b=proof_b,
        proof_c=proof_c,
        archive_ref=ref,
    )
