"""
Calldata Unit Tests
Tests for agents/submitter/calldata.py

Tests:
- G2 coordinate swap of pi_b
- Argument order of submitPriceWithProof
- Rejection of malformed proofs and references
"""
import pytest

from agents.submitter.calldata import ORACLE_ABI, build_call_args, format_proof
from core.crypto import from_hex, keccak_text
from core.schemas.errors import ProofError

SNARKJS_PROOF = {
    "pi_a": ["11", "12", "1"],
    "pi_b": [["21", "22"], ["23", "24"], ["1", "0"]],
    "pi_c": ["31", "32", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


class TestFormatProof:
    """Tests for format_proof()."""

    def test_pi_b_coordinates_swapped(self):
        """Each Fp2 element of pi_b is reversed; a and c are not."""
        a, b, c = format_proof(SNARKJS_PROOF)

        assert a == (11, 12)
        assert b == ((22, 21), (24, 23))
        assert c == (31, 32)

    def test_projective_coordinate_dropped(self):
        a, b, c = format_proof(SNARKJS_PROOF)
        assert len(a) == 2 and len(b) == 2 and len(c) == 2

    @pytest.mark.parametrize("broken", [
        {},
        {"pi_a": ["1"], "pi_b": [["1", "2"], ["3", "4"]], "pi_c": ["1", "2"]},
        {"pi_a": ["x", "2"], "pi_b": [["1", "2"], ["3", "4"]], "pi_c": ["1", "2"]},
    ])
    def test_malformed_proof(self, broken):
        with pytest.raises(ProofError):
            format_proof(broken)


class TestBuildCallArgs:
    """Tests for build_call_args()."""

    def test_argument_order(self, bundle):
        ref = keccak_text("veris-proof-1767225600-pending-17.json")

        args = build_call_args(bundle, ref).as_args()

        assert args[0] == bundle.witness.price_fixed_point
        assert args[1] == bundle.witness.timestamp
        assert args[2] == from_hex(bundle.commitment)
        assert len(args[2]) == 32
        assert isinstance(args[3], list) and len(args[3]) == 2
        assert args[4][0] == [int(bundle.proof.proof["pi_b"][0][1]), int(bundle.proof.proof["pi_b"][0][0])]
        assert args[6] == from_hex(ref)

    def test_reference_must_be_32_bytes(self, bundle):
        with pytest.raises(ValueError):
            build_call_args(bundle, "0x" + "ab" * 20)

    def test_abi_declares_oracle_functions(self):
        names = {entry["name"] for entry in ORACLE_ABI}
        assert names == {"submitPriceWithProof", "latestPrice"}

        submit = next(e for e in ORACLE_ABI if e["name"] == "submitPriceWithProof")
        assert [i["type"] for i in submit["inputs"]] == [
            "uint256", "uint256", "bytes32", "uint256[2]", "uint256[2][2]", "uint256[2]", "bytes32",
        ]
