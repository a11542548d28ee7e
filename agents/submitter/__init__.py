"""
Chain Submitter

RPC failover, calldata formatting and bounded-retry submission of proofs.
"""

from .calldata import ORACLE_ABI, SolidityCallArgs, build_call_args, format_proof
from .endpoints import RpcEndpointPool, default_web3_factory
from .submitter import ChainSubmitter, OnChainPrice

__all__ = [
    "ORACLE_ABI",
    "ChainSubmitter",
    "OnChainPrice",
    "RpcEndpointPool",
    "SolidityCallArgs",
    "build_call_args",
    "default_web3_factory",
    "format_proof",
]
