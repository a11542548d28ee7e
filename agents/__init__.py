"""
Oracle Components

The four components composed by the orchestrator:
- PriceAggregator: multi-source consensus price
- CommitmentProver: salted commitment with a locally verified Groth16 proof
- ChainSubmitter: RPC failover and bounded-retry submission
- ProofArchive: local-first, remote best-effort proof storage
"""

from agents.base import AgentCapability, BaseAgent
from agents.context import AgentContext, Clock, FrozenClock, RealClock

__all__ = [
    "AgentCapability",
    "AgentContext",
    "BaseAgent",
    "Clock",
    "FrozenClock",
    "RealClock",
]
