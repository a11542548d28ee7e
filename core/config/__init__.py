"""
Runtime Configuration Module

Provides configuration loading and management for the oracle agent.
"""

from .runtime import (
    AgentLoopConfig,
    AggregatorConfig,
    ArchiveConfig,
    ChainConfig,
    ProverConfig,
    RuntimeConfig,
    parse_provider_list,
)

__all__ = [
    "AgentLoopConfig",
    "AggregatorConfig",
    "ArchiveConfig",
    "ChainConfig",
    "ProverConfig",
    "RuntimeConfig",
    "parse_provider_list",
]
