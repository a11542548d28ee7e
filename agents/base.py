"""
Agent Base Classes

Every component (aggregator, prover, submitter, archive) declares a name,
a version and its capabilities, and receives its collaborators at
construction. The health report lists them so an operator can tell which
build answered.
"""

from __future__ import annotations

from abc import ABC
from enum import Enum
from typing import Any


class AgentCapability(str, Enum):
    NETWORK = "network"        # HTTP price sources
    BLOCKCHAIN = "blockchain"  # reads or writes chain state
    PROVING = "proving"        # drives a proof engine
    STORAGE = "storage"        # persists artifacts


class BaseAgent(ABC):
    """Abstract base class for the oracle's components."""

    # Subclasses must define these
    _name: str
    _version: str
    _capabilities: set[AgentCapability]

    @property
    def name(self) -> str:
        return getattr(self, "_name", self.__class__.__name__)

    @property
    def version(self) -> str:
        # Must change whenever observable behavior changes
        return getattr(self, "_version", "v1")

    @property
    def capabilities(self) -> set[AgentCapability]:
        return getattr(self, "_capabilities", set())

    def describe(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "capabilities": sorted(c.value for c in self.capabilities),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, version={self.version!r})"
