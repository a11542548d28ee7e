"""
Agent Context

Dependencies handed to every component at construction:
- HTTP client for the price sources
- Runtime configuration
- Clock, frozen in tests so timestamps and archive names are predictable
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import RuntimeConfig
    from core.http import HttpClient


class Clock(Protocol):
    def now(self) -> datetime:
        """Current UTC time."""
        ...


class RealClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Returns the same instant until moved with advance()."""

    def __init__(self, frozen_time: Optional[datetime] = None) -> None:
        self._time = frozen_time or datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: float) -> None:
        self._time = self._time + timedelta(seconds=seconds)


def unix_seconds(clock: Clock) -> int:
    return int(clock.now().timestamp())


@dataclass
class AgentContext:
    """
    Usage:
        ctx = AgentContext.create(config)
        aggregator = PriceAggregator.from_context(ctx)
    """

    http: Optional["HttpClient"] = None
    config: Optional["RuntimeConfig"] = None
    clock: Clock = field(default_factory=RealClock)

    @classmethod
    def create(cls, config: "RuntimeConfig") -> "AgentContext":
        """Context with a live HTTP client and the real clock."""
        from core.http import HttpClient

        http = HttpClient(
            timeout=config.aggregator.fetch_timeout_s,
            user_agent=config.aggregator.user_agent,
        )
        return cls(http=http, config=config, clock=RealClock())

    @classmethod
    def create_minimal(cls, **kwargs) -> "AgentContext":
        """Context with no network clients (tests)."""
        return cls(**kwargs)
