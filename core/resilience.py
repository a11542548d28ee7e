"""
Bounded retry with exponential backoff.

Only OracleException instances flagged retryable are retried; everything
else propagates on the first failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from core.schemas.errors import OracleException

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry schedule: delay after attempt n (0-based) is
    initial_delay * exponential_base ** n, capped at max_delay.

    With the defaults (3 attempts, 2s) the waits are 2s then 4s.
    """
    max_attempts: int = 3
    initial_delay: float = 2.0
    exponential_base: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def calculate_delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt + 1 >= self.max_attempts:
            return False
        return isinstance(error, OracleException) and error.retryable

    def call(
        self,
        fn: Callable[[], T],
        *,
        label: str = "operation",
        sleep: Optional[Callable[[float], None]] = None,
    ) -> T:
        """Run fn until it succeeds, a non-retryable error occurs, or attempts run out."""
        sleep = sleep or time.sleep
        attempt = 0
        while True:
            try:
                return fn()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"{label} attempt {attempt + 1}/{self.max_attempts} failed: {e}; "
                    f"retrying in {delay:.1f}s",
                    extra={"label": label, "attempt": attempt + 1},
                )
                sleep(delay)
                attempt += 1
