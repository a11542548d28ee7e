"""
Price Aggregator

Fetches every configured source concurrently, rejects outliers against the
median and returns a consensus price only when enough sources agree.

A single compromised or stale source cannot move the result: it is either
outvoted by the median or filtered as an outlier.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor, wait
from statistics import median
from typing import Any, Optional, Sequence, TYPE_CHECKING

from agents.base import AgentCapability, BaseAgent
from core.http import HttpClient
from core.schemas.errors import AggregationError, ErrorCodes
from core.schemas.oracle import OVERRIDE_SOURCE, AggregationResult, PriceObservation

from .sources import PriceSource, default_sources

if TYPE_CHECKING:
    from agents.context import AgentContext

logger = logging.getLogger(__name__)


def deviation_bps(value: float, reference: float) -> int:
    """|value - reference| / reference in basis points, rounded half up."""
    return int(math.floor(abs(value - reference) / reference * 10_000 + 0.5))


def parse_override(override_price: Any) -> float:
    try:
        value = float(override_price)
    except (TypeError, ValueError):
        raise AggregationError(
            f"override price is not numeric: {override_price!r}",
            code=ErrorCodes.INVALID_OVERRIDE,
        )
    if not math.isfinite(value) or value <= 0:
        raise AggregationError(
            f"override price must be a positive number, got {value}",
            code=ErrorCodes.INVALID_OVERRIDE,
        )
    return value


class PriceAggregator(BaseAgent):
    """
    Multi-source median aggregation with outlier rejection.

    No retries happen here: a failed source is recorded as a failed
    observation and the quorum rules decide whether the cycle proceeds.
    """

    _name = "PriceAggregator"
    _version = "v1"
    _capabilities = {AgentCapability.NETWORK}

    def __init__(
        self,
        sources: Sequence[PriceSource],
        http: HttpClient,
        *,
        min_sources: int = 2,
        max_deviation_bps: int = 200,
        fetch_timeout_s: float = 5.0,
    ) -> None:
        super().__init__()
        if min_sources < 1:
            raise ValueError("min_sources must be >= 1")
        self.sources = list(sources)
        self.http = http
        self.min_sources = min_sources
        self.max_deviation_bps = max_deviation_bps
        self.fetch_timeout_s = fetch_timeout_s
        self._pool: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_context(cls, ctx: "AgentContext") -> "PriceAggregator":
        cfg = ctx.config.aggregator
        return cls(
            default_sources(cfg.sources),
            ctx.http,
            min_sources=cfg.min_sources,
            max_deviation_bps=cfg.max_deviation_bps,
            fetch_timeout_s=cfg.fetch_timeout_s,
        )

    def aggregate(self, override_price: Any = None) -> AggregationResult:
        """
        Produce a consensus price.

        Args:
            override_price: Operator-supplied price that bypasses all sources

        Raises:
            AggregationError: invalid override, too few responses, or too few
                sources within tolerance of the median
        """
        if override_price is not None:
            value = parse_override(override_price)
            logger.info(f"Using override price ${value:.2f}")
            return AggregationResult(
                consensus_price=value,
                observations=[PriceObservation(source_name=OVERRIDE_SOURCE, value=value, ok=True)],
                valid_count=1,
                spread_bps=0,
                is_override=True,
            )

        observations = self.fetch_all()
        for obs in observations:
            if obs.ok:
                logger.info(f"  {obs.source_name:<10} ${obs.value:.2f}")
            else:
                logger.warning(f"  {obs.source_name:<10} failed: {obs.error}")

        return self.reduce(observations)

    def _executor(self) -> ThreadPoolExecutor:
        # One pool for the aggregator's lifetime: worker threads, and the
        # per-thread HTTP sessions they hold, are reused across cycles
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=len(self.sources), thread_name_prefix="price-src"
            )
        return self._pool

    def fetch_all(self) -> list[PriceObservation]:
        """Fetch every source concurrently; results keep source order."""
        if not self.sources:
            return []

        pool = self._executor()
        futures: list[Future] = [
            pool.submit(src.observe, self.http, self.fetch_timeout_s)
            for src in self.sources
        ]
        # Grace period on top of the per-request timeout for DNS and body read
        wait(futures, timeout=self.fetch_timeout_s + 1.0)

        observations = []
        for src, fut in zip(self.sources, futures):
            if not fut.done():
                fut.cancel()
                observations.append(PriceObservation.failed(
                    src.name, f"timeout after {self.fetch_timeout_s}s",
                ))
                continue
            exc = fut.exception()
            if exc is not None:
                observations.append(PriceObservation.failed(src.name, str(exc)))
            else:
                observations.append(fut.result())
        return observations

    def close(self) -> None:
        """Stop the worker pool and close the HTTP sessions it opened."""
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
        self.http.close()

    def reduce(self, observations: list[PriceObservation]) -> AggregationResult:
        """Apply quorum and outlier rules to a completed set of observations."""
        successful = [o for o in observations if o.ok]
        if len(successful) < self.min_sources:
            raise AggregationError(
                f"insufficient sources responded: {len(successful)} of "
                f"{len(observations)}, need {self.min_sources}",
                code=ErrorCodes.QUORUM_NOT_MET,
                details={"responded": len(successful), "required": self.min_sources},
            )

        first_median = median([o.value for o in successful])
        valid: list[PriceObservation] = []
        outliers: list[PriceObservation] = []
        for obs in successful:
            dev = deviation_bps(obs.value, first_median)
            if dev > self.max_deviation_bps:
                logger.warning(
                    f"Outlier {obs.source_name}: ${obs.value:.2f} ({dev}bps off median)",
                    extra={"source": obs.source_name, "deviation_bps": dev},
                )
                outliers.append(obs)
            else:
                valid.append(obs)

        if len(valid) < self.min_sources:
            raise AggregationError(
                f"insufficient agreement, possible manipulation: {len(valid)} valid "
                f"sources after outlier filter, need {self.min_sources}",
                code=ErrorCodes.SOURCE_DISAGREEMENT,
                details={
                    "valid": len(valid),
                    "required": self.min_sources,
                    "outliers": [o.source_name for o in outliers],
                },
            )

        prices = [o.value for o in valid]
        consensus = median(prices)
        spread = max(deviation_bps(p, consensus) for p in prices)

        logger.info(f"Median: ${consensus:.2f} ({len(valid)} sources, spread {spread}bps)")
        return AggregationResult(
            consensus_price=consensus,
            observations=observations,
            valid_count=len(valid),
            outliers=outliers,
            spread_bps=spread,
            is_override=False,
        )
