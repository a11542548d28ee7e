"""
Price Aggregator

Concurrent multi-source fetch, median consensus and outlier rejection.
"""

from .aggregator import PriceAggregator, deviation_bps, parse_override
from .sources import PriceSource, default_sources

__all__ = [
    "PriceAggregator",
    "PriceSource",
    "default_sources",
    "deviation_bps",
    "parse_override",
]
