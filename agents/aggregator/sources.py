"""
Price Sources

A source is data: a name, a URL and a dotted extraction path into the JSON
response. Adding a venue never requires code.

Path syntax:
    "price"            -> payload["price"]
    "data.amount"      -> payload["data"]["amount"]
    "result.*.c.0"     -> first value of payload["result"], then ["c"][0]
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from core.http import HttpClient, HttpError
from core.schemas.errors import SourceFetchError
from core.schemas.oracle import PriceObservation


WILDCARD = "*"


@dataclass(frozen=True)
class PriceSource:
    """One untrusted price endpoint."""
    name: str
    url: str
    path: str

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "PriceSource":
        return cls(name=data["name"], url=data["url"], path=data["path"])

    def extract(self, payload: Any) -> float:
        """
        Walk the extraction path and coerce the leaf to a positive float.

        Raises:
            SourceFetchError: path missing, leaf not numeric, or not a positive finite number
        """
        node = payload
        for segment in self.path.split("."):
            node = _step(node, segment, self.name)

        try:
            value = float(node)
        except (TypeError, ValueError):
            raise SourceFetchError(f"non-numeric value {node!r}", source_name=self.name)

        if not math.isfinite(value) or value <= 0:
            raise SourceFetchError(f"invalid value {value}", source_name=self.name)
        return value

    def fetch(self, http: HttpClient, timeout: Optional[float] = None) -> float:
        """Fetch and extract. Raises SourceFetchError on any failure."""
        try:
            response = http.get(self.url, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except HttpError as e:
            raise SourceFetchError(str(e), source_name=self.name) from e
        except ValueError as e:
            raise SourceFetchError(f"malformed JSON: {e}", source_name=self.name) from e
        return self.extract(payload)

    def observe(self, http: HttpClient, timeout: Optional[float] = None) -> PriceObservation:
        """Fetch as an observation. Never raises for source-side failures."""
        try:
            value = self.fetch(http, timeout)
        except SourceFetchError as e:
            return PriceObservation.failed(self.name, e.message)
        return PriceObservation(source_name=self.name, value=value, ok=True)


def _step(node: Any, segment: str, source_name: str) -> Any:
    if segment == WILDCARD:
        if isinstance(node, dict) and node:
            return next(iter(node.values()))
        raise SourceFetchError("wildcard on empty or non-object value", source_name=source_name)

    if isinstance(node, dict):
        if segment not in node:
            raise SourceFetchError(f"missing field {segment!r}", source_name=source_name)
        return node[segment]

    if isinstance(node, list):
        try:
            return node[int(segment)]
        except (ValueError, IndexError):
            raise SourceFetchError(f"bad index {segment!r}", source_name=source_name)

    raise SourceFetchError(f"cannot descend into {type(node).__name__}", source_name=source_name)


def default_sources(config_sources: list[dict[str, str]]) -> list[PriceSource]:
    return [PriceSource.from_dict(s) for s in config_sources]
