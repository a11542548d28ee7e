"""
Module 01 - Schemas & Canonicalization
File: canonical.py

Archive payloads are hashed into a seven-entry checksum set and referenced
on-chain by name, so the bytes written for a record must be identical on
every run and every host:

    - keys sorted, no insignificant whitespace, UTF-8 output
    - None values dropped (absent and null are the same record)
    - datetimes in UTC as 2026-01-27T21:35:00Z
    - bytes as 0x-prefixed lowercase hex
    - NaN and Infinity rejected
"""

import json
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .errors import CanonicalizationException

_SEPARATORS = (",", ":")


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def format_datetime_canonical(dt: datetime) -> str:
    utc = ensure_utc(dt)
    pattern = "%Y-%m-%dT%H:%M:%SZ" if utc.microsecond == 0 else "%Y-%m-%dT%H:%M:%S.%fZ"
    return utc.strftime(pattern)


def _reject(message: str, path: str, **details: Any) -> CanonicalizationException:
    return CanonicalizationException(message=message, details={"path": path or "$", **details})


def canonicalize_value(value: Any, path: str = "") -> Any:
    """
    Reduce value to plain JSON types following the rules above.

    Raises:
        CanonicalizationException: non-finite float or unsupported type at path
    """
    # bool is an int subclass; both pass through unchanged
    if value is None or isinstance(value, (bool, int, str)):
        return value

    if isinstance(value, float):
        if math.isfinite(value):
            return value
        raise _reject(f"Non-finite float value encountered: {value}", path, value=str(value))

    if isinstance(value, datetime):
        return format_datetime_canonical(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, BaseModel):
        return canonicalize_value(value.model_dump(mode="json", exclude_none=True), path)

    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if item is not None:
                out[str(key)] = canonicalize_value(item, f"{path}.{key}" if path else str(key))
        return out

    if isinstance(value, (list, tuple)):
        return [canonicalize_value(item, f"{path}[{i}]") for i, item in enumerate(value)]

    raise _reject(
        f"Cannot canonicalize value of type {type(value).__name__}",
        path,
        type=type(value).__name__,
    )


def dumps_canonical(obj: Any) -> str:
    """
    Example:
        >>> dumps_canonical({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    plain = canonicalize_value(obj)
    try:
        return json.dumps(plain, sort_keys=True, separators=_SEPARATORS, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise CanonicalizationException(
            message=f"Failed to serialize to canonical JSON: {e}",
            details={"type": type(obj).__name__},
        ) from e


def dumps_canonical_bytes(obj: Any) -> bytes:
    """The archive payload format."""
    return dumps_canonical(obj).encode("utf-8")
