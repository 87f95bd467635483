"""Small parsing helpers shared by services."""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime


def safe_json_loads(raw: str | None):
    """Decode a JSON column, returning None for empty or corrupt values."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def load_id_list(raw: str | None) -> list[str]:
    """Decode a JSON-encoded list of ids; anything else reads as empty."""
    parsed = safe_json_loads(raw)
    if not isinstance(parsed, list):
        return []
    return [str(v) for v in parsed if v]


def dump_id_list(ids: list[str] | None) -> str | None:
    if ids is None:
        return None
    return json.dumps(list(ids))


def parse_categories(raw: str | None) -> list[str]:
    """Split a comma list into lowercase tokens, keeping order, dropping blanks and repeats."""
    if not raw:
        return []
    seen: list[str] = []
    for part in raw.split(","):
        token = part.strip().lower()
        if token and token not in seen:
            seen.append(token)
    return seen


def parse_coordinate(value) -> float | None:
    """Coerce a stored coordinate to a finite float, or None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def status_str(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None
