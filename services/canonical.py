from __future__ import annotations

import json
from datetime import UTC, date, datetime
from typing import Any


def canonical_json_bytes(payload: Any) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality over JSON values; unlike ==, True and 1 differ."""
    if left is right:
        return True
    return canonical_json_bytes(left) == canonical_json_bytes(right)


def compact_json(payload: Any) -> str:
    """Key-order preserving compact JSON, byte-compatible with JSON.stringify."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def parse_execution_date(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
