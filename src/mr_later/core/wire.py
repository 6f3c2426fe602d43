# src/mr_later/core/wire.py

"""JSON wire helpers: timestamps travel as ISO-8601 strings, always timezone-aware in memory."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def parse_ts(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, str) and raw.strip():
        s = raw.strip()
        # fromisoformat handles a trailing 'Z' only on newer Pythons.
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    else:
        raise ValueError(f"Not a timestamp: {raw!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def parse_ts_or_none(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    return parse_ts(raw)


def format_ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


def now_utc() -> datetime:
    return datetime.now(UTC)
