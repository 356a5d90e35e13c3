from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime | None) -> str | None:
    """Normalize to second-precision UTC RFC 3339 text, e.g. ``2024-01-31T09:15:00Z``."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def seconds_until(value: str | None, now: datetime | None = None) -> float:
    due = parse_iso(value)
    if due is None:
        return 0.0
    remaining = (due - (now or utc_now())) / timedelta(seconds=1)
    return max(remaining, 0.0)
