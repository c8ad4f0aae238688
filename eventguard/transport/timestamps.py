"""Timestamp helpers for signed webhook headers."""

from __future__ import annotations

from datetime import datetime, timezone


class TimestampError(ValueError):
    """Raised when timestamps are malformed or outside the permitted tolerance."""


def parse_unix_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    try:
        seconds = int(value)
    except ValueError as exc:
        raise TimestampError("timestamp is not an integer") from exc
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def assert_within_tolerance(
    timestamp: str, *, tolerance_seconds: int, now: datetime | None = None
) -> datetime:
    """Validate a unix-seconds timestamp and ensure it is within the tolerance."""
    dt = parse_unix_timestamp(timestamp)
    if tolerance_seconds <= 0:
        return dt
    ref = now or datetime.now(timezone.utc)
    delta = abs((ref - dt).total_seconds())
    if delta > tolerance_seconds:
        raise TimestampError(
            f"timestamp skew {delta:.0f}s exceeds tolerance {tolerance_seconds}s"
        )
    return dt
