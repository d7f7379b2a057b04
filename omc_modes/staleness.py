"""Staleness classification for persisted mode records."""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def utc_now_iso() -> str:
    """Current UTC time as ISO8601 with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def now_ms() -> int:
    return to_epoch_ms(datetime.now(timezone.utc))


def to_epoch_ms(dt: datetime) -> int:
    """Whole milliseconds since the epoch; naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - EPOCH) // _ONE_MS


def parse_timestamp_ms(value: Any) -> int:
    """Parse an ISO8601 string (or epoch number) into epoch milliseconds.

    Returns:
        Milliseconds since the epoch, or 0 when the value is missing/invalid
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else 0
    if not isinstance(value, str) or not value.strip():
        return 0
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return max(to_epoch_ms(datetime.fromisoformat(text)), 0)
    except ValueError:
        return 0


def most_recent_ms(state: Any) -> int:
    """max(last_checked_at, started_at) in epoch ms, 0 if neither is valid."""
    if state is None:
        return 0
    if isinstance(state, Mapping):
        last_checked = state.get("last_checked_at")
        started = state.get("started_at")
    else:
        last_checked = getattr(state, "last_checked_at", None)
        started = getattr(state, "started_at", None)
    return max(parse_timestamp_ms(last_checked), parse_timestamp_ms(started))


def is_stale(state: Any, threshold_ms: int, now: Optional[int] = None) -> bool:
    """Classify a state record as stale.

    A record without any valid timestamp is always stale. Otherwise it is
    stale when more than threshold_ms elapsed since its most recent update.

    Args:
        state: ModeState or raw dict with `started_at`/`last_checked_at`
        threshold_ms: Allowed age in milliseconds
        now: Current time in epoch ms (defaults to the wall clock)

    Returns:
        True if the record must be treated as inactive
    """
    latest = most_recent_ms(state)
    if latest == 0:
        return True
    if now is None:
        now = now_ms()
    return now - latest > threshold_ms
