"""Closed time window shared by every collector and the aggregator."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Union

from .config import DEFAULT_LOOKBACK_DAYS
from .errors import InvalidWindow

TimestampLike = Union[str, dt.datetime, dt.date, None]


def parse_timestamp(raw: TimestampLike) -> Optional[dt.datetime]:
    """Parse an ISO-8601 value into an aware UTC datetime; None when unparsable."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, dt.datetime):
        value = raw
    elif isinstance(raw, dt.date):
        value = dt.datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            value = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def format_timestamp(value: Optional[dt.datetime]) -> Optional[str]:
    """Render a datetime the way GitHub does (second precision, trailing Z)."""
    if value is None:
        return None
    return value.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive [since, until] range; both bounds are aware UTC datetimes."""

    since: dt.datetime
    until: dt.datetime

    def __post_init__(self) -> None:
        if self.since > self.until:
            raise InvalidWindow(
                f"since ({format_timestamp(self.since)}) is after until ({format_timestamp(self.until)})"
            )

    def contains(self, value: Optional[dt.datetime]) -> bool:
        """True when value is inside the window; unknown timestamps never are."""
        if value is None:
            return False
        return self.since <= value <= self.until

    def is_before(self, value: Optional[dt.datetime]) -> bool:
        """True when value is strictly older than since."""
        return value is not None and value < self.since

    def to_dict(self) -> dict:
        return {"start": format_timestamp(self.since), "end": format_timestamp(self.until)}


def build_window(since: TimestampLike = None,
                 until: TimestampLike = None,
                 *,
                 now: Optional[dt.datetime] = None) -> TimeWindow:
    """Resolve optional bounds into a TimeWindow, defaulting to the last year.

    Raises InvalidWindow when a supplied bound cannot be parsed or when
    since falls after until.
    """
    now = parse_timestamp(now) if now is not None else utc_now()

    if until is None or until == "":
        until_ts = now
    else:
        until_ts = parse_timestamp(until)
        if until_ts is None:
            raise InvalidWindow(f"until is not an ISO-8601 timestamp: {until!r}")

    if since is None or since == "":
        since_ts = now - dt.timedelta(days=DEFAULT_LOOKBACK_DAYS)
    else:
        since_ts = parse_timestamp(since)
        if since_ts is None:
            raise InvalidWindow(f"since is not an ISO-8601 timestamp: {since!r}")

    return TimeWindow(since=since_ts, until=until_ts)


__all__ = [
    "TimeWindow",
    "build_window",
    "parse_timestamp",
    "format_timestamp",
    "utc_now",
]
