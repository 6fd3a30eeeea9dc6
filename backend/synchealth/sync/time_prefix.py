"""Timestamp prefixes for the sync trie.

Sync ids start with the hub timestamp (seconds since 2021-01-01T00:00:00Z)
written as a zero-padded decimal string, so byte order on the trie equals
chronological order.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from synchealth.core.errors import InvalidTimeError
from synchealth.sync.types import TimeWindow

HUB_EPOCH = datetime(2021, 1, 1, tzinfo=timezone.utc)
TIMESTAMP_LENGTH = 10
MAX_HUB_TIME = 2**32 - 1

_TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2}):(\d{1,2})$")


def to_hub_time(instant: datetime) -> int:
    """Convert a datetime into whole seconds since the hub epoch."""

    seconds = round(instant.timestamp() - HUB_EPOCH.timestamp())
    if seconds < 0:
        raise InvalidTimeError(f"{instant.isoformat()} is before the hub epoch.")
    if seconds > MAX_HUB_TIME:
        raise InvalidTimeError(f"{instant.isoformat()} is too far in the future.")
    return seconds


def from_hub_time(seconds: int) -> datetime:
    """Convert hub seconds back into a UTC datetime."""

    return HUB_EPOCH + timedelta(seconds=seconds)


def encode_hub_time(seconds: int) -> bytes:
    """Return the fixed-width trie prefix for a hub timestamp."""

    if seconds < 0 or seconds > MAX_HUB_TIME:
        raise InvalidTimeError(f"Hub time {seconds} is out of range.")
    return str(seconds).zfill(TIMESTAMP_LENGTH).encode("ascii")


def encode(instant: datetime) -> bytes:
    """Return the fixed-width trie prefix for a datetime."""

    return encode_hub_time(to_hub_time(instant))


def common_prefix(first: bytes, second: bytes) -> bytes:
    """Return the longest shared leading byte sequence."""

    length = 0
    for left, right in zip(first, second):
        if left != right:
            break
        length += 1
    return first[:length]


def is_prefix(value: bytes, prefix: bytes) -> bool:
    """Return True when `prefix` is a leading slice of `value`."""

    return value.startswith(prefix)


def parse_time_of_day(text: str, now: datetime) -> datetime:
    """Resolve an HH:MM:SS wall-clock time against the date of `now`."""

    match = _TIME_OF_DAY_PATTERN.match((text or "").strip())
    if not match:
        raise InvalidTimeError(f"Unable to parse time {text!r}, must specify as HH:MM:SS.")
    hours, minutes, seconds = (int(part) for part in match.groups())
    if hours > 23 or minutes > 59 or seconds > 59:
        raise InvalidTimeError(f"Time {text!r} is out of range.")
    return now.replace(hour=hours, minute=minutes, second=seconds, microsecond=0)


def resolve_window(start_text: str, stop_text: str, now: datetime | None = None) -> TimeWindow:
    """Build today's time window from two wall-clock times."""

    now = now or datetime.now().astimezone()
    start = parse_time_of_day(start_text, now)
    stop = parse_time_of_day(stop_text, now)
    window = TimeWindow(start=start, stop=stop)
    # Both bounds must be representable before any remote call is made.
    to_hub_time(window.start)
    to_hub_time(window.stop)
    return window
