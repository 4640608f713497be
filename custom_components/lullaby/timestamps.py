"""
Timestamp normalization.

Every component computes against canonical epoch milliseconds. Stored and
pushed timestamps arrive as epoch seconds, epoch milliseconds, numeric strings,
ISO-8601 strings, datetimes or Firestore wire timestamps; normalize_timestamp()
maps each recognised shape to an int and degrades anything else to "now".

No HA entity or network dependencies; only homeassistant.util.dt for the
configured local time zone.
"""
from __future__ import annotations

import logging
import math
import time
from datetime import date, datetime, timezone
from functools import singledispatch

from google.protobuf.timestamp_pb2 import Timestamp
from homeassistant.util import dt as dt_util

from .const import SECONDS_THRESHOLD

_LOGGER = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as canonical epoch milliseconds."""
    return int(time.time() * 1000)


def _from_number(value: float) -> int:
    if value < SECONDS_THRESHOLD:
        return int(value * 1000)
    return int(value)


@singledispatch
def normalize_timestamp(value) -> int:
    """
    Convert any supported timestamp shape into epoch milliseconds.

    Unrecognised shapes fall back to the current time; this never raises.
    """
    _LOGGER.debug("Unsupported timestamp type %s, using current time", type(value).__name__)
    return now_ms()


@normalize_timestamp.register(type(None))
def _(value: None) -> int:
    return now_ms()


@normalize_timestamp.register(bool)
def _(value: bool) -> int:
    return now_ms()


@normalize_timestamp.register(int)
def _(value: int) -> int:
    return _from_number(value)


@normalize_timestamp.register(float)
def _(value: float) -> int:
    if not math.isfinite(value):
        return now_ms()
    return _from_number(value)


@normalize_timestamp.register(str)
def _(value: str) -> int:
    text = value.strip()
    try:
        return _from_number(int(text))
    except ValueError:
        pass

    parsed = dt_util.parse_datetime(text)
    if parsed is None:
        _LOGGER.debug("Invalid timestamp string %r, using current time", value)
        return now_ms()
    return normalize_timestamp(parsed)


@normalize_timestamp.register(datetime)
def _(value: datetime) -> int:
    try:
        return int(dt_util.as_utc(value).timestamp() * 1000)
    except (OverflowError, OSError, ValueError):
        return now_ms()


@normalize_timestamp.register(date)
def _(value: date) -> int:
    return int(dt_util.start_of_local_day(value).timestamp() * 1000)


@normalize_timestamp.register(Timestamp)
def _(value: Timestamp) -> int:
    return value.ToMilliseconds()


def format_timestamp(value) -> str:
    """ISO-8601 (UTC) rendering of any supported timestamp shape."""
    millis = normalize_timestamp(value)
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


def format_time_ago(timestamp_ms: int | None, now: int | None = None) -> str | None:
    """Human "time ago" label for display; None when there is no timestamp."""
    if timestamp_ms is None:
        return None
    if now is None:
        now = now_ms()

    minutes = max(0, now - timestamp_ms) // 60_000
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"
