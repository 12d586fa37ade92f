# app/services/attendance_calculator.py
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from app.schemas.attendance import MeetingInfo

logger = logging.getLogger(__name__)

_MS_PER_MINUTE = 60_000


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves rounded up (JavaScript
    `Math.round` semantics), unlike Python's banker's rounding.
    """
    return int(math.floor(value + 0.5))


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp-like value and normalize it to aware UTC.

    Accepted inputs
    ---------------
    - datetime (naive values are assumed to be UTC)
    - ISO-8601 string, with or without a trailing 'Z'
    - int/float epoch milliseconds

    Returns None if the value is missing or cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            logger.warning("Ignoring non-finite timestamp %r", value)
            return None
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("Ignoring out-of-range epoch timestamp %r", value)
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Could not parse timestamp %r", value)
            return None
    else:
        logger.warning("Unsupported timestamp type %s", type(value).__name__)
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _minutes_between(start: Any, end: Any, now: Optional[datetime]) -> int:
    start_dt = parse_timestamp(start)
    if start_dt is None:
        return 0

    # A missing end means "still running": measure up to now.
    if end is None or end == "":
        end_dt = now or utcnow()
    else:
        end_dt = parse_timestamp(end)
        if end_dt is None:
            return 0

    delta_ms = (end_dt - start_dt).total_seconds() * 1000.0
    return max(round_half_up(delta_ms / _MS_PER_MINUTE), 0)


def session_duration(join: Any, leave: Any = None, now: Optional[datetime] = None) -> int:
    """
    Minutes between `join` and `leave` (or now when `leave` is missing).

    Never raises: an unparseable timestamp on either side yields 0, and a
    leave before the join is clamped to 0.
    """
    return _minutes_between(join, leave, now)


def meeting_duration_between(
    start: Any,
    end: Any = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Minutes between meeting start and end (or now for an ongoing meeting).
    """
    return _minutes_between(start, end, now)


def _explicit_duration(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value == 0:
        return None
    return value


def resolve_meeting_duration(
    info: Optional[MeetingInfo],
    now: Optional[datetime] = None,
) -> float:
    """
    Resolve the meeting length in minutes from whichever fields are present.

    Priority (first applicable wins)
    --------------------------------
    1) explicit numeric `duration`
    2) `start_time` + `end_time`
    3) `started_at` + `ended_at`
    4) a start only => meeting presumed ongoing, duration up to now
    5) nothing => 0
    """
    if info is None:
        return 0

    explicit = _explicit_duration(info.duration)
    if explicit is not None:
        return explicit

    if info.start_time and info.end_time:
        return meeting_duration_between(info.start_time, info.end_time, now)

    if info.started_at and info.ended_at:
        return meeting_duration_between(info.started_at, info.ended_at, now)

    start = info.start_time or info.started_at
    if start:
        return meeting_duration_between(start, None, now)

    return 0


def attendance_percentage(
    total_duration: float,
    meeting_duration: float,
    is_active: bool = False,
) -> int:
    """
    Share of the meeting attended, as an integer in [0, 100].

    - no attendance and not active      => 0
    - unknown/zero meeting length        => 100 if active else 0
    - active but no elapsed time yet     => 100 (presence confirmed)
    - otherwise round(total / meeting * 100), capped at 100
    """
    if not total_duration and not is_active:
        return 0
    if not meeting_duration or meeting_duration <= 0:
        return 100 if is_active else 0
    if is_active and (not total_duration or total_duration <= 0):
        return 100

    ratio = min(total_duration / meeting_duration, 1.0)
    return min(max(round_half_up(ratio * 100), 0), 100)
