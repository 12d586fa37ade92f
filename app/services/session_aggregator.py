# app/services/session_aggregator.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from app.schemas.attendance import ParticipantRecord, SessionRecord
from app.services.attendance_calculator import (
    parse_timestamp,
    round_half_up,
    session_duration,
    utcnow,
)


@dataclass
class SessionAggregate:
    sessions: List[SessionRecord] = field(default_factory=list)
    total_session_duration: int = 0
    is_active: bool = False


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def session_from_mapping(raw: Mapping[str, Any]) -> SessionRecord:
    """
    Build a SessionRecord from either camelCase or snake_case keys.
    """
    return SessionRecord(
        join_time=_first(raw, "joinTime", "join_time"),
        leave_time=_first(raw, "leaveTime", "leave_time"),
        is_active=bool(raw.get("isActive") or raw.get("is_active")),
    )


def extract_sessions(raw: Mapping[str, Any]) -> List[SessionRecord]:
    """
    Sessions carried by a raw participant payload.

    Rules
    -----
    - A `sessions` array is used verbatim.
    - Otherwise a single session is synthesised from the flat
      joinTime/leaveTime (or join_time/leave_time) fields of older payloads.
    - No sessions and no join time => empty list.
    """
    sessions = raw.get("sessions")
    if isinstance(sessions, list):
        return [session_from_mapping(s) for s in sessions if isinstance(s, Mapping)]

    if _first(raw, "joinTime", "join_time") is not None:
        return [session_from_mapping(raw)]

    return []


def is_session_open(session: SessionRecord) -> bool:
    return bool(session.is_active) or session.leave_time in (None, "")


def _merged_duration(sessions: Iterable[SessionRecord], now: datetime) -> int:
    """
    Sum of minutes covered by the union of all session intervals, so that
    overlapping sessions (e.g. two devices) are only counted once.
    """
    intervals = []
    for s in sessions:
        start = parse_timestamp(s.join_time)
        if start is None:
            continue
        if s.leave_time in (None, ""):
            end = now
        else:
            end = parse_timestamp(s.leave_time)
            if end is None:
                continue
        if end > start:
            intervals.append((start, end))

    intervals.sort()
    total_seconds = 0.0
    cur_start = cur_end = None
    for start, end in intervals:
        if cur_end is None or start > cur_end:
            if cur_end is not None:
                total_seconds += (cur_end - cur_start).total_seconds()
            cur_start, cur_end = start, end
        else:
            cur_end = max(cur_end, end)
    if cur_end is not None:
        total_seconds += (cur_end - cur_start).total_seconds()

    return max(round_half_up(total_seconds / 60.0), 0)


def aggregate_sessions(
    sessions: Iterable[SessionRecord],
    *,
    now: Optional[datetime] = None,
    merge_overlaps: bool = False,
) -> SessionAggregate:
    """
    Combine all join/leave cycles of one participant.

    - is_active: any session without a leave time (or flagged active)
    - total_session_duration: per-session minutes summed, so rejoin cycles
      accumulate. With merge_overlaps=True, overlapping intervals are
      unioned first.
    """
    sessions = list(sessions)
    now = now or utcnow()

    if merge_overlaps:
        total = _merged_duration(sessions, now)
    else:
        total = sum(session_duration(s.join_time, s.leave_time, now) for s in sessions)

    return SessionAggregate(
        sessions=sessions,
        total_session_duration=total,
        is_active=any(is_session_open(s) for s in sessions),
    )


def aggregate(
    participant: ParticipantRecord | Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
    merge_overlaps: bool = False,
) -> SessionAggregate:
    """
    Aggregate a canonical record or a raw participant payload.
    """
    if isinstance(participant, ParticipantRecord):
        result = aggregate_sessions(participant.sessions, now=now, merge_overlaps=merge_overlaps)
        if participant.is_active:
            result.is_active = True
        return result

    result = aggregate_sessions(
        extract_sessions(participant), now=now, merge_overlaps=merge_overlaps
    )
    if participant.get("isActive") is True or participant.get("is_active") is True:
        result.is_active = True
    return result
