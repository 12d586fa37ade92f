# app/services/payload_normalizer.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from app.schemas.attendance import (
    AttendancePayload,
    AuthenticatedUser,
    AuthenticationStats,
    MeetingInfo,
    ParticipantRecord,
    PayloadSource,
    StudentInfo,
)
from app.services.session_aggregator import extract_sessions, session_from_mapping

logger = logging.getLogger(__name__)

_ID_KEYS = ("participantId", "participant_id", "participant_user_id", "userId", "user_id", "id")
_NAME_KEYS = ("name", "participantName", "participant_name", "userName", "user_name", "displayName")
_EMAIL_KEYS = ("email", "userEmail", "user_email")


def _first(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def sanitize_attendance_payload(data: Any) -> AttendancePayload:
    """
    Normalize an arbitrary API response into a safe attendance payload.

    Rules
    -----
    - Non-mapping input (None, list, string, ...) => empty payload with
      statistics {"total": 0} and zeroed authentication stats.
    - `participants` is always a list; anything else becomes [] and
      non-dict entries are dropped.
    - Missing `statistics` => {"total": len(participants)}.
    - Missing `authenticationStats` => zero counts, with every participant
      counted as unauthenticated.
    - All other keys are preserved untouched.
    """
    if not isinstance(data, Mapping):
        return AttendancePayload()

    raw_participants = data.get("participants")
    participants: List[Dict[str, Any]] = (
        [p for p in raw_participants if isinstance(p, Mapping)]
        if isinstance(raw_participants, list)
        else []
    )

    statistics = data.get("statistics")
    if not isinstance(statistics, Mapping):
        statistics = {"total": len(participants)}

    auth_raw = data.get("authenticationStats")
    if auth_raw is None:
        auth_raw = data.get("authentication_stats")
    auth_stats = AuthenticationStats(unauthenticated_participants=len(participants))
    if isinstance(auth_raw, Mapping):
        try:
            auth_stats = AuthenticationStats.model_validate(auth_raw)
        except ValidationError:
            logger.warning("Discarding malformed authenticationStats: %r", auth_raw)

    extras = {
        k: v
        for k, v in data.items()
        if k not in ("participants", "statistics", "authenticationStats", "authentication_stats")
    }

    return AttendancePayload(
        participants=[dict(p) for p in participants],
        statistics=dict(statistics),
        authentication_stats=auth_stats,
        **extras,
    )


def _student_info(raw: Mapping[str, Any]) -> Optional[StudentInfo]:
    info = raw.get("studentInfo") or raw.get("student_info")
    if isinstance(info, Mapping):
        return StudentInfo(
            student_id=_as_str(_first(info, ("studentId", "student_id"))),
            first_name=_as_str(_first(info, ("firstName", "first_name"))),
            last_name=_as_str(_first(info, ("lastName", "last_name"))),
            department=_as_str(_first(info, ("department",))),
        )
    student_id = _first(raw, ("studentId", "student_id"))
    if student_id is not None:
        return StudentInfo(student_id=str(student_id))
    return None


def _authenticated_user(raw: Mapping[str, Any]) -> Optional[AuthenticatedUser]:
    user = raw.get("authenticatedUser") or raw.get("authenticated_user")
    if not isinstance(user, Mapping):
        return None
    return AuthenticatedUser(
        user_id=_as_str(_first(user, ("userId", "user_id", "id"))),
        username=_as_str(_first(user, ("username", "userName", "name"))),
        role=_as_str(_first(user, ("role",))),
    )


def adapt_participant(
    raw: Mapping[str, Any],
    source: PayloadSource = PayloadSource.TRACKER,
) -> ParticipantRecord:
    """
    Adapt one raw participant payload (any historical field naming) into the
    canonical ParticipantRecord.
    """
    return ParticipantRecord(
        participant_id=_as_str(_first(raw, _ID_KEYS)),
        name=str(_first(raw, _NAME_KEYS) or "Unknown"),
        email=_as_str(_first(raw, _EMAIL_KEYS)),
        sessions=extract_sessions(raw),
        is_active=raw.get("isActive") is True or raw.get("is_active") is True,
        student_info=_student_info(raw),
        authenticated_user=_authenticated_user(raw),
        source=source,
    )


def adapt_participants(
    payload: AttendancePayload,
    source: PayloadSource = PayloadSource.TRACKER,
) -> List[ParticipantRecord]:
    if source == PayloadSource.WEBHOOK:
        return adapt_webhook_records(payload.participants)
    return [adapt_participant(p, source) for p in payload.participants]


def adapt_webhook_records(rows: Iterable[Mapping[str, Any]]) -> List[ParticipantRecord]:
    """
    Group raw Zoom webhook rows (one row per join event) into one record per
    participant, each row becoming a session. Order of first appearance is
    preserved.
    """
    grouped: Dict[str, ParticipantRecord] = {}

    for row in rows:
        if not isinstance(row, Mapping):
            continue
        key = _as_str(_first(row, _ID_KEYS + _EMAIL_KEYS + _NAME_KEYS)) or f"anonymous-{len(grouped)}"

        record = grouped.get(key)
        if record is None:
            record = adapt_participant(row, PayloadSource.WEBHOOK)
            record.sessions = []
            grouped[key] = record
        else:
            if record.email is None:
                record.email = _as_str(_first(row, _EMAIL_KEYS))
            if record.name == "Unknown":
                record.name = str(_first(row, _NAME_KEYS) or "Unknown")

        if _first(row, ("joinTime", "join_time")) is not None:
            record.sessions.append(session_from_mapping(row))

    return list(grouped.values())


def adapt_meeting_info(raw: Any) -> MeetingInfo:
    """
    Map any known meeting payload shape onto MeetingInfo. Never raises.
    """
    if not isinstance(raw, Mapping):
        return MeetingInfo()

    return MeetingInfo(
        meeting_id=_as_str(_first(raw, ("meetingId", "meeting_id", "id"))),
        topic=_as_str(_first(raw, ("topic", "meetingTopic"))),
        duration=raw.get("duration"),
        start_time=_first(raw, ("startTime", "start_time")),
        end_time=_first(raw, ("endTime", "end_time")),
        started_at=_first(raw, ("started_at", "startedAt")),
        ended_at=_first(raw, ("ended_at", "endedAt")),
    )
