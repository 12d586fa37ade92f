# app/services/statistics_reducer.py
from __future__ import annotations

from typing import Any, Iterable, Mapping

from app.schemas.attendance import (
    AttendanceStatistics,
    AttendanceStatus,
    AuthenticationStats,
    ParticipantAttendance,
    ThresholdStatistics,
)
from app.services.attendance_calculator import round_half_up
from app.services.attendance_classifier import DEFAULT_THRESHOLD

_STATUS_FIELDS = {
    AttendanceStatus.PRESENT.value.lower(): "present",
    AttendanceStatus.PARTIAL.value.lower(): "partial",
    AttendanceStatus.LATE.value.lower(): "late",
    AttendanceStatus.IN_PROGRESS.value.lower(): "in_progress",
}


def _status_key(status: Any) -> str:
    if isinstance(status, AttendanceStatus):
        return status.value.lower()
    return str(status or "").lower()


def _get(participant: ParticipantAttendance | Mapping[str, Any], attr: str, key: str) -> Any:
    if isinstance(participant, Mapping):
        return participant.get(key)
    return getattr(participant, attr, None)


def reduce_statistics(
    participants: Iterable[ParticipantAttendance | Mapping[str, Any]],
) -> AttendanceStatistics:
    """
    Fold classified participants into per-status counts.

    Rules
    -----
    - Unknown or missing statuses count as absent.
    - average_percentage = round(sum(percentage) / total), 0 when empty.
    """
    counts = {"present": 0, "partial": 0, "late": 0, "absent": 0, "in_progress": 0}
    total = 0
    percentage_sum = 0.0

    for p in participants:
        total += 1
        percentage_sum += _get(p, "attendance_percentage", "attendancePercentage") or 0
        status = _status_key(_get(p, "attendance_status", "attendanceStatus"))
        counts[_STATUS_FIELDS.get(status, "absent")] += 1

    if total == 0:
        return AttendanceStatistics()

    return AttendanceStatistics(
        total=total,
        average_percentage=round_half_up(percentage_sum / total),
        **counts,
    )


def summarize_threshold_attendance(
    participants: Iterable[ParticipantAttendance],
    meeting_duration: float,
    threshold: float = DEFAULT_THRESHOLD,
) -> ThresholdStatistics:
    """
    Summary for the threshold tracker view.

    Participants still in the meeting are counted as present alongside those
    who met the threshold; everyone else is absent.
    """
    participants = list(participants)
    total = len(participants)
    in_progress = sum(
        1 for p in participants if p.attendance_status == AttendanceStatus.IN_PROGRESS
    )
    present = sum(
        1
        for p in participants
        if p.meets_threshold or p.attendance_status == AttendanceStatus.IN_PROGRESS
    )
    percentage_sum = sum(p.attendance_percentage or 0 for p in participants)

    return ThresholdStatistics(
        total_participants=total,
        present_count=present,
        absent_count=total - present,
        in_progress_count=in_progress,
        average_attendance=round_half_up(percentage_sum / total) if total else 0,
        attendance_rate=round_half_up(present / total * 100) if total else 0,
        meeting_duration=meeting_duration,
        threshold_duration=round_half_up(meeting_duration * threshold / 100.0),
        threshold=threshold,
    )


def compute_authentication_stats(
    participants: Iterable[ParticipantAttendance],
) -> AuthenticationStats:
    """
    Count participants linked to an authenticated platform user, by role.
    """
    stats = AuthenticationStats()
    for p in participants:
        user = p.authenticated_user
        if user is None or not (user.user_id or user.username):
            stats.unauthenticated_participants += 1
            continue
        stats.total_authenticated += 1
        role = (user.role or "").lower()
        if role == "student":
            stats.authenticated_students += 1
        elif role == "admin":
            stats.authenticated_admins += 1
    return stats
