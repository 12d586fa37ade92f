# app/services/attendance_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from app.core.config import get_settings
from app.schemas.attendance import (
    MeetingAttendance,
    MeetingInfo,
    ParticipantAttendance,
    ParticipantRecord,
)
from app.services.attendance_calculator import (
    attendance_percentage,
    resolve_meeting_duration,
    utcnow,
)
from app.services.attendance_classifier import (
    AttendanceClassifier,
    ThresholdClassifier,
    get_classifier,
)
from app.services.session_aggregator import aggregate
from app.services.statistics_reducer import (
    compute_authentication_stats,
    reduce_statistics,
    summarize_threshold_attendance,
)

logger = logging.getLogger(__name__)


def default_classifier(threshold: Optional[float] = None) -> AttendanceClassifier:
    """
    Classifier configured by CLASSIFIER_STRATEGY / ATTENDANCE_THRESHOLD,
    optionally overriding the threshold (e.g. from a query parameter).
    """
    settings = get_settings()
    return get_classifier(
        settings.CLASSIFIER_STRATEGY,
        settings.ATTENDANCE_THRESHOLD if threshold is None else threshold,
    )


def _threshold_of(classifier: AttendanceClassifier, fallback: float) -> float:
    if isinstance(classifier, ThresholdClassifier):
        return classifier.threshold
    return fallback


def calculate_participant_attendance(
    record: ParticipantRecord,
    meeting_info: Optional[MeetingInfo],
    classifier: AttendanceClassifier,
    *,
    now: Optional[datetime] = None,
    merge_overlaps: bool = False,
    threshold: Optional[float] = None,
    meeting_duration: Optional[float] = None,
) -> ParticipantAttendance:
    """
    Derive duration, percentage and status for one participant.

    Derived fields are recomputed on every call from the sessions and the
    current time; nothing is cached between calls.
    """
    now = now or utcnow()
    if meeting_duration is None:
        meeting_duration = resolve_meeting_duration(meeting_info, now)

    summary = aggregate(record, now=now, merge_overlaps=merge_overlaps)
    percentage = attendance_percentage(
        summary.total_session_duration, meeting_duration, summary.is_active
    )
    status = classifier.classify(percentage, summary.is_active, summary.total_session_duration)

    cutoff = _threshold_of(classifier, get_settings().ATTENDANCE_THRESHOLD if threshold is None else threshold)

    data = record.model_dump()
    data.update(
        sessions=summary.sessions,
        is_active=summary.is_active,
        total_session_duration=summary.total_session_duration,
        duration=summary.total_session_duration,
        attendance_percentage=percentage,
        attendance_status=status,
        meeting_duration=meeting_duration,
        session_count=len(summary.sessions),
        meets_threshold=percentage >= cutoff,
    )
    return ParticipantAttendance(**data)


def calculate_meeting_attendance(
    records: Iterable[ParticipantRecord],
    meeting_info: Optional[MeetingInfo] = None,
    classifier: Optional[AttendanceClassifier] = None,
    *,
    now: Optional[datetime] = None,
    merge_overlaps: Optional[bool] = None,
    threshold: Optional[float] = None,
    version: int = 0,
) -> MeetingAttendance:
    """
    Compute the full attendance view of a meeting.

    Steps
    -----
    1) Resolve the meeting duration once (shared denominator).
    2) Aggregate + classify every participant.
    3) Fold the results into statistics, threshold statistics and
       authentication stats.
    """
    settings = get_settings()
    now = now or utcnow()
    meeting_info = meeting_info or MeetingInfo()
    classifier = classifier or default_classifier(threshold)
    if merge_overlaps is None:
        merge_overlaps = settings.MERGE_OVERLAPPING_SESSIONS
    cutoff = _threshold_of(
        classifier, settings.ATTENDANCE_THRESHOLD if threshold is None else threshold
    )

    meeting_duration = resolve_meeting_duration(meeting_info, now)

    participants = [
        calculate_participant_attendance(
            record,
            meeting_info,
            classifier,
            now=now,
            merge_overlaps=merge_overlaps,
            threshold=cutoff,
            meeting_duration=meeting_duration,
        )
        for record in records
    ]

    logger.debug(
        "Computed attendance for meeting %s: %d participants, duration=%s min",
        meeting_info.meeting_id,
        len(participants),
        meeting_duration,
    )

    return MeetingAttendance(
        meeting_id=meeting_info.meeting_id,
        version=version,
        meeting=meeting_info,
        participants=participants,
        statistics=reduce_statistics(participants),
        threshold_statistics=summarize_threshold_attendance(
            participants, meeting_duration, cutoff
        ),
        authentication_stats=compute_authentication_stats(participants),
    )


def to_tracker_payload(attendance: MeetingAttendance) -> Dict[str, Any]:
    """
    JSON body of the tracker endpoint and the attendance85* socket events.
    """
    body = attendance.model_dump(mode="json", by_alias=True)
    body["success"] = True
    return body



def apply_threshold(
    attendance: MeetingAttendance,
    threshold: float,
    *,
    now: Optional[datetime] = None,
) -> MeetingAttendance:
    """
    Re-classify a computed view against another threshold. The sessions it
    carries are aggregated again, so nothing from the first pass leaks in.
    """
    return calculate_meeting_attendance(
        attendance.participants,
        attendance.meeting,
        now=now,
        threshold=threshold,
        version=attendance.version,
    )
