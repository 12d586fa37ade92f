# app/schemas/attendance.py
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base model for payloads exchanged with the dashboards.

    Fields are snake_case in Python and camelCase on the wire; both spellings
    are accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AttendanceStatus(str, Enum):
    """
    Classification of a participant's attendance in a meeting.
    """

    PRESENT = "Present"
    IN_PROGRESS = "In Progress"
    PARTIAL = "Partial"
    LATE = "Late"
    ABSENT = "Absent"


class PayloadSource(str, Enum):
    """
    Backend payload shape a participant record was adapted from.
    """

    WEBHOOK = "webhook"
    TRACKER = "tracker"
    LIVE = "live"


class SessionRecord(CamelModel):
    """
    A single join/leave cycle.

    Timestamps are kept as received (datetime, ISO string, epoch millis or
    None) and only parsed by the calculator, which tolerates bad values.
    """

    join_time: Any = None
    leave_time: Any = None
    is_active: bool = False


class StudentInfo(CamelModel):
    student_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    department: str | None = None


class AuthenticatedUser(CamelModel):
    user_id: str | None = None
    username: str | None = None
    role: str | None = None


class ParticipantRecord(CamelModel):
    """
    Canonical participant shape consumed by the attendance calculation.

    Produced only by the payload adapters, never straight from JSON.
    """

    participant_id: str | None = None
    name: str = "Unknown"
    email: str | None = None
    sessions: list[SessionRecord] = Field(default_factory=list)
    is_active: bool = False
    student_info: StudentInfo | None = None
    authenticated_user: AuthenticatedUser | None = None
    source: PayloadSource = PayloadSource.TRACKER


class MeetingInfo(CamelModel):
    """
    Meeting bounds used to derive the percentage denominator.
    """

    meeting_id: str | None = None
    topic: str | None = None
    duration: Any = None
    start_time: Any = None
    end_time: Any = None
    started_at: Any = None
    ended_at: Any = None


class ParticipantAttendance(ParticipantRecord):
    """
    ParticipantRecord enriched with the derived attendance fields.
    """

    total_session_duration: int = Field(
        0, description="Minutes attended, summed over every session."
    )
    duration: int = Field(
        0, description="Same as total_session_duration; kept for older dashboards."
    )
    attendance_percentage: int = Field(0, ge=0, le=100)
    attendance_status: AttendanceStatus = AttendanceStatus.ABSENT
    meeting_duration: float = 0
    session_count: int = 0
    meets_threshold: bool = False


class AttendanceStatistics(CamelModel):
    """
    Per-status counts over all participants of a meeting.
    """

    total: int = 0
    present: int = 0
    partial: int = 0
    late: int = 0
    absent: int = 0
    in_progress: int = 0
    average_percentage: int = 0


class ThresholdStatistics(CamelModel):
    """
    Summary used by the threshold (85%) tracker view. Participants still in
    the meeting count towards `present_count`.
    """

    total_participants: int = 0
    present_count: int = 0
    absent_count: int = 0
    in_progress_count: int = 0
    average_attendance: int = 0
    attendance_rate: int = 0
    meeting_duration: float = 0
    threshold_duration: int = 0
    threshold: float = 85.0


class AuthenticationStats(CamelModel):
    total_authenticated: int = 0
    authenticated_students: int = 0
    authenticated_admins: int = 0
    unauthenticated_participants: int = 0


class AttendancePayload(CamelModel):
    """
    Sanitized API response: `participants`, `statistics` and
    `authentication_stats` are always present. Unknown keys are preserved.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    participants: list[dict[str, Any]] = Field(default_factory=list)
    statistics: dict[str, Any] = Field(default_factory=lambda: {"total": 0})
    authentication_stats: AuthenticationStats = Field(default_factory=AuthenticationStats)


class MeetingAttendance(CamelModel):
    """
    Fully computed attendance view of one meeting.
    """

    meeting_id: str | None = None
    version: int = 0
    meeting: MeetingInfo = Field(default_factory=MeetingInfo)
    participants: list[ParticipantAttendance] = Field(default_factory=list)
    statistics: AttendanceStatistics = Field(default_factory=AttendanceStatistics)
    threshold_statistics: ThresholdStatistics = Field(default_factory=ThresholdStatistics)
    authentication_stats: AuthenticationStats = Field(default_factory=AuthenticationStats)


class TrackerAttendanceResponse(MeetingAttendance):
    """
    Response of GET /api/attendance-tracker/attendance/{meeting_id}.
    """

    success: bool = True


class LiveParticipantsResponse(CamelModel):
    """
    Response of GET /api/zoom/meeting/{meeting_id}/live-participants.
    """

    success: bool = True
    meeting_id: str
    version: int = 0
    participants: list[ParticipantAttendance] = Field(default_factory=list)
    statistics: AttendanceStatistics = Field(default_factory=AttendanceStatistics)


class WebhookAttendanceResponse(CamelModel):
    """
    Response of GET /api/webhooks/attendance/{meeting_id}: one raw row per
    join/leave session, in the snake_case shape Zoom webhooks use.
    """

    success: bool = True
    meeting_id: str
    participants: list[dict[str, Any]] = Field(default_factory=list)
