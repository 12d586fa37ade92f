# app/services/attendance_tracker.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.meeting import Meeting
from app.models.participant import AttendanceSession, Participant
from app.schemas.attendance import (
    AuthenticatedUser,
    MeetingAttendance,
    MeetingInfo,
    ParticipantRecord,
    PayloadSource,
    SessionRecord,
    StudentInfo,
)
from app.schemas.meeting import MeetingCreate, ParticipantLink, ZoomWebhookParticipant
from app.services.attendance_calculator import utcnow
from app.services.attendance_service import calculate_meeting_attendance

logger = logging.getLogger(__name__)


class MeetingNotFoundError(LookupError):
    """
    Raised when an operation targets a meeting id that is not tracked.
    """


class ParticipantNotFoundError(LookupError):
    """
    Raised when a meeting has no participant with the given key.
    """


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_meeting(db: AsyncSession, meeting_id: str) -> Optional[Meeting]:
    result = await db.execute(select(Meeting).where(Meeting.meeting_id == meeting_id))
    return result.scalar_one_or_none()


async def require_meeting(db: AsyncSession, meeting_id: str) -> Meeting:
    meeting = await get_meeting(db, meeting_id)
    if meeting is None:
        raise MeetingNotFoundError(f"Meeting with id '{meeting_id}' not found.")
    return meeting


async def list_meetings(db: AsyncSession) -> List[Meeting]:
    result = await db.execute(select(Meeting).order_by(Meeting.id.desc()))
    return list(result.scalars().all())


async def create_meeting(db: AsyncSession, payload: MeetingCreate) -> Meeting:
    """
    Register a new meeting. Raises ValueError if the meeting id is taken.
    """
    if await get_meeting(db, payload.meeting_id) is not None:
        raise ValueError(f"Meeting with id '{payload.meeting_id}' already exists.")

    meeting = Meeting(
        meeting_id=payload.meeting_id,
        topic=payload.topic,
        duration=payload.duration,
        start_time=payload.start_time,
        status="scheduled",
        version=0,
    )
    db.add(meeting)
    await db.commit()
    await db.refresh(meeting)
    logger.info("Created meeting %s (%s)", meeting.meeting_id, meeting.topic)
    return meeting


async def _get_or_create_meeting(
    db: AsyncSession,
    meeting_id: str,
    topic: Optional[str] = None,
) -> Meeting:
    meeting = await get_meeting(db, meeting_id)
    if meeting is None:
        # Webhooks can arrive for meetings nobody registered through the API.
        meeting = Meeting(
            meeting_id=meeting_id,
            topic=topic or "Untitled meeting",
            status="scheduled",
            version=0,
        )
        db.add(meeting)
        await db.flush()
        logger.info("Auto-registered meeting %s from webhook", meeting_id)
    return meeting


def _bump(meeting: Meeting) -> None:
    meeting.version = (meeting.version or 0) + 1


async def start_meeting(
    db: AsyncSession,
    meeting_id: str,
    started_at: Optional[datetime] = None,
    topic: Optional[str] = None,
) -> Meeting:
    meeting = await _get_or_create_meeting(db, meeting_id, topic)
    meeting.status = "started"
    if meeting.start_time is None:
        meeting.start_time = started_at or utcnow()
    _bump(meeting)
    await db.commit()
    await db.refresh(meeting)
    return meeting


async def end_meeting(
    db: AsyncSession,
    meeting_id: str,
    ended_at: Optional[datetime] = None,
) -> Meeting:
    """
    Mark the meeting as ended and close every session still open.

    Raises MeetingNotFoundError for unknown meetings.
    """
    meeting = await require_meeting(db, meeting_id)
    ended_at = ended_at or utcnow()

    result = await db.execute(
        select(AttendanceSession)
        .join(Participant, AttendanceSession.participant_pk == Participant.id)
        .where(
            Participant.meeting_pk == meeting.id,
            AttendanceSession.leave_time.is_(None),
        )
    )
    open_sessions = list(result.scalars().all())
    for session in open_sessions:
        session.leave_time = ended_at

    meeting.status = "ended"
    meeting.end_time = ended_at
    _bump(meeting)
    await db.commit()
    await db.refresh(meeting)

    logger.info(
        "Ended meeting %s, closed %d open session(s)", meeting_id, len(open_sessions)
    )
    return meeting


async def _get_participant(
    db: AsyncSession,
    meeting: Meeting,
    key: str,
) -> Optional[Participant]:
    result = await db.execute(
        select(Participant).where(
            Participant.meeting_pk == meeting.id,
            Participant.participant_key == key,
        )
    )
    return result.scalar_one_or_none()


async def record_join(
    db: AsyncSession,
    meeting_id: str,
    participant: ZoomWebhookParticipant,
    joined_at: Optional[datetime] = None,
    topic: Optional[str] = None,
) -> Participant:
    """
    Open a new session for the participant, creating meeting and participant
    rows on first sight.

    A join while another session is still open opens a second session
    (e.g. the same person on two devices); how overlaps are counted is
    decided at calculation time.
    """
    key = participant.key()
    if key is None:
        raise ValueError("Participant payload carries no usable identifier.")

    meeting = await _get_or_create_meeting(db, meeting_id, topic)
    joined_at = joined_at or participant.join_time or utcnow()

    row = await _get_participant(db, meeting, key)
    if row is None:
        row = Participant(
            meeting_pk=meeting.id,
            participant_key=key,
            name=participant.user_name or "Unknown",
            email=participant.email,
        )
        db.add(row)
        await db.flush()
    else:
        if participant.user_name:
            row.name = participant.user_name
        if participant.email:
            row.email = participant.email

    db.add(AttendanceSession(participant_pk=row.id, join_time=joined_at))

    if meeting.status == "scheduled":
        meeting.status = "started"
    if meeting.start_time is None:
        meeting.start_time = joined_at
    _bump(meeting)

    await db.commit()
    await db.refresh(row, attribute_names=["sessions"])
    logger.info("Participant %s joined meeting %s", key, meeting_id)
    return row


async def record_leave(
    db: AsyncSession,
    meeting_id: str,
    participant: ZoomWebhookParticipant,
    left_at: Optional[datetime] = None,
) -> Optional[Participant]:
    """
    Close the most recent open session of the participant.

    Returns None (and logs) when there is nothing to close: unknown meeting,
    unknown participant or no open session. Such leaves are tolerated rather
    than rejected.
    """
    key = participant.key()
    meeting = await get_meeting(db, meeting_id)
    if key is None or meeting is None:
        logger.warning("Ignoring leave for unknown meeting/participant %s/%s", meeting_id, key)
        return None

    row = await _get_participant(db, meeting, key)
    if row is None:
        logger.warning("Ignoring leave for unknown participant %s in meeting %s", key, meeting_id)
        return None

    result = await db.execute(
        select(AttendanceSession)
        .where(
            AttendanceSession.participant_pk == row.id,
            AttendanceSession.leave_time.is_(None),
        )
        .order_by(AttendanceSession.join_time.desc())
    )
    open_session = result.scalars().first()
    if open_session is None:
        logger.warning("Participant %s left meeting %s without an open session", key, meeting_id)
        return None

    open_session.leave_time = left_at or participant.leave_time or utcnow()
    _bump(meeting)

    await db.commit()
    await db.refresh(row, attribute_names=["sessions"])
    logger.info("Participant %s left meeting %s", key, meeting_id)
    return row


async def link_participant(
    db: AsyncSession,
    meeting_id: str,
    participant_key: str,
    link: ParticipantLink,
) -> Participant:
    """
    Attach a student record and/or platform account to a participant.

    Raises MeetingNotFoundError / ParticipantNotFoundError for unknown ids
    and ValueError when the link carries no field at all.
    """
    changes = link.model_dump(exclude_none=True)
    if not changes:
        raise ValueError("Link must set at least one student or user field.")

    meeting = await require_meeting(db, meeting_id)
    row = await _get_participant(db, meeting, participant_key)
    if row is None:
        raise ParticipantNotFoundError(
            f"Participant '{participant_key}' not found in meeting '{meeting_id}'."
        )

    for name, value in changes.items():
        setattr(row, name, value)
    _bump(meeting)

    await db.commit()
    await db.refresh(row, attribute_names=["sessions"])
    logger.info(
        "Linked participant %s of meeting %s (%s)",
        participant_key,
        meeting_id,
        ", ".join(sorted(changes)),
    )
    return row


def meeting_info_from_model(meeting: Meeting) -> MeetingInfo:
    return MeetingInfo(
        meeting_id=meeting.meeting_id,
        topic=meeting.topic,
        duration=meeting.duration,
        start_time=_as_utc(meeting.start_time),
        end_time=_as_utc(meeting.end_time),
    )


def participant_record_from_model(row: Participant) -> ParticipantRecord:
    student_info = None
    if row.student_id:
        student_info = StudentInfo(
            student_id=row.student_id,
            first_name=row.first_name,
            last_name=row.last_name,
            department=row.department,
        )
    authenticated_user = None
    if row.user_id or row.username:
        authenticated_user = AuthenticatedUser(
            user_id=row.user_id, username=row.username, role=row.role
        )

    return ParticipantRecord(
        participant_id=row.participant_key,
        name=row.name,
        email=row.email,
        sessions=[
            SessionRecord(join_time=_as_utc(s.join_time), leave_time=_as_utc(s.leave_time))
            for s in row.sessions
        ],
        student_info=student_info,
        authenticated_user=authenticated_user,
        source=PayloadSource.TRACKER,
    )


async def load_participants(db: AsyncSession, meeting: Meeting) -> List[Participant]:
    result = await db.execute(
        select(Participant)
        .where(Participant.meeting_pk == meeting.id)
        .order_by(Participant.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def load_meeting_records(db: AsyncSession, meeting: Meeting) -> List[ParticipantRecord]:
    return [participant_record_from_model(p) for p in await load_participants(db, meeting)]


async def build_meeting_attendance(
    db: AsyncSession,
    meeting_id: str,
    *,
    threshold: Optional[float] = None,
    now: Optional[datetime] = None,
) -> MeetingAttendance:
    """
    Load a meeting with all its sessions and compute its attendance view.

    Raises MeetingNotFoundError for unknown meetings.
    """
    meeting = await require_meeting(db, meeting_id)
    records = await load_meeting_records(db, meeting)
    return calculate_meeting_attendance(
        records,
        meeting_info_from_model(meeting),
        now=now,
        threshold=threshold,
        version=meeting.version or 0,
    )


async def webhook_rows(db: AsyncSession, meeting: Meeting) -> List[Dict[str, Any]]:
    """
    Raw Zoom-webhook shaped rows: one per session, snake_case keys.
    """
    rows: List[Dict[str, Any]] = []
    for p in await load_participants(db, meeting):
        for s in p.sessions:
            join_time = _as_utc(s.join_time)
            leave_time = _as_utc(s.leave_time)
            rows.append(
                {
                    "participant_user_id": p.participant_key,
                    "user_name": p.name,
                    "email": p.email,
                    "join_time": join_time.isoformat() if join_time else None,
                    "leave_time": leave_time.isoformat() if leave_time else None,
                }
            )
    return rows
