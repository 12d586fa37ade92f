# tests/test_attendance_tracker.py
from datetime import datetime, timezone

import pytest

from app.db.session import AsyncSessionLocal
from app.schemas.attendance import AttendanceStatus
from app.schemas.meeting import MeetingCreate, ZoomWebhookParticipant
from app.services.attendance_tracker import (
    MeetingNotFoundError,
    build_meeting_attendance,
    create_meeting,
    end_meeting,
    record_join,
    record_leave,
    require_meeting,
    webhook_rows,
)


def _at(minute: int) -> datetime:
    return datetime(2025, 1, 10, 10, minute, tzinfo=timezone.utc)


def _ada() -> ZoomWebhookParticipant:
    return ZoomWebhookParticipant(participant_user_id="u-1", user_name="Ada", email="ada@example.edu")


@pytest.mark.asyncio
async def test_create_meeting_rejects_duplicates(meeting_id):
    async with AsyncSessionLocal() as db:
        meeting = await create_meeting(db, MeetingCreate(meeting_id=meeting_id, topic="CS101", duration=60))
        assert meeting.version == 0
        assert meeting.status == "scheduled"

        with pytest.raises(ValueError):
            await create_meeting(db, MeetingCreate(meeting_id=meeting_id))


@pytest.mark.asyncio
async def test_join_and_leave_cycle_bumps_version_and_accumulates_sessions(meeting_id):
    async with AsyncSessionLocal() as db:
        await create_meeting(db, MeetingCreate(meeting_id=meeting_id, duration=60))

        await record_join(db, meeting_id, _ada(), joined_at=_at(0))
        await record_leave(db, meeting_id, _ada(), left_at=_at(20))
        await record_join(db, meeting_id, _ada(), joined_at=_at(40))
        row = await record_leave(db, meeting_id, _ada(), left_at=_at(59))

        assert row is not None
        assert len(row.sessions) == 2

        meeting = await require_meeting(db, meeting_id)
        assert meeting.version == 4
        assert meeting.status == "started"

        attendance = await build_meeting_attendance(db, meeting_id, now=_at(59))
        ada = attendance.participants[0]
        assert attendance.version == 4
        assert ada.total_session_duration == 39
        assert ada.attendance_percentage == 65
        assert ada.attendance_status == AttendanceStatus.ABSENT


@pytest.mark.asyncio
async def test_first_webhook_registers_unknown_meeting(meeting_id):
    async with AsyncSessionLocal() as db:
        await record_join(db, meeting_id, _ada(), joined_at=_at(5), topic="Walk-in")
        meeting = await require_meeting(db, meeting_id)
        assert meeting.topic == "Walk-in"
        assert meeting.status == "started"
        assert meeting.start_time is not None


@pytest.mark.asyncio
async def test_join_without_identifier_is_rejected(meeting_id):
    async with AsyncSessionLocal() as db:
        with pytest.raises(ValueError):
            await record_join(db, meeting_id, ZoomWebhookParticipant())


@pytest.mark.asyncio
async def test_leave_without_open_session_is_ignored(meeting_id):
    async with AsyncSessionLocal() as db:
        assert await record_leave(db, meeting_id, _ada()) is None

        await record_join(db, meeting_id, _ada(), joined_at=_at(0))
        await record_leave(db, meeting_id, _ada(), left_at=_at(10))
        before = (await require_meeting(db, meeting_id)).version

        assert await record_leave(db, meeting_id, _ada(), left_at=_at(12)) is None
        assert (await require_meeting(db, meeting_id)).version == before


@pytest.mark.asyncio
async def test_end_meeting_closes_open_sessions(meeting_id):
    async with AsyncSessionLocal() as db:
        await create_meeting(db, MeetingCreate(meeting_id=meeting_id, start_time=_at(0)))
        await record_join(db, meeting_id, _ada(), joined_at=_at(0))

        live = await build_meeting_attendance(db, meeting_id, now=_at(30))
        assert live.participants[0].attendance_status == AttendanceStatus.IN_PROGRESS

        meeting = await end_meeting(db, meeting_id, ended_at=_at(50))
        assert meeting.status == "ended"

        attendance = await build_meeting_attendance(db, meeting_id, now=_at(59))
        ada = attendance.participants[0]
        assert ada.is_active is False
        assert ada.total_session_duration == 50
        assert ada.attendance_percentage == 100
        assert ada.attendance_status == AttendanceStatus.PRESENT


@pytest.mark.asyncio
async def test_end_unknown_meeting_raises(meeting_id):
    async with AsyncSessionLocal() as db:
        with pytest.raises(MeetingNotFoundError):
            await end_meeting(db, meeting_id)


@pytest.mark.asyncio
async def test_webhook_rows_are_one_per_session(meeting_id):
    async with AsyncSessionLocal() as db:
        await record_join(db, meeting_id, _ada(), joined_at=_at(0))
        await record_leave(db, meeting_id, _ada(), left_at=_at(10))
        await record_join(db, meeting_id, _ada(), joined_at=_at(20))

        meeting = await require_meeting(db, meeting_id)
        rows = await webhook_rows(db, meeting)

        assert len(rows) == 2
        assert rows[0]["participant_user_id"] == "u-1"
        assert rows[0]["leave_time"] is not None
        assert rows[1]["leave_time"] is None
