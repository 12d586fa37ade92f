# app/api/routes/meetings.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.realtime.server import AttendanceBroadcaster, get_broadcaster
from app.schemas.attendance import ParticipantAttendance
from app.schemas.meeting import MeetingRead, ParticipantLink
from app.services.attendance_tracker import (
    MeetingNotFoundError,
    ParticipantNotFoundError,
    build_meeting_attendance,
    link_participant,
    list_meetings,
    require_meeting,
)

router = APIRouter(prefix="/api/meetings", tags=["Meetings"])


@router.get(
    "",
    response_model=list[MeetingRead],
    summary="List tracked meetings",
    description=(
        "Return every meeting known to the tracker, newest first.\n\n"
        "Meetings are registered explicitly through "
        "`POST /api/zoom/enhanced/create-meeting` or implicitly by the first "
        "Zoom webhook that mentions them."
    ),
    responses={
        200: {
            "description": "Meetings returned successfully.",
            "content": {
                "application/json": {
                    "example": [
                        {
                            "id": 1,
                            "meetingId": "85746065432",
                            "topic": "CS101 Lecture 4",
                            "duration": 60,
                            "startTime": "2025-01-10T10:00:00Z",
                            "endTime": None,
                            "status": "started",
                            "version": 7,
                        }
                    ]
                }
            },
        }
    },
)
async def get_meetings(db: AsyncSession = Depends(get_db)) -> list[MeetingRead]:
    meetings = await list_meetings(db)
    return [MeetingRead.model_validate(m) for m in meetings]


@router.get(
    "/{meeting_id}",
    response_model=MeetingRead,
    summary="Get a single meeting",
    responses={
        404: {
            "description": "Meeting not found.",
            "content": {
                "application/json": {
                    "example": {"detail": "Meeting with id '123' not found."}
                }
            },
        }
    },
)
async def get_meeting(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    db: AsyncSession = Depends(get_db),
) -> MeetingRead:
    try:
        meeting = await require_meeting(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    return MeetingRead.model_validate(meeting)


@router.get(
    "/{meeting_id}/participants",
    response_model=list[ParticipantAttendance],
    summary="Participants of a meeting with computed attendance",
    description=(
        "Return every participant of the meeting together with their sessions, "
        "total minutes attended, attendance percentage and status.\n\n"
        "Derived values are computed at request time, so participants still in "
        "the meeting show a growing duration and the `In Progress` status."
    ),
    responses={
        404: {"description": "Meeting not found."},
    },
)
async def get_meeting_participants(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    db: AsyncSession = Depends(get_db),
) -> list[ParticipantAttendance]:
    try:
        attendance = await build_meeting_attendance(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    return attendance.participants


@router.patch(
    "/{meeting_id}/participants/{participant_key}/link",
    response_model=ParticipantAttendance,
    summary="Link a participant to a student or platform user",
    description=(
        "Attach student directory fields (`studentId`, `firstName`, `lastName`, "
        "`department`) and/or an authenticated platform account (`userId`, "
        "`username`, `role`) to a participant.\n\n"
        "Linked participants are counted in `authenticationStats`. The meeting "
        "`version` is bumped and `participantLinked` plus an `attendance85Update` "
        "are emitted."
    ),
    responses={
        400: {"description": "The link sets no field."},
        404: {"description": "Meeting or participant not found."},
    },
)
async def link_meeting_participant(
    link: ParticipantLink,
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    participant_key: str = Path(
        ...,
        description="Participant identity (Zoom user id, email or display name).",
        examples=["16778240"],
    ),
    db: AsyncSession = Depends(get_db),
    broadcaster: AttendanceBroadcaster = Depends(get_broadcaster),
) -> ParticipantAttendance:
    try:
        await link_participant(db, meeting_id, participant_key, link)
    except (MeetingNotFoundError, ParticipantNotFoundError) as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    attendance = await build_meeting_attendance(db, meeting_id)
    linked = next(p for p in attendance.participants if p.participant_id == participant_key)

    await broadcaster.participant_linked(meeting_id, linked, attendance.version)
    await broadcaster.attendance_update(attendance)
    return linked
