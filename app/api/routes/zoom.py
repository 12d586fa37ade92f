# app/api/routes/zoom.py
import logging
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.internal_auth import verify_internal_api_key
from app.api.dependencies.join_tracking import get_join_tracking_log
from app.db.session import get_db
from app.realtime.server import AttendanceBroadcaster, get_broadcaster
from app.schemas.attendance import LiveParticipantsResponse
from app.schemas.join_tracking import JoinTrackingCreate, JoinTrackingHistory, JoinTrackingRead
from app.schemas.meeting import MeetingCreate, MeetingRead, WebhookAck, ZoomWebhookEvent
from app.services.attendance_tracker import (
    MeetingNotFoundError,
    build_meeting_attendance,
    create_meeting,
    end_meeting,
)
from app.services.join_tracking import JoinTrackingLog
from app.services.zoom_webhook import WebhookPayloadError, handle_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/zoom", tags=["Zoom"])


@router.post(
    "/enhanced/create-meeting",
    response_model=MeetingRead,
    status_code=HTTPStatus.CREATED,
    summary="Register a meeting for attendance tracking",
    description=(
        "Register a Zoom meeting so that its participants can be tracked.\n\n"
        "When `duration` is given it becomes the denominator of every "
        "attendance percentage; otherwise the meeting's start/end bounds are used."
    ),
    responses={
        201: {
            "description": "Meeting registered.",
            "content": {
                "application/json": {
                    "example": {
                        "id": 1,
                        "meetingId": "85746065432",
                        "topic": "CS101 Lecture 4",
                        "duration": 60,
                        "startTime": "2025-01-10T10:00:00Z",
                        "endTime": None,
                        "status": "scheduled",
                        "version": 0,
                    }
                }
            },
        },
        400: {
            "description": "A meeting with the same id is already tracked.",
            "content": {
                "application/json": {
                    "example": {"detail": "Meeting with id '85746065432' already exists."}
                }
            },
        },
    },
)
async def create_tracked_meeting(
    payload: MeetingCreate,
    db: AsyncSession = Depends(get_db),
) -> MeetingRead:
    try:
        meeting = await create_meeting(db, payload)
    except ValueError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    return MeetingRead.model_validate(meeting)


@router.patch(
    "/meeting/{meeting_id}/end",
    response_model=MeetingRead,
    summary="End a meeting",
    description=(
        "Mark the meeting as ended. Every session still open is closed at the "
        "end time, so no participant remains `In Progress` afterwards."
    ),
    responses={404: {"description": "Meeting not found."}},
)
async def end_tracked_meeting(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    db: AsyncSession = Depends(get_db),
    broadcaster: AttendanceBroadcaster = Depends(get_broadcaster),
) -> MeetingRead:
    try:
        meeting = await end_meeting(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc

    await broadcaster.meeting_ended(meeting_id, meeting.version)
    await broadcaster.attendance_update(await build_meeting_attendance(db, meeting_id))
    return MeetingRead.model_validate(meeting)


@router.get(
    "/meeting/{meeting_id}/live-participants",
    response_model=LiveParticipantsResponse,
    summary="Live participants of a meeting",
    description=(
        "Participants of the meeting with attendance computed at request time, "
        "plus per-status statistics. Carries the meeting `version` so that "
        "clients can discard stale responses."
    ),
    responses={404: {"description": "Meeting not found."}},
)
async def get_live_participants(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    db: AsyncSession = Depends(get_db),
) -> LiveParticipantsResponse:
    try:
        attendance = await build_meeting_attendance(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc

    return LiveParticipantsResponse(
        meeting_id=meeting_id,
        version=attendance.version,
        participants=attendance.participants,
        statistics=attendance.statistics,
    )


@router.get(
    "/webhook",
    summary="Webhook endpoint verification",
    description="Echo the `challenge` query parameter back, as webhook validators expect.",
)
async def verify_webhook(
    challenge: str = Query(..., description="Opaque value to echo back."),
) -> dict:
    return {"challenge": challenge}


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Receive Zoom webhook events",
    description=(
        "Entry point for Zoom meeting webhooks.\n\n"
        "Handled events:\n"
        "- `meeting.participant_joined`: opens a new session\n"
        "- `meeting.participant_left`: closes the latest open session\n"
        "- `meeting.started` / `meeting.ended`\n\n"
        "Other events are acknowledged and ignored. Every handled event bumps "
        "the meeting version and is broadcast over Socket.IO."
    ),
    responses={
        200: {
            "description": "Event accepted.",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "Event processed",
                        "event": "meeting.participant_joined",
                        "meetingId": "85746065432",
                        "version": 3,
                        "timestamp": "2025-01-10T10:05:00Z",
                    }
                }
            },
        },
        400: {"description": "Malformed webhook payload."},
        404: {"description": "Meeting not found (meeting.ended for an unknown meeting)."},
    },
)
async def receive_webhook(
    body: dict,
    db: AsyncSession = Depends(get_db),
    broadcaster: AttendanceBroadcaster = Depends(get_broadcaster),
) -> WebhookAck:
    try:
        event = ZoomWebhookEvent.model_validate(body)
        return await handle_webhook_event(db, event, broadcaster)
    except ValidationError as exc:
        logger.warning("Rejected malformed Zoom webhook: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Malformed webhook payload."
        ) from exc
    except WebhookPayloadError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc


@router.get(
    "/join-tracking",
    response_model=JoinTrackingHistory,
    summary="Recent dashboard join events",
    description="Return the most recent join-tracking entries, newest first.",
)
async def get_join_tracking(
    limit: int | None = Query(
        default=None,
        ge=1,
        le=500,
        description="Maximum number of entries. Defaults to JOIN_TRACKING_HISTORY_LIMIT.",
    ),
    log: JoinTrackingLog = Depends(get_join_tracking_log),
) -> JoinTrackingHistory:
    entries = await log.history(limit)
    return JoinTrackingHistory(current=entries[0] if entries else None, data=entries)


@router.post(
    "/join-tracking",
    response_model=JoinTrackingRead,
    status_code=HTTPStatus.CREATED,
    summary="Record a dashboard join event",
)
async def post_join_tracking(
    payload: JoinTrackingCreate,
    log: JoinTrackingLog = Depends(get_join_tracking_log),
) -> JoinTrackingRead:
    return await log.record(payload)


@router.delete(
    "/join-tracking",
    summary="Clear the join-tracking log",
    description="Admin-only. Requires `X-Internal-Api-Key` outside local/test environments.",
    dependencies=[Depends(verify_internal_api_key)],
    responses={
        401: {"description": "Missing or invalid internal API key."},
        500: {"description": "INTERNAL_API_KEY not configured for this environment."},
    },
)
async def delete_join_tracking(
    log: JoinTrackingLog = Depends(get_join_tracking_log),
) -> dict:
    removed = await log.clear()
    return {"success": True, "removed": removed}
