# app/api/routes/webhooks.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.attendance import WebhookAttendanceResponse
from app.services.attendance_tracker import MeetingNotFoundError, require_meeting, webhook_rows

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.get(
    "/attendance/{meeting_id}",
    response_model=WebhookAttendanceResponse,
    summary="Raw webhook attendance rows",
    description=(
        "One row per join/leave session in the snake_case shape Zoom webhooks "
        "deliver (`participant_user_id`, `user_name`, `join_time`, `leave_time`). "
        "Consumers group rows per participant themselves."
    ),
    responses={
        200: {
            "description": "Rows returned.",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "meetingId": "85746065432",
                        "participants": [
                            {
                                "participant_user_id": "u-1",
                                "user_name": "Ada Lovelace",
                                "email": "ada@example.edu",
                                "join_time": "2025-01-10T10:00:00+00:00",
                                "leave_time": "2025-01-10T10:30:00+00:00",
                            }
                        ],
                    }
                }
            },
        },
        404: {"description": "Meeting not found."},
    },
)
async def get_webhook_attendance(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    db: AsyncSession = Depends(get_db),
) -> WebhookAttendanceResponse:
    try:
        meeting = await require_meeting(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    return WebhookAttendanceResponse(meeting_id=meeting_id, participants=await webhook_rows(db, meeting))
