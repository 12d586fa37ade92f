# app/api/routes/attendance_tracker.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.attendance import TrackerAttendanceResponse
from app.services.attendance_tracker import MeetingNotFoundError, build_meeting_attendance

router = APIRouter(prefix="/api/attendance-tracker", tags=["Attendance tracker"])


@router.get(
    "/attendance/{meeting_id}",
    response_model=TrackerAttendanceResponse,
    summary="Threshold attendance view of a meeting",
    description=(
        "Full attendance view of one meeting, as used by the 85% tracker "
        "dashboard.\n\n"
        "- `participants`: every participant with sessions, minutes attended, "
        "percentage, status and whether the threshold is met\n"
        "- `statistics`: per-status counts and average percentage\n"
        "- `thresholdStatistics`: present/absent/in-progress counts against the threshold\n"
        "- `authenticationStats`: how many participants are linked to a user account\n\n"
        "`threshold` overrides the configured ATTENDANCE_THRESHOLD for this request."
    ),
    responses={
        200: {
            "description": "Attendance computed.",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "meetingId": "85746065432",
                        "version": 4,
                        "statistics": {
                            "total": 2,
                            "present": 1,
                            "partial": 0,
                            "late": 0,
                            "absent": 0,
                            "inProgress": 1,
                            "averagePercentage": 95,
                        },
                        "thresholdStatistics": {
                            "totalParticipants": 2,
                            "presentCount": 2,
                            "absentCount": 0,
                            "inProgressCount": 1,
                            "averageAttendance": 95,
                            "attendanceRate": 100,
                            "meetingDuration": 60,
                            "thresholdDuration": 51,
                            "threshold": 85.0,
                        },
                    }
                }
            },
        },
        404: {"description": "Meeting not found."},
    },
)
async def get_tracker_attendance(
    meeting_id: str = Path(..., description="Zoom meeting id.", examples=["85746065432"]),
    enriched: bool = Query(
        default=True,
        description="Kept for dashboard compatibility; the response is always enriched.",
    ),
    threshold: float | None = Query(
        default=None,
        ge=0,
        le=100,
        description="Attendance threshold in percent for this request.",
        examples=[85],
    ),
    db: AsyncSession = Depends(get_db),
) -> TrackerAttendanceResponse:
    try:
        attendance = await build_meeting_attendance(db, meeting_id, threshold=threshold)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    return TrackerAttendanceResponse(success=True, **attendance.model_dump())
