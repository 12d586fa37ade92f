# app/services/zoom_webhook.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.attendance import MeetingAttendance, ParticipantAttendance
from app.schemas.meeting import WebhookAck, ZoomWebhookEvent
from app.services.attendance_calculator import parse_timestamp, utcnow
from app.services.attendance_tracker import (
    build_meeting_attendance,
    end_meeting,
    record_join,
    record_leave,
    start_meeting,
)

logger = logging.getLogger(__name__)

PARTICIPANT_JOINED = "meeting.participant_joined"
PARTICIPANT_LEFT = "meeting.participant_left"
MEETING_STARTED = "meeting.started"
MEETING_ENDED = "meeting.ended"

SUPPORTED_EVENTS = (PARTICIPANT_JOINED, PARTICIPANT_LEFT, MEETING_STARTED, MEETING_ENDED)


class WebhookPayloadError(ValueError):
    """
    Raised when a supported webhook event lacks the fields it needs.
    """


def _find(attendance: MeetingAttendance, key: str) -> Optional[ParticipantAttendance]:
    for participant in attendance.participants:
        if participant.participant_id == key:
            return participant
    return None


async def handle_webhook_event(
    db: AsyncSession,
    event: ZoomWebhookEvent,
    broadcaster: Any,
) -> WebhookAck:
    """
    Apply one Zoom webhook delivery to the tracker and fan the change out.

    Rules
    -----
    - Unsupported event types are acknowledged and ignored, and so are
      leaves with nothing to close (unknown meeting, unknown participant,
      no open session).
    - Supported events without a meeting id (or, for participant events,
      without an identifiable participant) raise WebhookPayloadError.
    - Every applied event is followed by an `attendance85Update` for the
      meeting room, carrying the bumped meeting version.
    """
    now = utcnow()
    if event.event not in SUPPORTED_EVENTS:
        logger.info("Ignoring unsupported Zoom webhook event %s", event.event)
        return WebhookAck(
            success=True,
            message="Event ignored",
            event=event.event,
            meeting_id=event.meeting_id() or "",
            timestamp=now,
        )

    meeting_id = event.meeting_id()
    if not meeting_id:
        raise WebhookPayloadError("Webhook payload carries no meeting id.")

    obj = event.meeting_object()
    topic = obj.get("topic")

    if event.event == MEETING_STARTED:
        meeting = await start_meeting(
            db, meeting_id, started_at=parse_timestamp(obj.get("start_time")), topic=topic
        )
        await broadcaster.meeting_started(meeting_id, meeting.version)

    elif event.event == MEETING_ENDED:
        meeting = await end_meeting(db, meeting_id, ended_at=parse_timestamp(obj.get("end_time")))
        await broadcaster.meeting_ended(meeting_id, meeting.version)

    else:
        participant = event.participant()
        if participant is None or participant.key() is None:
            raise WebhookPayloadError("Webhook payload carries no identifiable participant.")

        if event.event == PARTICIPANT_JOINED:
            await record_join(db, meeting_id, participant, topic=topic)
        elif await record_leave(db, meeting_id, participant) is None:
            return WebhookAck(
                success=True,
                message="Event ignored",
                event=event.event,
                meeting_id=meeting_id,
                timestamp=now,
            )

    attendance = await build_meeting_attendance(db, meeting_id, now=now)

    if event.event in (PARTICIPANT_JOINED, PARTICIPANT_LEFT):
        current = _find(attendance, event.participant().key())
        if current is not None:
            if event.event == PARTICIPANT_JOINED:
                await broadcaster.participant_joined(meeting_id, current, attendance.version)
            else:
                await broadcaster.participant_left(meeting_id, current, attendance.version)

    await broadcaster.attendance_update(attendance)

    return WebhookAck(
        success=True,
        message="Event processed",
        event=event.event,
        meeting_id=meeting_id,
        version=attendance.version,
        timestamp=now,
    )
