# app/schemas/meeting.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.attendance import CamelModel


class MeetingCreate(CamelModel):
    """
    Payload for registering a meeting to track.
    """

    meeting_id: str = Field(
        ...,
        min_length=1,
        description="Zoom meeting id.",
        examples=["85746065432"],
    )
    topic: str = Field(
        "Untitled meeting",
        description="Human-readable meeting topic.",
        examples=["CS101 Lecture 4"],
    )
    duration: int | None = Field(
        None,
        ge=1,
        description="Scheduled length in minutes. Used as the attendance denominator when set.",
        examples=[60],
    )
    start_time: datetime | None = Field(
        None,
        description="Scheduled start time. Defaults to the first join if omitted.",
        examples=["2025-01-10T10:00:00Z"],
    )


class MeetingRead(CamelModel):
    """
    Public representation of a tracked meeting.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int = Field(..., description="Database identifier.", examples=[1])
    meeting_id: str = Field(..., description="Zoom meeting id.", examples=["85746065432"])
    topic: str = Field(..., examples=["CS101 Lecture 4"])
    duration: int | None = Field(None, description="Scheduled length in minutes.")
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: str = Field(..., description="scheduled / started / ended", examples=["started"])
    version: int = Field(
        ...,
        description="Monotonic change counter; bumped on every join/leave/start/end.",
        examples=[7],
    )


class ZoomWebhookParticipant(BaseModel):
    """
    `payload.object.participant` of a Zoom participant webhook.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    user_id: str | None = None
    participant_user_id: str | None = None
    user_name: str | None = None
    email: str | None = None
    join_time: datetime | None = None
    leave_time: datetime | None = None

    def key(self) -> str | None:
        """
        Stable identity of the participant within a meeting.
        """
        for value in (self.participant_user_id, self.email, self.user_id, self.id, self.user_name):
            if value:
                return str(value)
        return None


class ZoomWebhookEvent(BaseModel):
    """
    Envelope of a Zoom webhook delivery.
    """

    event: str = Field(..., examples=["meeting.participant_joined"])
    payload: dict[str, Any] = Field(default_factory=dict)
    event_ts: int | None = None

    def meeting_object(self) -> dict[str, Any]:
        obj = self.payload.get("object")
        return obj if isinstance(obj, dict) else {}

    def meeting_id(self) -> str | None:
        obj = self.meeting_object()
        value = obj.get("id") or obj.get("uuid")
        return str(value) if value else None

    def participant(self) -> ZoomWebhookParticipant | None:
        raw = self.meeting_object().get("participant")
        if not isinstance(raw, dict):
            return None
        return ZoomWebhookParticipant.model_validate(raw)


class WebhookAck(CamelModel):
    success: bool = True
    message: str
    event: str
    meeting_id: str
    version: int = 0
    timestamp: datetime


class ParticipantLink(CamelModel):
    """
    Student record and platform account to attach to a meeting participant.

    Omitted fields keep their current value.
    """

    student_id: str | None = Field(None, max_length=64, examples=["S-2024-0042"])
    first_name: str | None = Field(None, max_length=128, examples=["Ada"])
    last_name: str | None = Field(None, max_length=128, examples=["Lovelace"])
    department: str | None = Field(None, max_length=128, examples=["Computer Science"])
    user_id: str | None = Field(None, max_length=64, examples=["42"])
    username: str | None = Field(None, max_length=128, examples=["ada"])
    role: str | None = Field(None, max_length=32, examples=["student"])
