# app/schemas/join_tracking.py
from datetime import datetime

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.attendance import CamelModel


class JoinTrackingCreate(CamelModel):
    """
    Audit entry submitted when a user joins a meeting from the dashboard.
    """

    meeting_id: str = Field(..., min_length=1, examples=["85746065432"])
    meeting_topic: str | None = Field(None, examples=["CS101 Lecture 4"])
    user_id: str | None = Field(None, examples=["64f1c2"])
    user_name: str | None = Field(None, examples=["Ada Lovelace"])
    user_email: str | None = Field(None, examples=["ada@example.edu"])
    student_id: str | None = Field(None, examples=["S-1024"])
    participant_count: int = Field(1, ge=0, examples=[12])
    timestamp: datetime | None = Field(
        None,
        description="Time of the join. Defaults to the server time.",
    )


class JoinTrackingRead(JoinTrackingCreate):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    tracking_id: str = Field(..., examples=["3f0c9a4e2b6d4f51"])
    timestamp: datetime


class JoinTrackingHistory(CamelModel):
    """
    Response of GET /api/zoom/join-tracking.
    """

    success: bool = True
    current: JoinTrackingRead | None = Field(
        None, description="Most recent entry, if any."
    )
    data: list[JoinTrackingRead] = Field(
        default_factory=list, description="Entries, newest first."
    )
