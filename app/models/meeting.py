# app/models/meeting.py
from sqlalchemy import Column, DateTime, Integer, String, func

from app.db.base import Base


class Meeting(Base):
    """
    A Zoom meeting whose participants are tracked for attendance.

    `version` is a monotonic counter bumped on every join/leave/start/end so
    that dashboards can discard responses older than what they already show.
    """

    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)

    meeting_id = Column(String(128), nullable=False, unique=True, index=True)
    topic = Column(String(255), nullable=False, default="Untitled meeting")

    # Scheduled length in minutes; authoritative denominator when set.
    duration = Column(Integer, nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(32), nullable=False, default="scheduled")
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<Meeting id={self.id} meeting_id={self.meeting_id} "
            f"status={self.status} version={self.version}>"
        )
