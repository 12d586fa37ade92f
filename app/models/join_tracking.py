# app/models/join_tracking.py
from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class JoinTrackingEntry(Base):
    """
    Append-only audit row written whenever a user joins a meeting from the
    dashboard. Rows are never updated.
    """

    __tablename__ = "join_tracking_entries"

    id = Column(Integer, primary_key=True, index=True)

    tracking_id = Column(String(64), nullable=False, unique=True, index=True)
    meeting_id = Column(String(128), nullable=False, index=True)
    meeting_topic = Column(String(255), nullable=True)

    user_id = Column(String(64), nullable=True)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    student_id = Column(String(64), nullable=True)

    participant_count = Column(Integer, nullable=False, default=1)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<JoinTrackingEntry tracking_id={self.tracking_id} meeting_id={self.meeting_id}>"
