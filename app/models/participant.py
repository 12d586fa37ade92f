# app/models/participant.py
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.base import Base


class Participant(Base):
    """
    A person seen in a meeting, identified by `participant_key` (Zoom user id,
    falling back to email or display name).
    """

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)

    meeting_pk = Column(
        Integer,
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    participant_key = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False, default="Unknown")
    email = Column(String(255), nullable=True)

    # Optional student directory link
    student_id = Column(String(64), nullable=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    department = Column(String(128), nullable=True)

    # Optional authenticated platform user
    user_id = Column(String(64), nullable=True)
    username = Column(String(128), nullable=True)
    role = Column(String(32), nullable=True)

    meeting = relationship("Meeting", backref="participants")
    sessions = relationship(
        "AttendanceSession",
        back_populates="participant",
        cascade="all, delete-orphan",
        order_by="AttendanceSession.join_time",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "meeting_pk",
            "participant_key",
            name="uq_participants_meeting_key",
        ),
    )

    def __repr__(self) -> str:
        return f"<Participant id={self.id} key={self.participant_key} meeting_pk={self.meeting_pk}>"


class AttendanceSession(Base):
    """
    One join/leave cycle. `leave_time` is NULL while the participant is
    still in the meeting.
    """

    __tablename__ = "attendance_sessions"

    id = Column(Integer, primary_key=True, index=True)

    participant_pk = Column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    join_time = Column(DateTime(timezone=True), nullable=False)
    leave_time = Column(DateTime(timezone=True), nullable=True)

    participant = relationship("Participant", back_populates="sessions")

    def __repr__(self) -> str:
        return (
            f"<AttendanceSession id={self.id} participant_pk={self.participant_pk} "
            f"join={self.join_time} leave={self.leave_time}>"
        )
