# app/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models in the attendance tracker.
    """
    pass


# Import ORM models so that Base.metadata is aware of them
# This import should stay at the bottom to avoid circular dependencies.
from app.models.meeting import Meeting  # noqa: E402,F401
from app.models.participant import AttendanceSession, Participant  # noqa: E402,F401
from app.models.join_tracking import JoinTrackingEntry  # noqa: E402,F401
