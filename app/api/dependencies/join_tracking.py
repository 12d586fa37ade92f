# app/api/dependencies/join_tracking.py
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.session import get_db
from app.services.join_tracking import JoinTrackingLog, SqlJoinTrackingStorage


async def get_join_tracking_log(db: AsyncSession = Depends(get_db)) -> JoinTrackingLog:
    """
    Join-tracking log backed by the request's database session.
    """
    settings = get_settings()
    return JoinTrackingLog(
        SqlJoinTrackingStorage(db),
        history_limit=settings.JOIN_TRACKING_HISTORY_LIMIT,
    )
