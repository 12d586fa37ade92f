# app/services/join_tracking.py
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.join_tracking import JoinTrackingEntry
from app.schemas.join_tracking import JoinTrackingCreate, JoinTrackingRead
from app.services.attendance_calculator import utcnow

logger = logging.getLogger(__name__)


class JoinTrackingStorage(ABC):
    """
    Storage port for the join-tracking audit log.

    Implementations only ever append; entries are not updated in place.
    """

    @abstractmethod
    async def append(self, entry: JoinTrackingRead) -> None:
        ...

    @abstractmethod
    async def newest(self, limit: Optional[int] = None) -> List[JoinTrackingRead]:
        """
        Entries ordered newest first, optionally truncated to `limit`.
        """

    @abstractmethod
    async def clear(self) -> int:
        """
        Remove every entry, returning how many were removed.
        """


class InMemoryJoinTrackingStorage(JoinTrackingStorage):
    """
    Process-local storage, used by the sync client and tests.
    """

    def __init__(self) -> None:
        self._entries: List[JoinTrackingRead] = []

    async def append(self, entry: JoinTrackingRead) -> None:
        self._entries.append(entry)

    async def newest(self, limit: Optional[int] = None) -> List[JoinTrackingRead]:
        ordered = sorted(self._entries, key=lambda e: e.timestamp, reverse=True)
        return ordered if limit is None else ordered[:limit]

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed


class SqlJoinTrackingStorage(JoinTrackingStorage):
    """
    Storage backed by the `join_tracking_entries` table.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def append(self, entry: JoinTrackingRead) -> None:
        self.db.add(JoinTrackingEntry(**entry.model_dump()))
        await self.db.commit()

    async def newest(self, limit: Optional[int] = None) -> List[JoinTrackingRead]:
        stmt = select(JoinTrackingEntry).order_by(
            JoinTrackingEntry.timestamp.desc(), JoinTrackingEntry.id.desc()
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return [JoinTrackingRead.model_validate(row) for row in result.scalars().all()]

    async def clear(self) -> int:
        result = await self.db.execute(delete(JoinTrackingEntry))
        await self.db.commit()
        return result.rowcount or 0


class JoinTrackingLog:
    """
    Append-only log of dashboard join events.

    Replaces the browser-side "current join" + "last N joins" keys with one
    log: the current entry is simply the newest one.
    """

    def __init__(self, storage: JoinTrackingStorage, history_limit: int = 10) -> None:
        self.storage = storage
        self.history_limit = history_limit

    async def record(self, payload: JoinTrackingCreate) -> JoinTrackingRead:
        data = payload.model_dump()
        data["timestamp"] = payload.timestamp or utcnow()
        entry = JoinTrackingRead(tracking_id=uuid.uuid4().hex, **data)
        await self.storage.append(entry)
        logger.info(
            "Join tracked for meeting %s (user=%s)", entry.meeting_id, entry.user_id or entry.user_name
        )
        return entry

    async def history(self, limit: Optional[int] = None) -> List[JoinTrackingRead]:
        return await self.storage.newest(limit or self.history_limit)

    async def current(self) -> Optional[JoinTrackingRead]:
        newest = await self.storage.newest(1)
        return newest[0] if newest else None

    async def clear(self) -> int:
        removed = await self.storage.clear()
        logger.info("Cleared %d join-tracking entries", removed)
        return removed
