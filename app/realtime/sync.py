# app/realtime/sync.py
"""
Client-side attendance sync.

Socket.IO pushes and a polling timer both trigger re-fetches of the same
meeting. Every fetch takes a sequence number from a per-meeting fence
before it starts, and the store only accepts a snapshot whose
`(version, sequence)` is newer than what it holds, so a slow response can
never overwrite a fresher one.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from app.core.config import get_settings
from app.realtime import events
from app.schemas.attendance import MeetingAttendance, PayloadSource
from app.services.attendance_api_client import (
    AttendanceApiClient,
    AttendanceApiError,
    AttendanceSnapshot,
    snapshot_from_payload,
)
from app.services.attendance_classifier import AttendanceClassifier
from app.services.attendance_service import calculate_meeting_attendance

logger = logging.getLogger(__name__)


class RequestFence:
    """
    Monotonic per-meeting sequence numbers.
    """

    def __init__(self) -> None:
        self._sequences: Dict[str, int] = {}

    def next(self, meeting_id: str) -> int:
        value = self._sequences.get(meeting_id, 0) + 1
        self._sequences[meeting_id] = value
        return value

    def latest(self, meeting_id: str) -> int:
        return self._sequences.get(meeting_id, 0)


@dataclass
class _StoredSnapshot:
    snapshot: AttendanceSnapshot
    sequence: int

    @property
    def version(self) -> Optional[int]:
        return self.snapshot.version


class AttendanceSyncStore:
    """
    Single source of truth for the attendance of every tracked meeting.

    Rules
    -----
    - When both the stored and the incoming snapshot carry a backend version
      and the versions differ, the higher version wins.
    - Otherwise (same version, or a source without versions) the higher
      request sequence wins.
    - Reads recompute durations, percentages and statuses at read time;
      only the raw sessions are stored.
    """

    def __init__(
        self,
        classifier: Optional[AttendanceClassifier] = None,
        threshold: Optional[float] = None,
        merge_overlaps: Optional[bool] = None,
    ) -> None:
        self.classifier = classifier
        self.threshold = threshold
        self.merge_overlaps = merge_overlaps
        self._entries: Dict[str, _StoredSnapshot] = {}

    def _is_newer(self, current: Optional[_StoredSnapshot], snapshot: AttendanceSnapshot, sequence: int) -> bool:
        if current is None:
            return True
        if snapshot.version is not None and current.version is not None:
            if snapshot.version != current.version:
                return snapshot.version > current.version
        return sequence > current.sequence

    def apply(self, snapshot: AttendanceSnapshot, sequence: int) -> bool:
        """
        Store `snapshot` if it is newer than the current one.

        Returns True when accepted, False when discarded as stale.
        """
        current = self._entries.get(snapshot.meeting_id)
        if not self._is_newer(current, snapshot, sequence):
            logger.debug(
                "Discarding stale snapshot for meeting %s (version=%s, seq=%d; have version=%s, seq=%d)",
                snapshot.meeting_id,
                snapshot.version,
                sequence,
                current.version,
                current.sequence,
            )
            return False

        self._entries[snapshot.meeting_id] = _StoredSnapshot(snapshot=snapshot, sequence=sequence)
        return True

    def get(self, meeting_id: str) -> Optional[AttendanceSnapshot]:
        entry = self._entries.get(meeting_id)
        return entry.snapshot if entry else None

    def read(self, meeting_id: str, now: Optional[datetime] = None) -> Optional[MeetingAttendance]:
        entry = self._entries.get(meeting_id)
        if entry is None:
            return None
        snapshot = entry.snapshot
        return calculate_meeting_attendance(
            snapshot.participants,
            snapshot.meeting,
            self.classifier,
            now=now,
            merge_overlaps=self.merge_overlaps,
            threshold=self.threshold,
            version=snapshot.version or 0,
        )

    def discard(self, meeting_id: str) -> None:
        self._entries.pop(meeting_id, None)

    @property
    def meeting_ids(self) -> List[str]:
        return list(self._entries)


def _meeting_id_of(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    value = data.get("meetingId") or data.get("meeting_id")
    return str(value) if value else None


class AttendanceSyncClient:
    """
    Keeps an AttendanceSyncStore current for a set of tracked meetings.

    Attach it to a `socketio.AsyncClient`, track meetings, then either let
    socket events drive refreshes or run `poll_forever()` alongside.
    """

    def __init__(
        self,
        api: AttendanceApiClient,
        store: Optional[AttendanceSyncStore] = None,
        fence: Optional[RequestFence] = None,
        poll_interval: Optional[float] = None,
        threshold: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.api = api
        self.threshold = threshold
        self.store = store or AttendanceSyncStore(threshold=threshold)
        self.fence = fence or RequestFence()
        self.poll_interval = poll_interval or settings.SYNC_POLL_INTERVAL_SECONDS
        self.tracked: Set[str] = set()
        self.sio: Any = None

    # --- tracking ----------------------------------------------------------

    async def track(self, meeting_id: str) -> None:
        self.tracked.add(meeting_id)
        await self._subscribe(meeting_id)
        await self.refresh(meeting_id)

    async def untrack(self, meeting_id: str) -> None:
        self.tracked.discard(meeting_id)
        self.store.discard(meeting_id)
        if self._connected():
            await self.sio.emit(events.UNSUBSCRIBE_85, {"meetingId": meeting_id})

    def _connected(self) -> bool:
        return self.sio is not None and getattr(self.sio, "connected", False)

    async def _subscribe(self, meeting_id: str) -> None:
        if not self._connected():
            return
        data: Dict[str, Any] = {"meetingId": meeting_id}
        if self.threshold is not None:
            data["options"] = {"threshold": self.threshold}
        await self.sio.emit(events.SUBSCRIBE_85, data)

    # --- fetching ----------------------------------------------------------

    async def refresh(self, meeting_id: str) -> bool:
        """
        Fenced re-fetch of one meeting.

        Returns True if the response was stored. A failed request keeps the
        last good snapshot and returns False.
        """
        sequence = self.fence.next(meeting_id)
        try:
            snapshot = await self.api.get_tracker_attendance(meeting_id, threshold=self.threshold)
        except AttendanceApiError as exc:
            logger.warning("Attendance refresh for meeting %s failed: %s", meeting_id, exc)
            return False
        return self.store.apply(snapshot, sequence)

    async def refresh_all(self, meeting_ids: Optional[Iterable[str]] = None) -> None:
        targets = list(meeting_ids if meeting_ids is not None else self.tracked)
        if targets:
            await asyncio.gather(*(self.refresh(m) for m in targets))

    # --- socket events -----------------------------------------------------

    async def handle_event(self, event: str, data: Any = None) -> None:
        """
        Route one Socket.IO event.

        - attendance85Initial / attendance85Update patch the store directly.
        - attendance85Error is logged.
        - Every other known event triggers a fenced re-fetch of the meeting
          it names, or of all tracked meetings when it names none.
        """
        meeting_id = _meeting_id_of(data)

        if event in events.SNAPSHOT_EVENTS:
            if meeting_id is None or meeting_id not in self.tracked:
                return
            sequence = self.fence.next(meeting_id)
            snapshot = snapshot_from_payload(meeting_id, data.get("data"), PayloadSource.TRACKER)
            if snapshot.version is None and isinstance(data.get("version"), int):
                snapshot.version = data["version"]
            self.store.apply(snapshot, sequence)
            return

        if event == events.ATTENDANCE_85_ERROR:
            logger.warning("Attendance subscription error for meeting %s: %s", meeting_id, data)
            return

        if event not in events.REFRESH_EVENTS:
            return

        if meeting_id is None:
            await self.refresh_all()
        elif meeting_id in self.tracked:
            await self.refresh(meeting_id)

    async def _on_connect(self) -> None:
        logger.info("Socket connected, re-subscribing %d meeting(s)", len(self.tracked))
        for meeting_id in sorted(self.tracked):
            await self._subscribe(meeting_id)
        await self.refresh_all()

    def attach(self, sio_client: Any) -> None:
        """
        Register handlers for every attendance channel on `sio_client`
        (a `socketio.AsyncClient`).
        """
        self.sio = sio_client
        sio_client.on("connect", self._on_connect)

        names = set(events.REFRESH_EVENTS) | set(events.SNAPSHOT_EVENTS) | {events.ATTENDANCE_85_ERROR}
        for name in sorted(names):
            sio_client.on(name, self._handler_for(name))

    def _handler_for(self, event: str):
        async def handler(data=None):
            await self.handle_event(event, data)

        return handler

    async def connect(self, url: str, sio_client: Any = None) -> None:
        if sio_client is not None:
            self.attach(sio_client)
        if self.sio is None:
            raise RuntimeError("No Socket.IO client attached")
        await self.sio.connect(url)

    async def poll_forever(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Refresh every tracked meeting each `poll_interval` seconds until
        `stop` is set.
        """
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.refresh_all()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
