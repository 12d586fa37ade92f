# app/realtime/server.py
from __future__ import annotations

import inspect
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

import socketio

from app.core.config import get_settings
from app.db.session import AsyncSessionLocal
from app.realtime import events
from app.schemas.attendance import MeetingAttendance, ParticipantAttendance
from app.services.attendance_service import apply_threshold, to_tracker_payload
from app.services.attendance_tracker import MeetingNotFoundError, build_meeting_attendance

logger = logging.getLogger(__name__)


def _cors_origins(raw: str) -> Any:
    if raw.strip() == "*":
        return "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_socket_server() -> socketio.AsyncServer:
    settings = get_settings()
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=_cors_origins(settings.SOCKETIO_CORS_ORIGINS),
    )


def _timestamp() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def snapshot_message(attendance: MeetingAttendance) -> Dict[str, Any]:
    """
    Message body of attendance85Initial / attendance85Update.
    """
    return {
        "meetingId": attendance.meeting_id,
        "version": attendance.version,
        "data": to_tracker_payload(attendance),
        "timestamp": _timestamp(),
    }


class SubscriptionRegistry:
    """
    Threshold each subscribed socket asked for, per meeting.

    `None` means the configured ATTENDANCE_THRESHOLD; those sockets share
    the meeting's default room.
    """

    def __init__(self) -> None:
        self._by_sid: Dict[str, Dict[str, Optional[float]]] = {}

    def add(self, sid: str, meeting_id: str, threshold: Optional[float]) -> Optional[str]:
        """
        Record a subscription. Returns the room the socket sat in before for
        the same meeting, if any.
        """
        previous = self.room_of(sid, meeting_id)
        self._by_sid.setdefault(sid, {})[meeting_id] = threshold
        return previous

    def room_of(self, sid: str, meeting_id: str) -> Optional[str]:
        by_meeting = self._by_sid.get(sid, {})
        if meeting_id not in by_meeting:
            return None
        return events.tracker_room(meeting_id, by_meeting[meeting_id])

    def remove(self, sid: str, meeting_id: str) -> Optional[str]:
        room = self.room_of(sid, meeting_id)
        by_meeting = self._by_sid.get(sid)
        if by_meeting is not None:
            by_meeting.pop(meeting_id, None)
            if not by_meeting:
                del self._by_sid[sid]
        return room

    def drop(self, sid: str) -> None:
        self._by_sid.pop(sid, None)

    def thresholds(self, meeting_id: str) -> Set[float]:
        """
        Custom thresholds currently subscribed for the meeting.
        """
        return {
            by_meeting[meeting_id]
            for by_meeting in self._by_sid.values()
            if by_meeting.get(meeting_id) is not None
        }


subscriptions = SubscriptionRegistry()


class AttendanceBroadcaster:
    """
    Fans attendance changes out to connected dashboards.

    Every payload carries the meeting `version` so clients can drop
    out-of-order deliveries. Emit failures are logged and never propagate
    to the request that triggered them.
    """

    def __init__(self, server: Any, registry: Optional[SubscriptionRegistry] = None) -> None:
        self.server = server
        self.registry = registry if registry is not None else subscriptions

    async def _emit(self, event: str, data: Dict[str, Any], room: Optional[str] = None) -> None:
        try:
            if room is None:
                await self.server.emit(event, data)
            else:
                await self.server.emit(event, data, room=room)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Socket.IO emit of %s failed: %s", event, exc)

    async def participant_joined(
        self,
        meeting_id: str,
        participant: ParticipantAttendance,
        version: int,
    ) -> None:
        payload = {
            "meetingId": meeting_id,
            "participant": participant.model_dump(mode="json", by_alias=True),
            "version": version,
            "timestamp": _timestamp(),
        }
        await self._emit(events.PARTICIPANT_JOINED, payload)
        await self._emit(events.PARTICIPANT_JOINED_NS, payload)

    async def participant_left(
        self,
        meeting_id: str,
        participant: ParticipantAttendance,
        version: int,
    ) -> None:
        payload = {
            "meetingId": meeting_id,
            "participant": participant.model_dump(mode="json", by_alias=True),
            "version": version,
            "timestamp": _timestamp(),
        }
        await self._emit(events.PARTICIPANT_LEFT, payload)

    async def meeting_started(self, meeting_id: str, version: int) -> None:
        payload = {"meetingId": meeting_id, "version": version, "timestamp": _timestamp()}
        await self._emit(events.MEETING_STARTED, payload)
        await self._emit(events.MEETING_STARTED_NS, payload)

    async def meeting_ended(self, meeting_id: str, version: int) -> None:
        payload = {"meetingId": meeting_id, "version": version, "timestamp": _timestamp()}
        await self._emit(events.MEETING_ENDED, payload)
        await self._emit(events.MEETING_ENDED_NS, payload)
        await self._emit(events.ANALYTICS_REFRESH, payload)

    async def participant_linked(
        self,
        meeting_id: str,
        participant: ParticipantAttendance,
        version: int,
    ) -> None:
        payload = {
            "meetingId": meeting_id,
            "participant": participant.model_dump(mode="json", by_alias=True),
            "version": version,
            "timestamp": _timestamp(),
        }
        await self._emit(events.PARTICIPANT_LINKED, payload)

    async def attendance_update(self, attendance: MeetingAttendance) -> None:
        """
        attendance85Update to the default room, plus one re-classified
        update per custom threshold some subscriber asked for.
        """
        meeting_id = str(attendance.meeting_id)
        await self._emit(
            events.ATTENDANCE_85_UPDATE,
            snapshot_message(attendance),
            room=events.tracker_room(meeting_id),
        )
        for threshold in sorted(self.registry.thresholds(meeting_id)):
            await self._emit(
                events.ATTENDANCE_85_UPDATE,
                snapshot_message(apply_threshold(attendance, threshold)),
                room=events.tracker_room(meeting_id, threshold),
            )


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


def _parse_threshold(options: Any) -> Optional[float]:
    if not isinstance(options, dict) or options.get("threshold") is None:
        return None
    value = float(options["threshold"])
    if not math.isfinite(value) or value < 0 or value > 100:
        raise ValueError("threshold must be a number between 0 and 100")
    return value


async def handle_subscribe(
    server: Any,
    sid: str,
    data: Any,
    session_factory: Callable[[], Any] = AsyncSessionLocal,
    registry: Optional[SubscriptionRegistry] = None,
) -> None:
    """
    subscribe85AttendanceTracker: join the meeting room for the requested
    threshold and push the current snapshot to the subscriber only.

    Re-subscribing with another threshold moves the socket to that
    threshold's room, so later attendance85Update messages keep using it.
    """
    registry = registry if registry is not None else subscriptions
    meeting_id = str(data.get("meetingId") or "") if isinstance(data, dict) else ""
    if not meeting_id:
        await server.emit(events.ATTENDANCE_85_ERROR, {"error": "meetingId is required"}, to=sid)
        return

    try:
        threshold = _parse_threshold(data.get("options"))
    except (TypeError, ValueError) as exc:
        await server.emit(
            events.ATTENDANCE_85_ERROR,
            {"meetingId": meeting_id, "error": f"Invalid threshold: {exc}"},
            to=sid,
        )
        return

    room = events.tracker_room(meeting_id, threshold)
    previous = registry.add(sid, meeting_id, threshold)
    if previous is not None and previous != room:
        await _maybe_await(server.leave_room(sid, previous))
    await _maybe_await(server.enter_room(sid, room))
    await server.emit(
        events.ATTENDANCE_85_SUBSCRIBED,
        {"meetingId": meeting_id, "threshold": threshold, "timestamp": _timestamp()},
        to=sid,
    )

    try:
        async with session_factory() as db:
            attendance = await build_meeting_attendance(db, meeting_id, threshold=threshold)
    except MeetingNotFoundError as exc:
        await server.emit(
            events.ATTENDANCE_85_ERROR,
            {"meetingId": meeting_id, "error": str(exc)},
            to=sid,
        )
        return

    await server.emit(events.ATTENDANCE_85_INITIAL, snapshot_message(attendance), to=sid)
    logger.info(
        "Socket %s subscribed to attendance of meeting %s (threshold=%s)",
        sid,
        meeting_id,
        threshold,
    )


async def handle_unsubscribe(
    server: Any,
    sid: str,
    data: Any,
    registry: Optional[SubscriptionRegistry] = None,
) -> None:
    registry = registry if registry is not None else subscriptions
    meeting_id = str(data.get("meetingId") or "") if isinstance(data, dict) else ""
    if not meeting_id:
        return
    room = registry.remove(sid, meeting_id) or events.tracker_room(meeting_id)
    await _maybe_await(server.leave_room(sid, room))
    await server.emit(
        events.ATTENDANCE_85_UNSUBSCRIBED,
        {"meetingId": meeting_id, "timestamp": _timestamp()},
        to=sid,
    )


def register_handlers(server: socketio.AsyncServer) -> None:
    async def connect(sid, environ, auth=None):
        logger.debug("Socket connected: %s", sid)

    async def disconnect(sid, *args):
        # Socket.IO drops the rooms itself; only the thresholds are ours.
        subscriptions.drop(sid)
        logger.debug("Socket disconnected: %s", sid)

    async def subscribe(sid, data):
        await handle_subscribe(server, sid, data)

    async def unsubscribe(sid, data):
        await handle_unsubscribe(server, sid, data)

    server.on("connect", connect)
    server.on("disconnect", disconnect)
    server.on(events.SUBSCRIBE_85, subscribe)
    server.on(events.UNSUBSCRIBE_85, unsubscribe)


# Process-wide server + broadcaster, wired up by app.main
sio = create_socket_server()
register_handlers(sio)

_broadcaster_instance: Optional[AttendanceBroadcaster] = None


def get_broadcaster() -> AttendanceBroadcaster:
    """
    FastAPI dependency returning the shared broadcaster.
    """
    global _broadcaster_instance
    if _broadcaster_instance is None:
        _broadcaster_instance = AttendanceBroadcaster(sio)
    return _broadcaster_instance
