# app/services/attendance_api_client.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import get_settings
from app.schemas.attendance import (
    AttendancePayload,
    MeetingInfo,
    ParticipantRecord,
    PayloadSource,
)
from app.schemas.join_tracking import JoinTrackingCreate, JoinTrackingHistory, JoinTrackingRead
from app.services.payload_normalizer import (
    adapt_meeting_info,
    adapt_participants,
    sanitize_attendance_payload,
)

logger = logging.getLogger(__name__)


class AttendanceApiError(RuntimeError):
    """
    Raised when a call to the attendance backend fails at the transport
    level or returns a non-2xx response.
    """


@dataclass
class AttendanceSnapshot:
    """
    One meeting's attendance as fetched from the backend, already sanitized
    and adapted to canonical records. Derived fields are not stored here.
    """

    meeting_id: str
    source: PayloadSource
    participants: List[ParticipantRecord] = field(default_factory=list)
    meeting: MeetingInfo = field(default_factory=MeetingInfo)
    version: Optional[int] = None
    payload: AttendancePayload = field(default_factory=AttendancePayload)


def _version_of(payload: AttendancePayload) -> Optional[int]:
    raw = (payload.model_extra or {}).get("version")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    return int(raw)


def snapshot_from_payload(
    meeting_id: str,
    body: Any,
    source: PayloadSource,
) -> AttendanceSnapshot:
    """
    Sanitize a raw response body and adapt it into an AttendanceSnapshot.

    Never raises: malformed bodies yield an empty snapshot.
    """
    payload = sanitize_attendance_payload(body)
    extra = payload.model_extra or {}
    meeting = adapt_meeting_info(extra.get("meeting"))
    if meeting.meeting_id is None:
        meeting = meeting.model_copy(update={"meeting_id": meeting_id})

    return AttendanceSnapshot(
        meeting_id=meeting_id,
        source=source,
        participants=adapt_participants(payload, source),
        meeting=meeting,
        version=_version_of(payload),
        payload=payload,
    )


class AttendanceApiClient:
    """
    Async client for the attendance backend REST API.

    Responsibilities
    ----------------
    - Thin GET/POST helpers over httpx with optional bearer auth.
    - One method per endpoint the dashboards read; every attendance
      response is sanitized and adapted before it is returned, so callers
      only ever see canonical records.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")

        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout_seconds = timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Issue a request against the backend.

        `path` is either an absolute URL or relative to the configured base URL.
        Transport failures are re-raised as AttendanceApiError.
        """
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self._base_url}/{path.lstrip('/')}"

        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.request(
                    method=method.upper(),
                    url=url,
                    headers=headers,
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as exc:
            raise AttendanceApiError(f"{method.upper()} {url} failed: {exc}") from exc

        return resp

    @staticmethod
    def _decode(method: str, path: str, resp: httpx.Response) -> Any:
        if resp.status_code // 100 != 2:
            raise AttendanceApiError(
                f"{method} {path} failed (status={resp.status_code}): {resp.text}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            # Proxies and gateways answer 2xx with HTML or an empty body.
            raise AttendanceApiError(
                f"{method} {path} returned a body that is not JSON: {resp.text[:200]!r}"
            ) from exc

    async def get_json(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET and return the decoded JSON body. Raises AttendanceApiError on
        non-2xx or an undecodable body.
        """
        resp = await self._request("GET", path, params=params)
        return self._decode("GET", path, resp)

    async def post_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """
        POST and return the decoded JSON body. Raises AttendanceApiError on
        non-2xx or an undecodable body.
        """
        resp = await self._request("POST", path, params=params, json=json)
        return self._decode("POST", path, resp)

    # --- attendance -------------------------------------------------------

    async def get_live_participants(self, meeting_id: str) -> AttendanceSnapshot:
        body = await self.get_json(f"/api/zoom/meeting/{meeting_id}/live-participants")
        return snapshot_from_payload(meeting_id, body, PayloadSource.LIVE)

    async def get_tracker_attendance(
        self,
        meeting_id: str,
        threshold: Optional[float] = None,
    ) -> AttendanceSnapshot:
        params: Dict[str, Any] = {"enriched": "true"}
        if threshold is not None:
            params["threshold"] = threshold
        body = await self.get_json(
            f"/api/attendance-tracker/attendance/{meeting_id}", params=params
        )
        return snapshot_from_payload(meeting_id, body, PayloadSource.TRACKER)

    async def get_webhook_attendance(self, meeting_id: str) -> AttendanceSnapshot:
        body = await self.get_json(f"/api/webhooks/attendance/{meeting_id}")
        return snapshot_from_payload(meeting_id, body, PayloadSource.WEBHOOK)

    # --- meetings / join tracking ------------------------------------------

    async def list_meetings(self) -> List[MeetingInfo]:
        body = await self.get_json("/api/meetings")
        if isinstance(body, dict):
            body = body.get("meetings") or body.get("data") or []
        if not isinstance(body, list):
            logger.warning("Unexpected /api/meetings body of type %s", type(body).__name__)
            return []
        return [adapt_meeting_info(m) for m in body]

    async def get_join_tracking(self, limit: Optional[int] = None) -> JoinTrackingHistory:
        params = {"limit": limit} if limit is not None else None
        body = await self.get_json("/api/zoom/join-tracking", params=params)
        return JoinTrackingHistory.model_validate(body)

    async def record_join_tracking(self, entry: JoinTrackingCreate) -> JoinTrackingRead:
        body = await self.post_json(
            "/api/zoom/join-tracking",
            json=entry.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        return JoinTrackingRead.model_validate(body)


# Simple singleton-style accessor wired to app settings
_api_client_instance: Optional[AttendanceApiClient] = None


def get_attendance_api_client() -> AttendanceApiClient:
    """
    Lazily construct the shared client from ATTENDANCE_API_BASE_URL.
    """
    global _api_client_instance
    if _api_client_instance is None:
        settings = get_settings()
        if not settings.ATTENDANCE_API_BASE_URL:
            raise AttendanceApiError(
                "ATTENDANCE_API_BASE_URL must be configured to use the shared attendance client."
            )
        _api_client_instance = AttendanceApiClient(
            base_url=str(settings.ATTENDANCE_API_BASE_URL),
            auth_token=settings.INTERNAL_API_KEY,
            timeout_seconds=settings.ATTENDANCE_API_TIMEOUT_SECONDS,
        )
    return _api_client_instance
