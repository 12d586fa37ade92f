# tests/test_attendance_api_client.py
import json
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx
import pytest

from app.realtime.sync import AttendanceSyncClient
from app.schemas.attendance import PayloadSource
from app.schemas.join_tracking import JoinTrackingCreate
from app.services.attendance_api_client import AttendanceApiClient, AttendanceApiError


class _FakeResponse:
    def __init__(self, status_code: int, json_data: Any):
        self.status_code = status_code
        self._json_data = json_data
        # For error messages
        self.text = str(json_data)

    def json(self) -> Any:
        return self._json_data


class _FakeAsyncClient:
    """
    Minimal stand-in for httpx.AsyncClient.

    Responses are looked up by URL path; every request is recorded so tests
    can assert on method, URL, headers and params.
    """

    requests: List[Dict[str, Any]] = []
    routes: Dict[str, _FakeResponse] = {}

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    async def __aenter__(self) -> "_FakeAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> _FakeResponse:
        _FakeAsyncClient.requests.append(
            {"method": method, "url": url, "headers": headers, "params": params, "json": json}
        )
        path = url.split("://", 1)[-1].split("/", 1)[-1]
        return _FakeAsyncClient.routes.get(
            "/" + path, _FakeResponse(HTTPStatus.NOT_FOUND, {"detail": "Not Found"})
        )


@pytest.fixture
def fake_http(monkeypatch):
    _FakeAsyncClient.requests = []
    _FakeAsyncClient.routes = {}
    monkeypatch.setattr(httpx, "AsyncClient", _FakeAsyncClient)
    return _FakeAsyncClient


def _client(**kwargs) -> AttendanceApiClient:
    return AttendanceApiClient(base_url="http://backend.local/", **kwargs)


def test_base_url_is_required():
    with pytest.raises(ValueError):
        AttendanceApiClient(base_url="")


@pytest.mark.asyncio
async def test_get_json_builds_url_and_auth_header(fake_http):
    fake_http.routes["/api/meetings"] = _FakeResponse(HTTPStatus.OK, [])

    await _client(auth_token="tok").get_json("/api/meetings")

    last = fake_http.requests[-1]
    assert last["method"] == "GET"
    assert last["url"] == "http://backend.local/api/meetings"
    assert last["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_non_2xx_raises(fake_http):
    with pytest.raises(AttendanceApiError):
        await _client().get_json("/api/missing")


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped(monkeypatch):
    class _BrokenClient(_FakeAsyncClient):
        async def request(self, *args, **kwargs):
            raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "AsyncClient", _BrokenClient)

    with pytest.raises(AttendanceApiError):
        await _client().get_json("/api/meetings")


@pytest.mark.asyncio
async def test_tracker_attendance_is_sanitized_and_adapted(fake_http):
    fake_http.routes["/api/attendance-tracker/attendance/m-1"] = _FakeResponse(
        HTTPStatus.OK,
        {
            "success": True,
            "meetingId": "m-1",
            "version": 4,
            "meeting": {"meetingId": "m-1", "duration": 60},
            "participants": [
                {
                    "participantId": "u-1",
                    "name": "Ada",
                    "sessions": [{"joinTime": "2025-01-10T10:00:00Z", "leaveTime": None}],
                },
                "garbage",
            ],
        },
    )

    snapshot = await _client().get_tracker_attendance("m-1", threshold=80)

    assert fake_http.requests[-1]["params"] == {"enriched": "true", "threshold": 80}
    assert snapshot.version == 4
    assert snapshot.source == PayloadSource.TRACKER
    assert snapshot.meeting.duration == 60
    assert [p.name for p in snapshot.participants] == ["Ada"]
    assert snapshot.payload.statistics == {"total": 1}
    assert snapshot.payload.authentication_stats.unauthenticated_participants == 1


@pytest.mark.asyncio
async def test_webhook_attendance_groups_rows(fake_http):
    fake_http.routes["/api/webhooks/attendance/m-1"] = _FakeResponse(
        HTTPStatus.OK,
        {
            "participants": [
                {"participant_user_id": "u-1", "user_name": "Ada", "join_time": "2025-01-10T10:00:00Z", "leave_time": "2025-01-10T10:10:00Z"},
                {"participant_user_id": "u-1", "user_name": "Ada", "join_time": "2025-01-10T10:20:00Z", "leave_time": None},
            ]
        },
    )

    snapshot = await _client().get_webhook_attendance("m-1")

    assert snapshot.version is None
    assert snapshot.meeting.meeting_id == "m-1"
    assert len(snapshot.participants) == 1
    assert len(snapshot.participants[0].sessions) == 2


@pytest.mark.asyncio
async def test_live_participants_with_unexpected_body_is_empty(fake_http):
    fake_http.routes["/api/zoom/meeting/m-1/live-participants"] = _FakeResponse(HTTPStatus.OK, None)

    snapshot = await _client().get_live_participants("m-1")

    assert snapshot.participants == []
    assert snapshot.source == PayloadSource.LIVE
    assert snapshot.payload.statistics == {"total": 0}


@pytest.mark.asyncio
async def test_list_meetings(fake_http):
    fake_http.routes["/api/meetings"] = _FakeResponse(
        HTTPStatus.OK, [{"meetingId": "m-1", "topic": "CS101", "duration": 60}]
    )

    meetings = await _client().list_meetings()

    assert [m.meeting_id for m in meetings] == ["m-1"]
    assert meetings[0].topic == "CS101"


@pytest.mark.asyncio
async def test_join_tracking_calls(fake_http):
    entry = {
        "trackingId": "abc",
        "meetingId": "m-1",
        "userName": "Ada",
        "participantCount": 1,
        "timestamp": "2025-01-10T10:00:00Z",
    }
    fake_http.routes["/api/zoom/join-tracking"] = _FakeResponse(
        HTTPStatus.OK, {"success": True, "current": entry, "data": [entry]}
    )

    history = await _client().get_join_tracking(limit=5)
    assert fake_http.requests[-1]["params"] == {"limit": 5}
    assert history.current.tracking_id == "abc"

    fake_http.routes["/api/zoom/join-tracking"] = _FakeResponse(HTTPStatus.CREATED, entry)
    created = await _client().record_join_tracking(JoinTrackingCreate(meeting_id="m-1", user_name="Ada"))

    sent = fake_http.requests[-1]
    assert sent["method"] == "POST"
    assert sent["json"]["meetingId"] == "m-1"
    assert "timestamp" not in sent["json"]
    assert created.user_name == "Ada"


class _HtmlResponse(_FakeResponse):
    def __init__(self, status_code: int, text: str):
        super().__init__(status_code, None)
        self.text = text

    def json(self) -> Any:
        raise json.JSONDecodeError("Expecting value", self.text, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["<html>proxy error</html>", ""])
async def test_2xx_body_that_is_not_json_raises_api_error(fake_http, body):
    fake_http.routes["/api/meetings"] = _HtmlResponse(HTTPStatus.OK, body)

    with pytest.raises(AttendanceApiError):
        await _client().get_json("/api/meetings")
    with pytest.raises(AttendanceApiError):
        await _client().post_json("/api/meetings", json={})


@pytest.mark.asyncio
async def test_refresh_keeps_last_good_snapshot_on_html_body(fake_http):
    path = "/api/attendance-tracker/attendance/m-1"
    fake_http.routes[path] = _FakeResponse(
        HTTPStatus.OK,
        {"version": 2, "meeting": {"duration": 60}, "participants": [{"participantId": "u-1", "name": "Ada"}]},
    )
    sync = AttendanceSyncClient(_client())
    assert await sync.refresh("m-1") is True
    before = sync.store.get("m-1")

    fake_http.routes[path] = _HtmlResponse(HTTPStatus.OK, "<html>proxy error</html>")

    assert await sync.refresh("m-1") is False
    assert sync.store.get("m-1") is before
    assert [p.name for p in sync.store.read("m-1").participants] == ["Ada"]
