# tests/conftest.py
import asyncio
import os
import tempfile
import uuid
from typing import Any, Dict, List, Tuple

# Must be set before anything imports app.core.config / app.db.session.
_DB_DIR = tempfile.mkdtemp(prefix="attendance-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ.pop("INTERNAL_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from app.db.session import init_db
from app.main import create_app
from app.realtime.server import get_broadcaster


class FakeBroadcaster:
    """
    Records broadcaster calls instead of emitting over Socket.IO.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    async def participant_joined(self, meeting_id, participant, version):
        self.calls.append(("participant_joined", (meeting_id, participant, version)))

    async def participant_left(self, meeting_id, participant, version):
        self.calls.append(("participant_left", (meeting_id, participant, version)))

    async def meeting_started(self, meeting_id, version):
        self.calls.append(("meeting_started", (meeting_id, version)))

    async def meeting_ended(self, meeting_id, version):
        self.calls.append(("meeting_ended", (meeting_id, version)))

    async def participant_linked(self, meeting_id, participant, version):
        self.calls.append(("participant_linked", (meeting_id, participant, version)))

    async def attendance_update(self, attendance):
        self.calls.append(("attendance_update", (attendance,)))


class FakeSocketServer:
    """
    Minimal stand-in for socketio.AsyncServer: records emits and rooms.
    """

    def __init__(self) -> None:
        self.emitted: List[Dict[str, Any]] = []
        self.rooms: Dict[str, set] = {}

    async def emit(self, event, data=None, room=None, to=None, **kwargs):
        self.emitted.append({"event": event, "data": data, "room": room, "to": to})

    async def enter_room(self, sid, room, namespace=None):
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid, room, namespace=None):
        self.rooms.get(room, set()).discard(sid)

    def events(self) -> List[str]:
        return [e["event"] for e in self.emitted]


@pytest.fixture(scope="session", autouse=True)
def _schema() -> None:
    """
    Fresh schema once per test session.
    """
    asyncio.run(init_db())


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient fixture for all tests.

    Uses the application factory so the real routers and lifespan run.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def broadcaster(client: TestClient) -> FakeBroadcaster:
    fake = FakeBroadcaster()
    client.app.dependency_overrides[get_broadcaster] = lambda: fake
    yield fake
    client.app.dependency_overrides.pop(get_broadcaster, None)


@pytest.fixture
def fake_server() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def meeting_id() -> str:
    # Tests share one database, so every test works on its own meeting.
    return f"m-{uuid.uuid4().hex[:12]}"
