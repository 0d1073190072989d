"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomhub.config import AppConfig, DatabaseSettings
from roomhub.main import create_app
from roomhub.rooms.hub import RoomHub
from roomhub.rooms.store import RoomStore


class FakeSocket:
    """Stands in for a WebSocket: records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(message)

    def events(self, event_type=None):
        if event_type is None:
            return list(self.sent)
        return [m["data"] for m in self.sent if m["event"] == event_type]


@pytest.fixture
def store():
    """An open in-memory RoomStore."""
    room_store = RoomStore(":memory:")
    room_store.open()
    yield room_store
    room_store.close()


@pytest.fixture
def hub(store):
    return RoomHub(store)


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def connect(hub):
    """Connect a fake socket to the hub; returns (connection_id, socket)."""
    def _connect(fail: bool = False):
        socket = FakeSocket(fail=fail)
        return hub.connect(socket), socket
    return _connect


@pytest.fixture
def api_client():
    """Provide a TestClient for an app backed by an in-memory store.

    Used as a context manager so the lifespan (store open/close) runs.
    """
    app = create_app(AppConfig(database=DatabaseSettings(path=":memory:")))
    with TestClient(app) as client:
        yield client
