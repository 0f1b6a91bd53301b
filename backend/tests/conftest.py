"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomchat.main import app
from roomchat.realtime import handler
from roomchat.storage import ChatStore


@pytest.fixture(autouse=True)
def memory_store():
    """Use an in-memory ChatStore for each test.

    Prevents tests from creating or reading the file-based roomchat.duckdb.
    """
    ChatStore.reset_instance()
    store = ChatStore.get_instance(db_path=":memory:")
    yield store
    ChatStore.reset_instance()


@pytest.fixture(autouse=True)
def reset_realtime():
    """Clear presence, channels and sessions of the global handler after each test."""
    yield
    handler.reset()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so every WebSocket opened by a test runs on the
    same event loop, like connections to a real server process.
    """
    with TestClient(app) as client:
        yield client


class FakeWebSocket:
    """Records frames the server sends to one connection."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)

    def of_type(self, message_type: str) -> list:
        return [m for m in self.sent if m.get("type") == message_type]

    def last(self, message_type: str) -> dict:
        frames = self.of_type(message_type)
        assert frames, f"no {message_type} frame received"
        return frames[-1]


@pytest.fixture
def fake_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket
