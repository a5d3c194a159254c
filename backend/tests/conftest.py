"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from parley.chat.engine import DeliveryEngine
from parley.chat.hub import ConnectionHub
from parley.chat.presence import PresenceRegistry
from parley.chat.store import ConversationStore
from parley.config import AppConfig, StorageSettings
from parley.main import create_app
from parley.storage import Database


class FakeSocket:
    """Stand-in for a WebSocket that records everything sent to it."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)

    def of_type(self, message_type: str) -> list:
        return [m for m in self.sent if m.get("type") == message_type]


@pytest.fixture
def db():
    """In-memory database, closed after the test."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def store(db):
    return ConversationStore(db)


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def engine(store, hub):
    return DeliveryEngine(PresenceRegistry(), store, hub)


@pytest.fixture
def connect(hub):
    """Register a FakeSocket in the hub under the given connection id."""
    def _connect(connection_id: str, fail: bool = False) -> FakeSocket:
        socket = FakeSocket(fail=fail)
        hub.register(connection_id, socket)
        return socket
    return _connect


@pytest.fixture
def api_client():
    """Provide a TestClient for an app backed by an in-memory database.

    Entering the client runs the lifespan, which builds the chat core.
    """
    config = AppConfig(storage=StorageSettings(db_path=":memory:"))
    with TestClient(create_app(config)) as client:
        yield client
