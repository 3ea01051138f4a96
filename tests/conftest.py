"""
Pytest configuration - shared fixtures
"""
import sys
import os
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

# Add backend directory to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../backend"))

from supportchat.config import settings
from supportchat.core.limiter import limiter
from supportchat.database import create_db_engine, create_session_factory, init_db
from supportchat.main import app
from supportchat.realtime.protocol import ChatProtocolEngine, ChatSession, SessionState
from supportchat.realtime.registry import SessionRegistry
from supportchat.schemas import UserCreate
from supportchat.services.completion_service import CompletionService
from supportchat.storage import DatabaseStorage, MemoryStorage

BOT_REPLY = "Happy to help with your billing question!"
CHAT_TITLE = "Billing Question"


class FakeConnection:
    """Records pushed events instead of writing to a socket."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []
        self.closed = False

    def mark_closed(self) -> None:
        self.closed = True

    async def send(self, event: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        self.events.append(event)
        return True

    def types(self) -> List[str]:
        return [event["type"] for event in self.events]

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def database_storage(tmp_path) -> DatabaseStorage:
    """SQLite-backed durable store in a temporary directory"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'chat.db'}", echo=False)
    init_db(engine)
    try:
        yield DatabaseStorage(create_session_factory(engine))
    finally:
        engine.dispose()


@pytest.fixture(params=["memory", "database"])
def storage(request):
    """Runs a test once per store variant"""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture
def completion() -> Mock:
    """Completion service that answers instantly without a provider"""
    service = Mock(spec=CompletionService)
    service.generate_reply = AsyncMock(return_value=BOT_REPLY)
    service.generate_title = AsyncMock(return_value=CHAT_TITLE)
    return service


@pytest.fixture
def make_connection():
    """Factory for recording connections"""
    return FakeConnection


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def engine(memory_storage, completion, registry, sleep) -> ChatProtocolEngine:
    return ChatProtocolEngine(
        storage=memory_storage,
        completion=completion,
        registry=registry,
        reply_delay=(1.0, 2.0),
        sleep=sleep,
    )


@pytest.fixture
async def alice(memory_storage):
    return await memory_storage.create_user(UserCreate(username="alice", credential="x"))


@pytest.fixture
async def bob(memory_storage):
    return await memory_storage.create_user(UserCreate(username="bob", credential="x"))


@pytest.fixture
async def alice_session(engine, alice) -> ChatSession:
    """Authenticated session for alice; the initial chats push is cleared"""
    session = ChatSession(FakeConnection())
    session.transition(SessionState.AUTHENTICATING)
    await engine.open_session(session, alice.id)
    session.connection.events.clear()
    return session


@pytest.fixture
def client(monkeypatch, completion):
    """TestClient on in-memory storage with no reply delay"""
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
    monkeypatch.setattr(settings, "REPLY_DELAY_MIN_MS", 0)
    monkeypatch.setattr(settings, "REPLY_DELAY_MAX_MS", 0)
    limiter.reset()

    with TestClient(app) as test_client:
        app.state.engine.completion = completion
        yield test_client
