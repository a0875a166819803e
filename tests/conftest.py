from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

import jwt
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import chat_api.main as main_app
from chat_api.config import ServiceSettings, get_settings
from chat_api.db.models import Chat, Message
from chat_api.db.queries import get_repository
from chat_api.routers.chat import get_assembler_factory
from chat_api.services.errors import PersistenceError
from chat_api.services.observability import reset_observability
from chat_api.services.provider import get_provider
from chat_api.services.streaming import ResponseAssembler

TEST_SECRET = "test-secret"


def make_token(sub: str | None = "user-1", secret: str = TEST_SECRET, expires_in: int = 3600, **claims: Any) -> str:
    payload: dict[str, Any] = {"exp": int(time.time()) + expires_in, **claims}
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeRepository:
    """In-memory stand-in for ChatRepository that records every call."""

    def __init__(self) -> None:
        self.chats: dict[str, Chat] = {}
        self.messages: list[Message] = []
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} failed")

    async def get_chat_by_id(self, chat_id: str) -> Chat | None:
        self.calls.append("get_chat_by_id")
        if "get_chat_by_id" in self.fail_on:
            raise RuntimeError("database unavailable")
        return self.chats.get(chat_id)

    async def save_chat(self, chat_id: str, user_id: str, title: str) -> Chat:
        self._check("save_chat")
        chat = Chat(id=chat_id, user_id=user_id, title=title)
        self.chats[chat_id] = chat
        return chat

    async def save_messages(self, messages) -> list[Message]:
        self._check("save_messages")
        saved = list(messages)
        self.messages.extend(saved)
        return saved

    async def delete_chat_by_id(self, chat_id: str) -> None:
        self._check("delete_chat_by_id")
        self.chats.pop(chat_id, None)
        self.messages = [m for m in self.messages if m.chat_id != chat_id]

    async def get_messages_by_chat_id(self, chat_id: str) -> list[Message]:
        self.calls.append("get_messages_by_chat_id")
        return sorted((m for m in self.messages if m.chat_id == chat_id), key=lambda m: m.created_at)

    @property
    def writes(self) -> list[str]:
        return [c for c in self.calls if c in {"save_chat", "save_messages", "delete_chat_by_id"}]


class FakeProvider:
    """Provider double yielding canned deltas and recording requests."""

    def __init__(self, deltas: list[str] | None = None, title: str = "Greeting the assistant") -> None:
        self.deltas = deltas if deltas is not None else ["Hel", "lo", "!"]
        self.title = title
        self.stream_requests: list[list[dict[str, str]]] = []
        self.complete_requests: list[list[dict[str, str]]] = []
        self.stream_error: Exception | None = None
        self.closed = False

    async def stream_text(self, messages):
        self.stream_requests.append(list(messages))
        try:
            for delta in self.deltas:
                yield delta
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.closed = True

    async def complete_text(self, messages, **kwargs) -> str:
        self.complete_requests.append(list(messages))
        return self.title


class RecordingAssembler(ResponseAssembler):
    def __init__(self, chat_id: str) -> None:
        super().__init__()
        self.chat_id = chat_id
        self.consumed: str | None = None

    async def consume_stream(self) -> None:
        self.consumed = self.text


@pytest.fixture(autouse=True)
def _clean_state():
    get_settings.cache_clear()
    reset_observability()
    yield
    get_settings.cache_clear()
    reset_observability()


@pytest.fixture()
def settings() -> ServiceSettings:
    return ServiceSettings(_env_file=None, auth_secret=TEST_SECRET, chat_max_duration=5.0)


@pytest.fixture()
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def assemblers() -> list[RecordingAssembler]:
    return []


@pytest.fixture()
def client(settings, repository, provider, assemblers):
    def assembler_factory(chat_id: str) -> RecordingAssembler:
        assembler = RecordingAssembler(chat_id)
        assemblers.append(assembler)
        return assembler

    app = main_app.app
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_assembler_factory] = lambda: assembler_factory

    test_client = TestClient(app)
    yield test_client

    test_client.close()
    app.dependency_overrides.clear()
