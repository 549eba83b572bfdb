"""Shared test fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chatrelay.crud.conversation import conversation_crud, message_crud
from chatrelay.crud.model_catalog import model_catalog_crud
from chatrelay.database import init_db
from chatrelay.services.relay.channel import ClientChannel
from chatrelay.services.relay.coordinator import active_relays


class FakeStream:
    """Provider stream double: yields `fragments`, optionally slow or failing."""

    def __init__(
        self,
        fragments: List[str],
        delay: float = 0.0,
        error_at: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.fragments = list(fragments)
        self.delay = delay
        self.error_at = error_at
        self.error = error
        self.index = 0
        self.cancel_calls = 0
        self.cancelled = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self.cancelled:
            raise StopAsyncIteration
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error_at is not None and self.index == self.error_at:
            raise self.error
        if self.index >= len(self.fragments):
            raise StopAsyncIteration
        fragment = self.fragments[self.index]
        self.index += 1
        return fragment

    async def cancel(self) -> None:
        self.cancel_calls += 1
        self.cancelled = True


class FakeProvider:
    """Records `open_stream` calls and hands out a prepared stream (or raises)."""

    def __init__(self, stream: Optional[FakeStream] = None, open_error: Optional[Exception] = None) -> None:
        self.stream = stream or FakeStream([])
        self.open_error = open_error
        self.calls: List[Dict[str, Any]] = []

    async def open_stream(self, messages, model=None, max_tokens=None, temperature=None):
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.open_error is not None:
            raise self.open_error
        return self.stream


class RecordingChannel(ClientChannel):
    """Channel double that keeps frames in memory; can simulate a disconnect."""

    def __init__(self, close_after: Optional[int] = None) -> None:
        super().__init__()
        self.frames: List[Dict[str, Any]] = []
        self.close_after = close_after

    async def _write(self, frame: Dict[str, Any]) -> None:
        self.frames.append(frame)
        contents = [f for f in self.frames if f["type"] == "content"]
        if self.close_after is not None and len(contents) >= self.close_after:
            self.mark_closed()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _clear_active_relays():
    active_relays.clear()
    yield
    active_relays.clear()


@pytest.fixture
async def seeded(db) -> Dict[str, str]:
    """A chat owned by u1 with one prior user message, and catalog model m1."""
    entry = await model_catalog_crud.create(db, "Model One", "m1")
    chat = await conversation_crud.create(db, "u1")
    await message_crud.create(db, chat.id, "user", "Hi there", entry.id)
    return {"chat_id": chat.id, "model_id": entry.id, "user_id": "u1"}
