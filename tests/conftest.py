"""
Shared fixtures for the archiver tests.

Every test gets its own in-memory SQLite database, a channel directory with
one server and two channels, and settings tuned so the scrape loop never
sleeps.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from chat_archiver.config import ChannelDirectory, Settings
from chat_archiver.database import build_engine
from chat_archiver.models import Message
from chat_archiver.schemas import RawRecord
from chat_archiver.services.message_store import MessageStore
from chat_archiver.services.normalizer import normalize
from chat_archiver.services.sources.base import ExtractionSource, SourceRequest

SERVER_ID = "900"
CHANNEL_ID = "100"
OTHER_CHANNEL_ID = "200"
BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def raw(message_id: str, minutes: int = 0, reply_to: Optional[str] = None, **fields) -> RawRecord:
    """Build a raw record ``minutes`` after BASE_TIME."""
    values = dict(
        id=message_id,
        author_id="u1",
        author_name="alice",
        content=f"message {message_id}",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        reply_to_message_id=reply_to,
        has_attachments=False,
        has_embeds=False,
    )
    values.update(fields)
    return RawRecord(**values)


def message(message_id: str, minutes: int = 0, reply_to: Optional[str] = None,
            channel_id: str = CHANNEL_ID, **fields) -> Message:
    return normalize(raw(message_id, minutes, reply_to, **fields), channel_id, SERVER_ID)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> MessageStore:
    store = MessageStore(engine)
    store.initialize()
    return store


@pytest.fixture
def seeded_store(store: MessageStore) -> MessageStore:
    """Store with the server and both channels already present."""
    store.insert_server(SERVER_ID, "Test Server")
    store.insert_channel(CHANNEL_ID, SERVER_ID, "general")
    store.insert_channel(OTHER_CHANNEL_ID, SERVER_ID, "random")
    return store


@pytest.fixture
def directory() -> ChannelDirectory:
    return ChannelDirectory.from_mapping({
        "servers": [
            {
                "id": SERVER_ID,
                "name": "Test Server",
                "channels": [
                    {"id": CHANNEL_ID, "name": "general"},
                    {"id": OTHER_CHANNEL_ID, "name": "random"},
                ],
            }
        ]
    })


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        step_timeout_seconds=0.5,
        max_iterations=50,
        advance_retries=2,
        retry_delay_seconds=0,
        page_delay_seconds=0,
    )


class ScriptedSource(ExtractionSource):
    """
    Replays a fixed list of batches, one per iteration.

    ``failures`` maps a step name (open, next_batch, advance) to the exception
    it raises; ``advance_failures`` makes the first N advance calls fail before
    succeeding; ``hang_on`` names a step that never returns.
    """

    def __init__(self, batches: List[List[RawRecord]], failures: Optional[Dict[str, Exception]] = None,
                 advance_failures: int = 0, hang_on: Optional[str] = None):
        self.batches = batches
        self.failures = failures or {}
        self.advance_failures = advance_failures
        self.hang_on = hang_on
        self.index = 0
        self.calls: List[str] = []
        self.request: Optional[SourceRequest] = None
        self.closed = False

    async def _enter(self, step: str):
        self.calls.append(step)
        if step == self.hang_on:
            await asyncio.sleep(60)
        if step in self.failures:
            raise self.failures[step]

    async def open(self, request: SourceRequest):
        await self._enter("open")
        self.request = request
        return self

    async def next_batch(self) -> List[RawRecord]:
        await self._enter("next_batch")
        if self.index < len(self.batches):
            return list(self.batches[self.index])
        return []

    async def advance(self) -> bool:
        await self._enter("advance")
        if self.advance_failures:
            self.advance_failures -= 1
            raise RuntimeError("scroll did not move")
        if self.index + 1 < len(self.batches):
            self.index += 1
            return True
        return False

    async def close(self):
        self.calls.append("close")
        self.closed = True


@pytest.fixture
def current_event_loop():
    """Give sync tests a current event loop; pyrogram's Client requires one at construction."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    asyncio.set_event_loop(None)
    loop.close()
