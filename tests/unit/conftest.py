"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from timeblock.core.config import Constants
from timeblock.services import timer_engine
from timeblock.services.activity_store import SqliteActivityStore
from timeblock.services.completion_guard import CompletionGuard
from timeblock.services.context import SchedulerContext
from timeblock.services.notification_service import CompletionNotifier
from tests.unit.mocks import FakeClock, InMemoryDBClient, RecordingAudioCue, RecordingNotificationSink


TEST_SCOPE = "test-time-blocker/alice"


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches timeblock.core.db_client functions to use InMemoryDBClient."""
    monkeypatch.setattr("timeblock.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("timeblock.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("timeblock.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("timeblock.core.db_client.batch_update_records", in_memory_db.batch_update_records)
    monkeypatch.setattr("timeblock.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("timeblock.core.db_client.list_records", in_memory_db.list_records)

    return in_memory_db


@pytest.fixture
def clock():
    """A clock that only moves when told to."""
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingNotificationSink()


@pytest.fixture
def audio():
    return RecordingAudioCue()


@pytest.fixture
def ctx(patched_db, clock, sink, audio) -> SchedulerContext:
    """Scheduler context backed by the in-memory database."""
    return SchedulerContext(
        scope=TEST_SCOPE,
        store=SqliteActivityStore(),
        clock=clock,
        notifier=CompletionNotifier(sink, audio, notifications_enabled=True, audio_enabled=True),
        guard=CompletionGuard(),
    )


@pytest.fixture
def sync(ctx) -> Callable[[], Awaitable[None]]:
    """Deliver the store's current contents to the context as a snapshot."""

    async def _sync() -> None:
        await timer_engine.handle_snapshot(ctx, await ctx.store.load(ctx.scope))

    return _sync


@pytest.fixture
def seed(ctx, patched_db, clock, sync) -> Callable[..., Awaitable[list[str]]]:
    """Insert activity records directly into the store and deliver a snapshot.

    Each entry is ``(title, seconds)`` or a dict of store fields; missing fields
    get the defaults of a fresh, paused activity. Orders default to the
    position in the call.
    """

    async def _seed(*entries: tuple[str, int] | dict[str, Any]) -> list[str]:
        ids = []
        for index, entry in enumerate(entries):
            fields = {"title": entry[0], "initialDuration": entry[1]} if isinstance(entry, tuple) else dict(entry)
            record = {
                "scope": ctx.scope,
                "duration": fields.get("initialDuration"),
                "endTime": None,
                "isRunning": False,
                "isCompleted": False,
                "order": index,
                "timeSpent": 0,
                "createdAt": clock.now(),
                **fields,
            }
            ids.append(patched_db.insert_raw(Constants.ACTIVITIES_COLLECTION, record))
        await sync()
        return ids

    return _seed
