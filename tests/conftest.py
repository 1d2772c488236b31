"""pytest configuration for algolia_indexlog tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from algolia_indexlog.constants import Level, Stage
from algolia_indexlog.ingest import EventBuffer, IngestionSession
from algolia_indexlog.models.schemas import Event
from algolia_indexlog.services import RaceDetector
from algolia_indexlog.store import MemoryEventStore, SQLEventStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    """Deterministic UTC clock starting at 2024-05-01 12:00."""
    return FixedClock()


@pytest.fixture
def sql_store(tmp_path):
    """File-backed SQLite event store."""
    store = SQLEventStore.from_url(f"sqlite:///{tmp_path / 'indexlog.sqlite'}")
    yield store
    store.close()


@pytest.fixture
def memory_store():
    """In-process event store."""
    return MemoryEventStore()


@pytest.fixture(params=["sql", "memory"])
def store(request):
    """Every durable-enough store implementation."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def make_event():
    """Factory for events at an offset (seconds) from T0."""

    def _make(
        session_id: str = "sess-a",
        item_id: int | str = 1,
        stage: Stage | str = Stage.RETRIEVAL,
        offset: float = 0,
        level: Level | str = Level.INFO,
        payload: dict | None = None,
    ) -> Event:
        return Event(
            session_id=session_id,
            item_id=item_id,
            stage=stage,
            level=level,
            timestamp=T0 + timedelta(seconds=offset),
            payload=payload or {},
        )

    return _make


@pytest.fixture
def make_buffer(clock):
    """Factory for buffers sharing the test clock."""

    def _make(
        store,
        session_id: str = "sess-a",
        threshold: int = 50,
        detector: RaceDetector | None = None,
        index_id: str | None = None,
    ) -> EventBuffer:
        session = IngestionSession(session_id=session_id, started_at=clock(), index_id=index_id)
        return EventBuffer(store, session, detector=detector, threshold=threshold, clock=clock)

    return _make


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    from loguru import logger

    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.rstrip("\n")),
        format="{level}|{message}",
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)
