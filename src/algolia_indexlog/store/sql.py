"""SQLAlchemy-backed event store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from algolia_indexlog.db import (
    AccessRepository,
    EventRepository,
    RaceRepository,
    SessionEndRepository,
    create_database,
)
from algolia_indexlog.errors import StoreUnavailable, WriteFailed
from algolia_indexlog.models.orm import IndexingEvent, ItemAccess, RaceRecord, SessionEnd
from algolia_indexlog.models.schemas import (
    Access,
    CorrelationRecord,
    Event,
    SessionEndInfo,
    SessionInfo,
    TimeRange,
)
from algolia_indexlog.store.base import EventStore
from algolia_indexlog.utils import item_key

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence
    from datetime import datetime

    from sqlalchemy.orm import Session

    from algolia_indexlog.db import Database

__all__ = ["SQLEventStore"]


class SQLEventStore(EventStore):
    """
    Event store on a relational database.

    Parameters
    ----------
    database : Database
        Database created by :func:`~algolia_indexlog.db.create_database`
    create_tables : bool, optional
        Create missing tables on construction, by default True

    Raises
    ------
    StoreUnavailable
        If the tables cannot be created (connection or permission failure)

    Examples
    --------
    >>> store = SQLEventStore.from_url("sqlite:///indexlog.sqlite")
    >>> store.append([event])
    1
    """

    def __init__(self, database: Database, create_tables: bool = True) -> None:
        self.database = database
        if create_tables:
            try:
                database.create_tables()
            except SQLAlchemyError as e:
                msg = f"Cannot initialize event store at {database.engine.url}: {e}"
                raise StoreUnavailable(msg) from e

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> SQLEventStore:
        """Create a store from a database URL."""
        try:
            database = create_database(database_url, echo=echo)
        except (ValueError, SQLAlchemyError, ImportError) as e:
            raise StoreUnavailable(str(e)) from e
        return cls(database)

    @contextmanager
    def _reading(self) -> Generator[Session, None, None]:
        try:
            with self.database.session() as session:
                yield session
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Event store read failed: {e}") from e

    @contextmanager
    def _writing(self, batch_size: int = 1) -> Generator[Session, None, None]:
        try:
            with self.database.session() as session:
                yield session
        except SQLAlchemyError as e:
            raise WriteFailed(f"Event store write failed: {e}", batch_size) from e

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def append(self, events: Sequence[Event]) -> int:
        if not events:
            return 0
        rows = [
            IndexingEvent(
                session_id=event.session_id,
                item_id=item_key(event.item_id),
                stage=event.stage.value,
                level=event.level.value,
                timestamp=event.timestamp,
                payload=event.payload,
            )
            for event in events
        ]
        with self._writing(len(rows)) as session:
            written = EventRepository(session).add_all(rows)
        logger.debug(f"Wrote {written} events to {self.database.dialect} store")
        return written

    def session_events(
        self, session_id: str, item_id: int | str | None = None
    ) -> list[Event]:
        key = None if item_id is None else item_key(item_id)
        with self._reading() as session:
            rows = EventRepository(session).for_session(session_id, key)
            return [Event.model_validate(row) for row in rows]

    def item_events(self, item_id: int | str, limit: int = 200) -> list[Event]:
        with self._reading() as session:
            rows = EventRepository(session).for_item(item_key(item_id), limit)
            return [Event.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Race detection
    # ------------------------------------------------------------------

    def recent_accesses(self, item_id: int | str, since: datetime) -> list[Access]:
        with self._reading() as session:
            rows = AccessRepository(session).recent(item_key(item_id), since)
            return [Access.model_validate(row) for row in rows]

    def record_access(self, access: Access) -> None:
        row = ItemAccess(
            item_id=item_key(access.item_id),
            session_id=access.session_id,
            stage=access.stage.value,
            timestamp=access.timestamp,
        )
        with self._writing() as session:
            AccessRepository(session).add(row)

    def record_race(self, record: CorrelationRecord) -> None:
        row = RaceRecord(
            item_id=item_key(record.item_id),
            detected_by=record.detected_by,
            stage=record.stage.value,
            session_ids=list(record.session_ids),
            stages=[stage.value for stage in record.stages],
            first_seen=record.first_seen,
            last_seen=record.last_seen,
            occurrence_count=record.occurrence_count,
        )
        with self._writing() as session:
            RaceRepository(session).add(row)

    def race_records(
        self, item_id: int | str | None = None, since: datetime | None = None
    ) -> list[CorrelationRecord]:
        key = None if item_id is None else item_key(item_id)
        with self._reading() as session:
            rows = RaceRepository(session).find(key, since)
            return [CorrelationRecord.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def record_session_end(self, info: SessionEndInfo) -> None:
        row = SessionEnd(
            session_id=info.session_id,
            ended_at=info.ended_at,
            duration=info.duration,
            memory_peak=info.memory_peak,
            total_items=info.total_items,
            status_breakdown=dict(info.status_breakdown),
            extra=info.model_dump(mode="json")["extra"],
        )
        with self._writing() as session:
            SessionEndRepository(session).add(row)

    def session_end(self, session_id: str) -> SessionEndInfo | None:
        with self._reading() as session:
            row = SessionEndRepository(session).latest(session_id)
            return None if row is None else SessionEndInfo.model_validate(row)

    def recent_sessions(self, limit: int = 10) -> list[SessionInfo]:
        with self._reading() as session:
            rows = EventRepository(session).recent_sessions(limit)
            closed = SessionEndRepository(session).closed_among(
                row["session_id"] for row in rows
            )
        return [
            SessionInfo(
                session_id=row["session_id"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                event_count=row["event_count"],
                error_count=row["error_count"] or 0,
                closed=row["session_id"] in closed,
            )
            for row in rows
        ]

    def time_range(self) -> TimeRange:
        with self._reading() as session:
            first, last = EventRepository(session).time_range()
        return TimeRange(first=first, last=last)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def _purge_before(self, cutoff: datetime) -> int:
        with self._writing() as session:
            deleted = sum(
                repo.purge_before(cutoff)
                for repo in (
                    EventRepository(session),
                    AccessRepository(session),
                    RaceRepository(session),
                    SessionEndRepository(session),
                )
            )
        logger.info(f"Purged {deleted} records older than {cutoff.isoformat()}")
        return deleted

    def close(self) -> None:
        self.database.close()
