"""Repository pattern for data access layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar

from sqlalchemy import case, delete, func, select

from algolia_indexlog.constants import Level
from algolia_indexlog.models.orm import IndexingEvent, ItemAccess, RaceRecord, SessionEnd

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from typing import Any

    from sqlalchemy.orm import DeclarativeBase, Session

__all__ = [
    "AccessRepository",
    "BaseRepository",
    "EventRepository",
    "RaceRepository",
    "SessionEndRepository",
]

T = TypeVar("T", bound="DeclarativeBase")


class BaseRepository(Generic[T]):
    """
    Base repository for append-only tables.

    Parameters
    ----------
    session : Session
        SQLAlchemy session
    model_class : type[T]
        ORM model class

    Examples
    --------
    >>> repo = BaseRepository(session, IndexingEvent)
    >>> repo.add_all([IndexingEvent(...), IndexingEvent(...)])
    """

    #: Timestamp column used by retention
    time_column = "timestamp"

    def __init__(self, session: Session, model_class: type[T]) -> None:
        """Initialize repository."""
        self.session = session
        self.model_class = model_class

    def add(self, obj: T) -> T:
        """Insert one row."""
        self.session.add(obj)
        self.session.flush()
        return obj

    def add_all(self, objs: Iterable[T]) -> int:
        """
        Insert rows in one flush.

        Returns
        -------
        int
            Number of rows inserted
        """
        objs = list(objs)
        self.session.add_all(objs)
        self.session.flush()
        return len(objs)

    def purge_before(self, cutoff: datetime) -> int:
        """
        Delete rows older than ``cutoff``.

        Returns
        -------
        int
            Number of rows deleted
        """
        column = getattr(self.model_class, self.time_column)
        result = self.session.execute(
            delete(self.model_class).where(column < cutoff)
        )
        return result.rowcount or 0


class EventRepository(BaseRepository[IndexingEvent]):
    """Queries over the indexing event log."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, IndexingEvent)

    def for_session(
        self, session_id: str, item_id: str | None = None
    ) -> list[IndexingEvent]:
        """
        Events of one session (optionally one item) in chronological order.

        Ties on timestamp fall back to insertion order.
        """
        stmt = select(IndexingEvent).where(IndexingEvent.session_id == session_id)
        if item_id is not None:
            stmt = stmt.where(IndexingEvent.item_id == item_id)
        stmt = stmt.order_by(IndexingEvent.timestamp, IndexingEvent.seq)
        return list(self.session.execute(stmt).scalars().all())

    def for_item(self, item_id: str, limit: int = 200) -> list[IndexingEvent]:
        """Latest events for one item across all sessions, oldest first."""
        stmt = (
            select(IndexingEvent)
            .where(IndexingEvent.item_id == item_id)
            .order_by(IndexingEvent.timestamp.desc(), IndexingEvent.seq.desc())
            .limit(limit)
        )
        rows = list(self.session.execute(stmt).scalars().all())
        rows.reverse()
        return rows

    def recent_sessions(self, limit: int = 10) -> list[dict[str, Any]]:
        """
        Per-session event statistics, most recently started first.

        Returns
        -------
        list[dict[str, Any]]
            Rows with session_id, start_time, end_time, event_count,
            error_count
        """
        start_time = func.min(IndexingEvent.timestamp)
        stmt = (
            select(
                IndexingEvent.session_id,
                start_time.label("start_time"),
                func.max(IndexingEvent.timestamp).label("end_time"),
                func.count().label("event_count"),
                func.sum(
                    case((IndexingEvent.level == Level.ERROR.value, 1), else_=0)
                ).label("error_count"),
            )
            .group_by(IndexingEvent.session_id)
            .order_by(start_time.desc())
            .limit(limit)
        )
        return [dict(row._mapping) for row in self.session.execute(stmt)]

    def time_range(self) -> tuple[datetime | None, datetime | None]:
        """Earliest and latest event timestamps in the store."""
        stmt = select(func.min(IndexingEvent.timestamp), func.max(IndexingEvent.timestamp))
        first, last = self.session.execute(stmt).one()
        return first, last


class AccessRepository(BaseRepository[ItemAccess]):
    """Race-detection candidate lookups."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ItemAccess)

    def recent(self, item_id: str, since: datetime) -> list[ItemAccess]:
        """Accesses to ``item_id`` at or after ``since``, oldest first."""
        stmt = (
            select(ItemAccess)
            .where(ItemAccess.item_id == item_id, ItemAccess.timestamp >= since)
            .order_by(ItemAccess.timestamp, ItemAccess.seq)
        )
        return list(self.session.execute(stmt).scalars().all())


class RaceRepository(BaseRepository[RaceRecord]):
    """Correlation record queries."""

    time_column = "last_seen"

    def __init__(self, session: Session) -> None:
        super().__init__(session, RaceRecord)

    def find(
        self, item_id: str | None = None, since: datetime | None = None
    ) -> list[RaceRecord]:
        """Correlation records, optionally for one item or after ``since``."""
        stmt = select(RaceRecord)
        if item_id is not None:
            stmt = stmt.where(RaceRecord.item_id == item_id)
        if since is not None:
            stmt = stmt.where(RaceRecord.last_seen >= since)
        stmt = stmt.order_by(RaceRecord.last_seen, RaceRecord.seq)
        return list(self.session.execute(stmt).scalars().all())


class SessionEndRepository(BaseRepository[SessionEnd]):
    """Session end records."""

    time_column = "ended_at"

    def __init__(self, session: Session) -> None:
        super().__init__(session, SessionEnd)

    def latest(self, session_id: str) -> SessionEnd | None:
        """Most recent end record of a session, if any."""
        stmt = (
            select(SessionEnd)
            .where(SessionEnd.session_id == session_id)
            .order_by(SessionEnd.ended_at.desc(), SessionEnd.seq.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def closed_among(self, session_ids: Iterable[str]) -> set[str]:
        """Subset of ``session_ids`` that have an end record."""
        ids = list(session_ids)
        if not ids:
            return set()
        stmt = select(SessionEnd.session_id).where(SessionEnd.session_id.in_(ids))
        return set(self.session.execute(stmt).scalars().all())
