"""Event store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from algolia_indexlog.utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime, timedelta

    from algolia_indexlog.models.schemas import (
        Access,
        CorrelationRecord,
        Event,
        SessionEndInfo,
        SessionInfo,
        TimeRange,
    )

__all__ = ["EventStore"]


class EventStore(ABC):
    """
    Durable append-only sink for indexing events.

    Holds four record kinds: pipeline events (written in batches by the
    event buffer), item accesses and correlation records (written one at a
    time by the race detector), and session end records. Implementations
    must accept concurrent appends from independent processes without any
    coordination; no record is ever updated in place.

    Write methods raise :class:`~algolia_indexlog.errors.WriteFailed`, read
    methods raise :class:`~algolia_indexlog.errors.StoreUnavailable`.
    """

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @abstractmethod
    def append(self, events: Sequence[Event]) -> int:
        """
        Write a batch of events in one operation.

        Parameters
        ----------
        events : Sequence[Event]
            Events in the order they were tracked

        Returns
        -------
        int
            Number of events written
        """

    @abstractmethod
    def session_events(
        self, session_id: str, item_id: int | str | None = None
    ) -> list[Event]:
        """Events of one session (optionally one item), ordered by (timestamp, seq)."""

    @abstractmethod
    def item_events(self, item_id: int | str, limit: int = 200) -> list[Event]:
        """Latest ``limit`` events for one item across sessions, oldest first."""

    # ------------------------------------------------------------------
    # Race detection
    # ------------------------------------------------------------------

    @abstractmethod
    def recent_accesses(self, item_id: int | str, since: datetime) -> list[Access]:
        """Accesses to ``item_id`` with timestamp >= ``since``, oldest first."""

    @abstractmethod
    def record_access(self, access: Access) -> None:
        """Record one item access for future race lookups."""

    @abstractmethod
    def record_race(self, record: CorrelationRecord) -> None:
        """Persist one correlation record."""

    @abstractmethod
    def race_records(
        self, item_id: int | str | None = None, since: datetime | None = None
    ) -> list[CorrelationRecord]:
        """Correlation records, optionally for one item or seen after ``since``."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    def record_session_end(self, info: SessionEndInfo) -> None:
        """Persist an explicit session end record."""

    @abstractmethod
    def session_end(self, session_id: str) -> SessionEndInfo | None:
        """Latest end record of a session, ``None`` while it is open."""

    @abstractmethod
    def recent_sessions(self, limit: int = 10) -> list[SessionInfo]:
        """Sessions ordered by start time, newest first."""

    @abstractmethod
    def time_range(self) -> TimeRange:
        """Earliest and latest event timestamps in the store."""

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    @abstractmethod
    def _purge_before(self, cutoff: datetime) -> int:
        """Delete every record older than ``cutoff``."""

    def purge_expired(self, ttl: timedelta, now: datetime | None = None) -> int:
        """
        Delete events, accesses, correlation and session end records older
        than ``ttl``.

        Parameters
        ----------
        ttl : timedelta
            Retention period
        now : datetime, optional
            Reference time, by default the current UTC time

        Returns
        -------
        int
            Number of records deleted
        """
        cutoff = (now or utc_now()) - ttl
        return self._purge_before(cutoff)

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
