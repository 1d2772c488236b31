"""In-process event store."""

from __future__ import annotations

from collections import defaultdict
from itertools import count
from typing import TYPE_CHECKING

from algolia_indexlog.constants import Level
from algolia_indexlog.models.schemas import SessionInfo, TimeRange
from algolia_indexlog.store.base import EventStore
from algolia_indexlog.utils import normalize_item_id

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from algolia_indexlog.models.schemas import (
        Access,
        CorrelationRecord,
        Event,
        SessionEndInfo,
    )

__all__ = ["MemoryEventStore"]


class MemoryEventStore(EventStore):
    """
    Event store kept in process memory.

    Nothing survives the process. Used for tests, dry runs, and as the
    local race-detection cache of :class:`HttpEventStore`.
    """

    def __init__(self) -> None:
        self._seq = count(1)
        self._events: list[Event] = []
        self._accesses: dict[int | str, list[Access]] = defaultdict(list)
        self._races: list[CorrelationRecord] = []
        self._session_ends: list[SessionEndInfo] = []

    def append(self, events: Sequence[Event]) -> int:
        stored = [event.model_copy(update={"seq": next(self._seq)}) for event in events]
        self._events.extend(stored)
        return len(stored)

    def session_events(
        self, session_id: str, item_id: int | str | None = None
    ) -> list[Event]:
        key = None if item_id is None else normalize_item_id(item_id)
        selected = [
            event
            for event in self._events
            if event.session_id == session_id and (key is None or event.item_id == key)
        ]
        return sorted(selected, key=lambda event: (event.timestamp, event.seq))

    def item_events(self, item_id: int | str, limit: int = 200) -> list[Event]:
        key = normalize_item_id(item_id)
        selected = sorted(
            (event for event in self._events if event.item_id == key),
            key=lambda event: (event.timestamp, event.seq),
        )
        return selected[-limit:] if limit else []

    def recent_accesses(self, item_id: int | str, since: datetime) -> list[Access]:
        accesses = self._accesses.get(normalize_item_id(item_id), [])
        return [access for access in accesses if access.timestamp >= since]

    def record_access(self, access: Access) -> None:
        self._accesses[access.item_id].append(access)

    def record_race(self, record: CorrelationRecord) -> None:
        self._races.append(record)

    def race_records(
        self, item_id: int | str | None = None, since: datetime | None = None
    ) -> list[CorrelationRecord]:
        key = None if item_id is None else normalize_item_id(item_id)
        return [
            record
            for record in self._races
            if (key is None or record.item_id == key)
            and (since is None or record.last_seen >= since)
        ]

    def record_session_end(self, info: SessionEndInfo) -> None:
        self._session_ends.append(info)

    def session_end(self, session_id: str) -> SessionEndInfo | None:
        ends = [info for info in self._session_ends if info.session_id == session_id]
        return max(ends, key=lambda info: info.ended_at) if ends else None

    def recent_sessions(self, limit: int = 10) -> list[SessionInfo]:
        by_session: dict[str, list[Event]] = defaultdict(list)
        for event in self._events:
            by_session[event.session_id].append(event)
        closed = {info.session_id for info in self._session_ends}
        infos = [
            SessionInfo(
                session_id=session_id,
                start_time=min(event.timestamp for event in events),
                end_time=max(event.timestamp for event in events),
                event_count=len(events),
                error_count=sum(1 for event in events if event.level == Level.ERROR),
                closed=session_id in closed,
            )
            for session_id, events in by_session.items()
        ]
        infos.sort(key=lambda info: info.start_time, reverse=True)
        return infos[:limit]

    def time_range(self) -> TimeRange:
        if not self._events:
            return TimeRange()
        timestamps = [event.timestamp for event in self._events]
        return TimeRange(first=min(timestamps), last=max(timestamps))

    def _purge_before(self, cutoff: datetime) -> int:
        before = (
            len(self._events)
            + sum(len(accesses) for accesses in self._accesses.values())
            + len(self._races)
            + len(self._session_ends)
        )
        self._events = [event for event in self._events if event.timestamp >= cutoff]
        for key in list(self._accesses):
            kept = [access for access in self._accesses[key] if access.timestamp >= cutoff]
            if kept:
                self._accesses[key] = kept
            else:
                del self._accesses[key]
        self._races = [record for record in self._races if record.last_seen >= cutoff]
        self._session_ends = [
            info for info in self._session_ends if info.ended_at >= cutoff
        ]
        after = (
            len(self._events)
            + sum(len(accesses) for accesses in self._accesses.values())
            + len(self._races)
            + len(self._session_ends)
        )
        return before - after
