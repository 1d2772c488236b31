"""Heuristic race detection from timestamp proximity."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from loguru import logger

from algolia_indexlog.constants import DEFAULT_RACE_WINDOW_SECONDS, STAGE_ORDER
from algolia_indexlog.models.schemas import Access, CorrelationRecord

if TYPE_CHECKING:
    from algolia_indexlog.models.schemas import Event
    from algolia_indexlog.store import EventStore

__all__ = ["RaceDetector"]


class RaceDetector:
    """
    Correlate accesses to one item from different sessions.

    For every tracked event the store is asked for accesses to the same
    item inside the trailing window. If any belongs to another session a
    single correlation record is written listing every session and stage
    seen in the window. The event itself is then recorded as an access so
    later sessions can find it.

    The underlying pipeline has no locks or transaction ids, so this only
    proves that two runs touched an item within ``window`` of each other.

    Parameters
    ----------
    store : EventStore
        Store holding accesses and correlation records
    window : timedelta, optional
        Trailing window, by default 10 seconds
    """

    def __init__(
        self,
        store: EventStore,
        window: timedelta = timedelta(seconds=DEFAULT_RACE_WINDOW_SECONDS),
    ) -> None:
        self.store = store
        self.window = window

    def check(self, event: Event) -> CorrelationRecord | None:
        """
        Check one event for concurrent access and record it.

        Parameters
        ----------
        event : Event
            Event about to be buffered

        Returns
        -------
        CorrelationRecord | None
            The record written, or None when no other session was seen
        """
        if event.is_batch_level:
            return None

        recent = self.store.recent_accesses(event.item_id, event.timestamp - self.window)
        record = None
        if any(access.session_id != event.session_id for access in recent):
            sessions = {access.session_id for access in recent} | {event.session_id}
            stages = {access.stage for access in recent} | {event.stage}
            record = CorrelationRecord(
                item_id=event.item_id,
                session_ids=sorted(sessions),
                stages=sorted(stages, key=STAGE_ORDER.__getitem__),
                first_seen=min(access.timestamp for access in recent),
                last_seen=event.timestamp,
                occurrence_count=len(recent) + 1,
                detected_by=event.session_id,
                stage=event.stage,
            )
            self.store.record_race(record)
            logger.warning(
                f"RACE CONDITION: item {event.item_id} accessed by sessions "
                f"{', '.join(record.session_ids)} within {self.window.total_seconds():g}s"
            )

        self.store.record_access(
            Access(
                item_id=event.item_id,
                session_id=event.session_id,
                stage=event.stage,
                timestamp=event.timestamp,
            )
        )
        return record
