"""Per-session statistics and item status derivation."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import TYPE_CHECKING

from loguru import logger

from algolia_indexlog.constants import STAGE_ORDER, ItemStatus, Level, Stage
from algolia_indexlog.models.schemas import (
    AnalysisInputMissing,
    SessionSummary,
)
from algolia_indexlog.services.payload import payload_flag

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from algolia_indexlog.models.schemas import Event, ItemId, SessionEndInfo
    from algolia_indexlog.store import EventStore

__all__ = [
    "SessionAggregator",
    "build_summary",
    "derive_item_status",
    "group_by_item",
    "latest_attempt",
]


def group_by_item(events: Iterable[Event]) -> dict[ItemId, list[Event]]:
    """Group item-level events by item id, keeping their order."""
    grouped: dict[ItemId, list[Event]] = defaultdict(list)
    for event in events:
        if not event.is_batch_level:
            grouped[event.item_id].append(event)
    return dict(grouped)


def latest_attempt(events: Sequence[Event]) -> Sequence[Event]:
    """
    Events of the most recent attempt of one item.

    A ``retrieval`` event starts a new attempt. Events recorded before
    the last retrieval belong to earlier attempts and are ignored.
    ``events`` must be in chronological order.
    """
    for index in range(len(events) - 1, -1, -1):
        if events[index].stage is Stage.RETRIEVAL:
            return events[index:]
    return events


def _signal(event: Event) -> ItemStatus | None:
    if event.level is Level.ERROR:
        return ItemStatus.FAILED
    if event.stage is Stage.FILTERING:
        if payload_flag(event.payload, "should_index") is False:
            return ItemStatus.SKIPPED
        return None
    if event.stage is Stage.SUBMISSION:
        if payload_flag(event.payload, "success", default=True) and not event.payload.get(
            "error"
        ):
            return ItemStatus.INDEXED
        return ItemStatus.FAILED
    return None


def derive_item_status(events: Sequence[Event]) -> ItemStatus:
    """
    Final status of one item from its chronologically ordered events.

    Only the latest attempt counts. Within it events are replayed in
    pipeline order and every status signal overrides the one before it,
    so a later stage always wins over an earlier one:

    - filtering with ``should_index`` false gives ``skipped``
    - any error-level event gives ``failed``
    - a successful submission gives ``indexed``

    Without any signal the item is ``unknown``. Earlier statuses are never
    reinstated by out-of-order timestamps because stage order is the
    primary sort key.
    """
    attempt = sorted(
        latest_attempt(events),
        key=lambda e: (STAGE_ORDER[e.stage], e.timestamp, e.seq or 0),
    )
    status = ItemStatus.UNKNOWN
    for event in attempt:
        signal = _signal(event)
        if signal is not None:
            status = signal
    return status


def build_summary(
    session_id: str, events: Sequence[Event], end: SessionEndInfo | None = None
) -> SessionSummary:
    """
    Compute a session summary from its stored events.

    Parameters
    ----------
    session_id : str
        Session identifier
    events : Sequence[Event]
        All events of the session, ordered by (timestamp, seq)
    end : SessionEndInfo, optional
        Explicit end record; the session is open without one

    Returns
    -------
    SessionSummary
    """
    statuses = Counter(
        derive_item_status(item_events)
        for item_events in group_by_item(events).values()
    )
    stages = Counter(event.stage for event in events)

    start_time = min(event.timestamp for event in events)
    end_time = max(event.timestamp for event in events)
    if end is not None and end.ended_at > end_time:
        end_time = end.ended_at

    return SessionSummary(
        session_id=session_id,
        total_items=sum(statuses.values()),
        status_counts={status: statuses.get(status, 0) for status in ItemStatus},
        stage_counts={stage: stages.get(stage, 0) for stage in Stage},
        event_count=len(events),
        error_count=sum(1 for event in events if event.level is Level.ERROR),
        start_time=start_time,
        end_time=end_time,
        duration=(end_time - start_time).total_seconds(),
        closed=end is not None,
        memory_peak=end.memory_peak if end is not None else None,
    )


class SessionAggregator:
    """
    Summarize sessions straight from the store.

    Summaries are recomputed on every call, so asking twice without new
    events gives the same answer.

    Parameters
    ----------
    store : EventStore
        Store to read events and end records from
    """

    def __init__(self, store: EventStore) -> None:
        self.store = store

    def summarize(self, session_id: str) -> SessionSummary | AnalysisInputMissing:
        """Summary of one session, or AnalysisInputMissing if it has no events."""
        events = self.store.session_events(session_id)
        if not events:
            logger.debug(f"No events for session {session_id}")
            return AnalysisInputMissing.for_sessions(session_id)
        return build_summary(session_id, events, self.store.session_end(session_id))

    def item_statuses(self, session_id: str) -> dict[ItemId, ItemStatus]:
        """Final status of every item observed in a session."""
        return {
            item_id: derive_item_status(item_events)
            for item_id, item_events in group_by_item(
                self.store.session_events(session_id)
            ).items()
        }
