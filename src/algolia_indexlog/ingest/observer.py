"""Pipeline call points for event logging.

The indexing pipeline holds one :class:`IndexingObserver` per run and calls
it at each stage. :func:`create_observer` builds a logging observer from
configuration, or a :class:`NullObserver` when logging is disabled or the
store cannot be reached, so the pipeline never has to check.

Examples
--------
>>> observer = create_observer(IndexLogConfig(database_url="sqlite:///indexlog.sqlite"))
>>> observer.on_item_retrieved(42, {"type": "product"})
>>> observer.on_item_filtered(42, should_index=True)
>>> observer.on_records_generated(42, record_count=3)
>>> observer.on_records_submitted(3, success=True, item_ids=[42])
>>> observer.on_session_end(observer.session.session_id, duration=12.5, memory_peak=None)
"""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError

from algolia_indexlog.config import IndexLogConfig
from algolia_indexlog.constants import BATCH_ITEM_ID, Level, Stage
from algolia_indexlog.errors import StoreUnavailable
from algolia_indexlog.ingest.buffer import EventBuffer
from algolia_indexlog.ingest.session import IngestionSession
from algolia_indexlog.models.schemas import SessionEndInfo, SessionSummary
from algolia_indexlog.services.aggregator import SessionAggregator
from algolia_indexlog.services.race import RaceDetector
from algolia_indexlog.store import open_store
from algolia_indexlog.utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from datetime import datetime, timedelta

__all__ = ["EventLogObserver", "IndexingObserver", "NullObserver", "create_observer"]


def _guarded(method):
    """Log and swallow any exception raised by an observer call point."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            logger.warning(f"Event logging failed in {method.__name__}: {e}")
            return None

    return wrapper


class IndexingObserver(ABC):
    """Call points invoked by the indexing pipeline at each stage."""

    @abstractmethod
    def on_item_retrieved(
        self, item_id: int | str, stage_data: Mapping[str, Any] | None = None
    ) -> None:
        """An item was fetched from the source."""

    @abstractmethod
    def on_item_filtered(
        self, item_id: int | str, should_index: bool, reason: str | None = None
    ) -> None:
        """The pipeline decided whether to index an item."""

    @abstractmethod
    def on_records_generated(
        self, item_id: int | str, record_count: int, error: str | None = None
    ) -> None:
        """Search records were built for an item."""

    @abstractmethod
    def on_records_sanitized(
        self, initial_count: int, final_count: int, dropped_ids: Iterable[int | str] = ()
    ) -> None:
        """A batch of records was cleaned before submission."""

    @abstractmethod
    def on_records_submitted(
        self,
        record_count: int,
        success: bool,
        task_id: str | int | None = None,
        error: str | None = None,
        item_ids: Iterable[int | str] | None = None,
    ) -> None:
        """A batch of records was sent to the search index."""

    @abstractmethod
    def on_item_deleted(self, item_id: int | str, reason: str | None = None) -> None:
        """An item was removed from the search index."""

    @abstractmethod
    def on_session_end(
        self, session_id: str, duration: float | None, memory_peak: int | None
    ) -> None:
        """The run finished."""

    def flush(self) -> None:
        """Write buffered events now."""

    def close(self) -> None:
        """Flush and release resources."""


class NullObserver(IndexingObserver):
    """Observer that records nothing."""

    def on_item_retrieved(self, item_id, stage_data=None) -> None:
        pass

    def on_item_filtered(self, item_id, should_index, reason=None) -> None:
        pass

    def on_records_generated(self, item_id, record_count, error=None) -> None:
        pass

    def on_records_sanitized(self, initial_count, final_count, dropped_ids=()) -> None:
        pass

    def on_records_submitted(
        self, record_count, success, task_id=None, error=None, item_ids=None
    ) -> None:
        pass

    def on_item_deleted(self, item_id, reason=None) -> None:
        pass

    def on_session_end(self, session_id, duration, memory_peak) -> None:
        pass


class EventLogObserver(IndexingObserver):
    """
    Observer that records every call point as an event.

    No call point ever raises; failures are logged and the event is lost.

    Parameters
    ----------
    buffer : EventBuffer
        Buffer for the current session
    aggregator : SessionAggregator, optional
        Used to summarize the session at its end, by default one on the
        buffer's store
    ttl : timedelta, optional
        When set, records older than this are purged at session end
    clock : Callable[[], datetime], optional
        Source of the session end time
    """

    def __init__(
        self,
        buffer: EventBuffer,
        aggregator: SessionAggregator | None = None,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.buffer = buffer
        self.aggregator = aggregator or SessionAggregator(buffer.store)
        self.ttl = ttl
        self._clock = clock

    @property
    def session(self) -> IngestionSession:
        return self.buffer.session

    @property
    def store(self):
        return self.buffer.store

    @_guarded
    def on_item_retrieved(self, item_id, stage_data=None) -> None:
        self.buffer.track(item_id, Stage.RETRIEVAL, stage_data)

    @_guarded
    def on_item_filtered(self, item_id, should_index, reason=None) -> None:
        payload: dict[str, Any] = {"should_index": bool(should_index)}
        if not should_index:
            payload["skip_reason"] = reason or "filtered"
        elif reason:
            payload["reason"] = reason
        self.buffer.track(item_id, Stage.FILTERING, payload)

    @_guarded
    def on_records_generated(self, item_id, record_count, error=None) -> None:
        payload: dict[str, Any] = {"records_count": record_count, "success": error is None}
        if error:
            payload["error"] = str(error)
        self.buffer.track(item_id, Stage.GENERATION, payload)

    @_guarded
    def on_records_sanitized(self, initial_count, final_count, dropped_ids=()) -> None:
        dropped = list(dropped_ids)
        payload = {
            "initial_count": initial_count,
            "sanitized_count": final_count,
            "dropped_count": initial_count - final_count,
            "dropped_ids": dropped,
        }
        level = Level.WARNING if final_count < initial_count else Level.INFO
        self.buffer.track(BATCH_ITEM_ID, Stage.SANITIZATION, payload, level=level)

    @_guarded
    def on_records_submitted(
        self, record_count, success, task_id=None, error=None, item_ids=None
    ) -> None:
        payload: dict[str, Any] = {"records_count": record_count, "success": bool(success)}
        if task_id is not None:
            payload["task_id"] = task_id
        if error:
            payload["error"] = str(error)
        if item_ids is None:
            self.buffer.track(BATCH_ITEM_ID, Stage.SUBMISSION, payload)
            return
        for item_id in item_ids:
            self.buffer.track(item_id, Stage.SUBMISSION, payload)

    @_guarded
    def on_item_deleted(self, item_id, reason=None) -> None:
        self.buffer.track(item_id, Stage.DELETION, {"reason": reason} if reason else None)

    @_guarded
    def on_session_end(self, session_id, duration, memory_peak) -> None:
        if session_id != self.session.session_id:
            logger.warning(
                f"Ending session {session_id} from observer of {self.session.session_id}"
            )
        self.buffer.flush()

        summary = self.aggregator.summarize(session_id)
        if isinstance(summary, SessionSummary):
            total_items = summary.total_items
            breakdown = {
                status.value: count for status, count in summary.status_counts.items()
            }
        else:
            total_items, breakdown = 0, {}

        extra = {}
        if self.session.index_id:
            extra["index_id"] = self.session.index_id
        if self.session.source:
            extra["source"] = self.session.source
        extra["written_events"] = self.buffer.written
        if self.buffer.dropped:
            extra["dropped_events"] = self.buffer.dropped

        self.store.record_session_end(
            SessionEndInfo(
                session_id=session_id,
                ended_at=self._clock(),
                duration=duration,
                memory_peak=memory_peak,
                total_items=total_items,
                status_breakdown=breakdown,
                extra=extra,
            )
        )
        logger.info(
            f"Indexing session {session_id} ended: {total_items} items, "
            + ", ".join(f"{count} {status}" for status, count in breakdown.items())
        )

        if self.ttl is not None:
            self.store.purge_expired(self.ttl, now=self._clock())

    @_guarded
    def flush(self) -> None:
        self.buffer.flush()

    @_guarded
    def close(self) -> None:
        self.buffer.close()
        self.store.close()


def create_observer(
    config: IndexLogConfig | None = None,
    session: IngestionSession | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> IndexingObserver:
    """
    Build the observer for one pipeline run.

    Parameters
    ----------
    config : IndexLogConfig, optional
        Configuration, by default read from ``INDEXLOG_*`` variables
    session : IngestionSession, optional
        Session to log under, by default a new one
    clock : Callable[[], datetime], optional
        Source of UTC timestamps

    Returns
    -------
    IndexingObserver
        EventLogObserver, or NullObserver when logging is disabled or the
        store is unavailable
    """
    if config is None:
        try:
            config = IndexLogConfig.from_env()
        except ValidationError as e:
            logger.error(f"Invalid event logging configuration, logging disabled: {e}")
            return NullObserver()

    if not config.enabled:
        return NullObserver()

    try:
        store = open_store(config)
    except StoreUnavailable as e:
        logger.error(f"Event store unavailable, logging disabled: {e}")
        return NullObserver()

    session = session or IngestionSession.start(source=config.source, clock=clock)
    buffer = EventBuffer(
        store,
        session,
        detector=RaceDetector(store, window=config.race_window),
        threshold=config.effective_buffer_size,
        clock=clock,
    )
    logger.debug(f"Event logging for session {session.session_id} via {config.backend} store")
    return EventLogObserver(buffer, SessionAggregator(store), ttl=config.ttl, clock=clock)
