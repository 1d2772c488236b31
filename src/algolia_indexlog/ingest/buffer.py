"""Buffered event ingestion."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import TypeAdapter

from algolia_indexlog.constants import DEFAULT_BUFFER_SIZE, Level, Stage
from algolia_indexlog.models.schemas import Event
from algolia_indexlog.utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from algolia_indexlog.ingest.session import IngestionSession
    from algolia_indexlog.services.race import RaceDetector
    from algolia_indexlog.store import EventStore

__all__ = ["EventBuffer", "derive_level"]

_DEBUG_STAGES = frozenset({Stage.FILTERING, Stage.GENERATION})
_PAYLOAD = TypeAdapter(dict[str, Any])


def derive_level(stage: Stage, payload: Mapping[str, Any]) -> Level:
    """
    Default severity of an event.

    Errors (a truthy ``error`` field or ``success`` set to False) are
    ``error``, filtering and generation chatter is ``debug``, everything
    else ``info``.
    """
    if payload.get("error") or payload.get("success") is False:
        return Level.ERROR
    if stage in _DEBUG_STAGES:
        return Level.DEBUG
    return Level.INFO


class EventBuffer:
    """
    Ordered in-memory queue of events for one ingestion session.

    Events are written to the store in batches, when the queue reaches
    ``threshold`` or on :meth:`flush`/:meth:`close`. Delivery is
    at-most-once: a batch the store rejects is logged and dropped.

    Parameters
    ----------
    store : EventStore
        Destination store
    session : IngestionSession
        Session every event is tagged with
    detector : RaceDetector, optional
        Checked synchronously for every tracked event
    threshold : int, optional
        Queue length that triggers a flush, by default 50
    clock : Callable[[], datetime], optional
        Source of UTC timestamps

    Examples
    --------
    >>> with EventBuffer(store, IngestionSession.start()) as buffer:
    ...     buffer.track(42, Stage.RETRIEVAL, {"type": "product"})
    """

    def __init__(
        self,
        store: EventStore,
        session: IngestionSession,
        detector: RaceDetector | None = None,
        threshold: int = DEFAULT_BUFFER_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if threshold < 1:
            msg = f"threshold must be >= 1, got {threshold}"
            raise ValueError(msg)
        self.store = store
        self.session = session
        self.detector = detector
        self.threshold = threshold
        self._clock = clock
        self._queue: list[Event] = []
        self._last_timestamp: datetime | None = None
        self.written = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Number of events waiting to be flushed."""
        return len(self._queue)

    def _now(self) -> datetime:
        # Timestamps never go backwards within one writer
        now = self._clock()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def track(
        self,
        item_id: int | str | None,
        stage: Stage | str,
        payload: Mapping[str, Any] | None = None,
        level: Level | str | None = None,
    ) -> Event:
        """
        Queue one event and flush if the threshold is reached.

        Parameters
        ----------
        item_id : int, str or None
            Item identifier, ``0``/None for batch-level events
        stage : Stage or str
            Pipeline stage
        payload : Mapping, optional
            Stage-specific data; values that are not JSON-serializable are
            stored as strings
        level : Level or str, optional
            Explicit severity, derived from the payload when omitted

        Returns
        -------
        Event
            The queued event
        """
        stage = Stage(stage)
        data = _PAYLOAD.dump_python(dict(payload or {}), mode="json", fallback=str)
        if self.session.index_id and "index_id" not in data:
            data["index_id"] = self.session.index_id
        event = Event(
            session_id=self.session.session_id,
            item_id=item_id,
            stage=stage,
            level=Level(level) if level is not None else derive_level(stage, data),
            timestamp=self._now(),
            payload=data,
        )

        if self.detector is not None:
            try:
                self.detector.check(event)
            except Exception as e:
                logger.warning(f"Race check failed for item {event.item_id}: {e}")

        self._queue.append(event)
        if event.level is Level.ERROR:
            message = data.get("error") or data.get("message") or "unknown error"
            logger.error(f"[Algolia Index] {stage.value} - ERROR: {message}")

        if len(self._queue) >= self.threshold:
            self.flush()
        return event

    def flush(self) -> int:
        """
        Write all queued events to the store as one batch.

        Returns
        -------
        int
            Number of events written; 0 if the queue was empty or the
            batch was dropped
        """
        if not self._queue:
            return 0
        batch, self._queue = self._queue, []
        try:
            written = self.store.append(batch)
        except Exception as e:
            self.dropped += len(batch)
            logger.warning(
                f"Dropped {len(batch)} events of session {self.session.session_id}: {e}"
            )
            return 0
        self.written += written
        logger.debug(f"Flushed {written} events of session {self.session.session_id}")
        return written

    def close(self) -> None:
        """Flush whatever is left in the queue."""
        self.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
