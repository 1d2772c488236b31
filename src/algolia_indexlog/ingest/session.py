"""Ingestion session identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from algolia_indexlog.utils import make_session_id, utc_now

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

__all__ = ["IngestionSession"]


@dataclass(frozen=True)
class IngestionSession:
    """
    One run of the indexing pipeline.

    Created once per run and handed to the event buffer, so concurrent
    runs in the same process never share an id.

    Attributes
    ----------
    session_id : str
        Unique, high-entropy identifier
    started_at : datetime
        UTC start time
    index_id : str, optional
        Name of the search index being built
    source : str, optional
        Host or site emitting the events
    """

    session_id: str = field(default_factory=make_session_id)
    started_at: datetime = field(default_factory=utc_now)
    index_id: str | None = None
    source: str | None = None

    @classmethod
    def start(
        cls,
        index_id: str | None = None,
        source: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> IngestionSession:
        """Start a new session with a fresh id."""
        return cls(
            session_id=make_session_id(),
            started_at=clock(),
            index_id=index_id,
            source=source,
        )
