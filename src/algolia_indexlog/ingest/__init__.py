"""Event ingestion: sessions, buffering and pipeline call points."""

from __future__ import annotations

__all__ = [
    "EventBuffer",
    "EventLogObserver",
    "IndexingObserver",
    "IngestionSession",
    "NullObserver",
    "create_observer",
    "derive_level",
]

from .buffer import EventBuffer, derive_level
from .observer import EventLogObserver, IndexingObserver, NullObserver, create_observer
from .session import IngestionSession
