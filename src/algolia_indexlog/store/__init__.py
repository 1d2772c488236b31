"""Event store implementations."""

from __future__ import annotations

__all__ = [
    "EventStore",
    "HttpEventStore",
    "MemoryEventStore",
    "SQLEventStore",
    "open_store",
]

from .base import EventStore
from .factory import open_store
from .http import HttpEventStore
from .memory import MemoryEventStore
from .sql import SQLEventStore
