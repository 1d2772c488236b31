"""Event store factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from algolia_indexlog.errors import StoreUnavailable
from algolia_indexlog.store.http import HttpEventStore
from algolia_indexlog.store.memory import MemoryEventStore
from algolia_indexlog.store.sql import SQLEventStore

if TYPE_CHECKING:
    from algolia_indexlog.config import IndexLogConfig
    from algolia_indexlog.store.base import EventStore

__all__ = ["open_store"]


def open_store(config: IndexLogConfig) -> EventStore:
    """
    Open the event store selected by ``config.backend``.

    Parameters
    ----------
    config : IndexLogConfig
        Runtime configuration

    Returns
    -------
    EventStore
        SQLEventStore for "sql", HttpEventStore for "http",
        MemoryEventStore for "memory"

    Raises
    ------
    StoreUnavailable
        If the store cannot be opened
    """
    if config.backend == "sql":
        return SQLEventStore.from_url(config.database_url, echo=config.echo)
    elif config.backend == "http":
        if not config.endpoint:
            raise StoreUnavailable("HTTP event store requires an endpoint")
        return HttpEventStore(
            config.endpoint,
            token=config.token,
            source=config.source,
        )
    else:
        return MemoryEventStore()
