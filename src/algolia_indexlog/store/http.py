"""HTTP event store: ships batches to a remote log collector.

Batches are POSTed as JSON to a generic collector endpoint::

    {
        "session_id": "idx_...",
        "source": "https://shop.example.com",
        "logs": [{"session_id": ..., "item_id": ..., "stage": ..., ...}]
    }

The remote side is write-only from this process' point of view, so race
lookups, summaries and session end records are served by a local
in-memory mirror of what this process has shipped. Provider-specific
formats are left to the collector.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import requests
from loguru import logger

from algolia_indexlog.errors import WriteFailed
from algolia_indexlog.store.memory import MemoryEventStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from algolia_indexlog.models.schemas import Event

__all__ = ["HttpEventStore"]


class HttpEventStore(MemoryEventStore):
    """
    Event store that POSTs each batch to a log collector endpoint.

    Parameters
    ----------
    endpoint : str
        Collector URL
    token : str, optional
        Bearer token sent in the Authorization header
    source : str, optional
        Identifies the emitting site or host
    timeout : float, optional
        Request timeout in seconds, by default 5
    http : requests.Session, optional
        Session to send requests with (tests inject one)
    """

    def __init__(
        self,
        endpoint: str,
        token: str | None = None,
        source: str | None = None,
        timeout: float = 5.0,
        http: requests.Session | None = None,
    ) -> None:
        super().__init__()
        self.endpoint = endpoint
        self.token = token
        self.source = source
        self.timeout = timeout
        self._http = http or requests.Session()

    def _headers(self, session_id: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if session_id:
            headers["X-Session-ID"] = session_id
        return headers

    def append(self, events: Sequence[Event]) -> int:
        if not events:
            return 0
        session_ids = {event.session_id for event in events}
        session_id = next(iter(session_ids)) if len(session_ids) == 1 else None
        body = {
            "session_id": session_id,
            "source": self.source,
            "logs": [event.model_dump(mode="json", exclude={"seq"}) for event in events],
        }
        try:
            response = self._http.post(
                self.endpoint,
                json=body,
                headers=self._headers(session_id),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"POST {self.endpoint} failed: {e}"
            raise WriteFailed(msg, len(events)) from e
        logger.debug(f"Shipped {len(events)} events to {self.endpoint}")
        return super().append(events)

    def close(self) -> None:
        self._http.close()
