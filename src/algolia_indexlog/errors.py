"""Exception types for algolia_indexlog.

Nothing in this package lets these escape into the indexing pipeline it
observes. They exist so the store layer can report failures precisely and
the ingestion layer can decide to log and drop.
"""

from __future__ import annotations

__all__ = [
    "IndexLogError",
    "MalformedPayload",
    "StoreUnavailable",
    "WriteFailed",
]


class IndexLogError(Exception):
    """Base class for algolia_indexlog errors."""


class StoreUnavailable(IndexLogError):
    """Raised when an event store cannot be opened or configured.

    Examples
    --------
    >>> try:
    ...     store = open_store(IndexLogConfig(database_url="bogus://"))
    ... except StoreUnavailable as e:
    ...     print(f"logging disabled: {e}")
    """


class WriteFailed(IndexLogError):
    """Raised when a batch write to an event store fails."""

    def __init__(self, message: str, batch_size: int = 0) -> None:
        super().__init__(message)
        self.batch_size = batch_size


class MalformedPayload(IndexLogError):
    """Raised when a stage-specific payload field is missing or mistyped."""

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Malformed payload field: {field}")
        self.field = field
