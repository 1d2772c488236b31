"""Utility functions for algolia_indexlog."""

from __future__ import annotations

__all__ = [
    "UtcDateTime",
    "ensure_utc",
    "item_key",
    "make_session_id",
    "normalize_item_id",
    "utc_now",
    # Mapped types
    "ItemKey",
    "JsonList",
    "Payload",
    "SessionId",
    "StageName",
    "Timestamp",
]

from .mapped_types import ItemKey, JsonList, Payload, SessionId, StageName, Timestamp
from .time import UtcDateTime, ensure_utc, utc_now
from .uid import item_key, make_session_id, normalize_item_id
