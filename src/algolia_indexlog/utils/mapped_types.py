"""SQLAlchemy mapped type helpers for consistent column definitions."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from sqlalchemy import String
from sqlalchemy.orm import mapped_column
from sqlalchemy.types import JSON

from algolia_indexlog.utils.time import UtcDateTime

__all__ = [
    "ItemKey",
    "JsonList",
    "Payload",
    "SessionId",
    "StageName",
    "Timestamp",
]

# Session identifiers are generated per run, see utils.uid.make_session_id
SessionId = Annotated[
    str,
    mapped_column(
        String(64),
        index=True,
        comment="Indexing session identifier",
    ),
]

# Integer ids and external keys share one string column; 0 is batch-level
ItemKey = Annotated[
    str,
    mapped_column(
        String(128),
        index=True,
        comment="Item identifier (string form)",
    ),
]

StageName = Annotated[
    str,
    mapped_column(
        String(32),
        index=True,
        comment="Pipeline stage",
    ),
]

Payload = Annotated[
    dict[str, Any],
    mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Stage-specific payload (JSON)",
    ),
]

JsonList = Annotated[
    list[Any],
    mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="JSON array",
    ),
]

Timestamp = Annotated[
    datetime,
    mapped_column(
        UtcDateTime,
        nullable=False,
        index=True,
        comment="Event timestamp (UTC)",
    ),
]
