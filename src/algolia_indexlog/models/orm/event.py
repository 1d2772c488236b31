"""Event models: IndexingEvent, ItemAccess."""

from __future__ import annotations

from sqlalchemy import Index, Integer, Sequence, String
from sqlalchemy.orm import Mapped, mapped_column

from algolia_indexlog.models.orm.base import Base
from algolia_indexlog.utils import ItemKey, Payload, SessionId, StageName, Timestamp


class IndexingEvent(Base):
    """
    Append-only log of items passing through pipeline stages.

    Rows are only ever inserted (batch flushes) and purged by retention;
    concurrent sessions never update each other's rows.

    Attributes
    ----------
    seq : int
        Autoincrement insertion sequence
    session_id : str
        Indexing session identifier
    item_id : str
        Item identifier in string form ("0" for batch-level events)
    stage : str
        Pipeline stage
    level : str
        Severity (info, debug, error, warning, stats)
    timestamp : datetime
        Event creation time (UTC)
    payload : dict
        Stage-specific data (JSON)
    """

    __tablename__ = "indexing_event"

    seq: Mapped[int] = mapped_column(
        Integer, Sequence("indexing_event_seq"), primary_key=True
    )

    session_id: Mapped[SessionId]

    item_id: Mapped[ItemKey]

    stage: Mapped[StageName]

    level: Mapped[str] = mapped_column(String(16), index=True)

    timestamp: Mapped[Timestamp]

    payload: Mapped[Payload]

    __table_args__ = (
        Index("ix_indexing_event_session_item", "session_id", "item_id", "seq"),
    )


class ItemAccess(Base):
    """
    Race-detection candidates: one row per tracked item access.

    Written synchronously by the race detector, independent of the event
    buffer, so other sessions see the access before the batch is flushed.
    """

    __tablename__ = "item_access"

    seq: Mapped[int] = mapped_column(
        Integer, Sequence("item_access_seq"), primary_key=True
    )

    item_id: Mapped[ItemKey]

    session_id: Mapped[SessionId]

    stage: Mapped[StageName]

    timestamp: Mapped[Timestamp]

    __table_args__ = (Index("ix_item_access_item_time", "item_id", "timestamp"),)
