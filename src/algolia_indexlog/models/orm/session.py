"""Session end model: SessionEnd."""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Float, Integer, Sequence
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from algolia_indexlog.models.orm.base import Base
from algolia_indexlog.utils import SessionId, Timestamp


class SessionEnd(Base):
    """
    Explicit closing record for an indexing session.

    Sessions without a row here are still open (or crashed).
    """

    __tablename__ = "indexing_session"

    seq: Mapped[int] = mapped_column(
        Integer, Sequence("indexing_session_seq"), primary_key=True
    )

    session_id: Mapped[SessionId]

    ended_at: Mapped[Timestamp]

    duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    memory_peak: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    total_items: Mapped[int] = mapped_column(Integer, default=0)

    status_breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    extra: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
