"""Race correlation model: RaceRecord."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, Sequence
from sqlalchemy.orm import Mapped, mapped_column

from algolia_indexlog.models.orm.base import Base
from algolia_indexlog.utils import (
    ItemKey,
    JsonList,
    SessionId,
    StageName,
    Timestamp,
    UtcDateTime,
)


class RaceRecord(Base):
    """
    Heuristic evidence that several sessions touched one item closely in time.

    Attributes
    ----------
    item_id : str
        Item identifier in string form
    detected_by : str
        Session whose access triggered the detection
    stage : str
        Stage of the triggering access
    session_ids : list[str]
        All distinct sessions seen inside the window
    stages : list[str]
        All distinct stages seen inside the window
    first_seen, last_seen : datetime
        Earliest window access and the triggering access time
    occurrence_count : int
        Number of accesses inside the window, triggering one included
    """

    __tablename__ = "race_record"

    seq: Mapped[int] = mapped_column(
        Integer, Sequence("race_record_seq"), primary_key=True
    )

    item_id: Mapped[ItemKey]

    detected_by: Mapped[SessionId]

    stage: Mapped[StageName]

    session_ids: Mapped[JsonList]

    stages: Mapped[JsonList]

    first_seen: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    last_seen: Mapped[Timestamp]

    occurrence_count: Mapped[int] = mapped_column(Integer, default=1)
