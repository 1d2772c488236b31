"""SQLAlchemy 2.0 ORM models for algolia_indexlog.

Split into logical modules:
- base.py - Base class
- event.py - Pipeline events and race-detection candidates
- race.py - Race correlation records
- session.py - Session end records

All tables are append-only; retention deletes by timestamp.
"""

from __future__ import annotations

from algolia_indexlog.models.orm.base import Base
from algolia_indexlog.models.orm.event import IndexingEvent, ItemAccess
from algolia_indexlog.models.orm.race import RaceRecord
from algolia_indexlog.models.orm.session import SessionEnd

__all__ = [
    "Base",
    "IndexingEvent",
    "ItemAccess",
    "RaceRecord",
    "SessionEnd",
]
