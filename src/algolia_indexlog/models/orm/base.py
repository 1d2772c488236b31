"""Base class for all ORM models."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""


@event.listens_for(Base.metadata, "before_create")
def _set_table_comments(target, connection, **kw):
    """Auto-set table comments from class docstrings."""
    for table in target.tables.values():
        for mapper in Base.registry.mappers:
            if mapper.local_table is table and mapper.class_.__doc__:
                doc_lines = mapper.class_.__doc__.strip().split("\n")
                table.comment = doc_lines[0].strip()
                break
