"""Data models for algolia_indexlog."""

from __future__ import annotations

__all__ = [
    # ORM models
    "Base",
    "IndexingEvent",
    "ItemAccess",
    "RaceRecord",
    "SessionEnd",
    # Schemas
    "Access",
    "AnalysisInputMissing",
    "CompareReport",
    "CorrelationRecord",
    "ErrorDetail",
    "ErrorReport",
    "Event",
    "ItemReport",
    "MissingReport",
    "RaceReport",
    "RaceSummary",
    "RaceTimeline",
    "SessionEndInfo",
    "SessionInfo",
    "SessionOverlap",
    "SessionSummary",
    "StageBreakdown",
    "StageDelta",
    "TimeRange",
]

from .orm import Base, IndexingEvent, ItemAccess, RaceRecord, SessionEnd
from .schemas import (
    Access,
    AnalysisInputMissing,
    CompareReport,
    CorrelationRecord,
    ErrorDetail,
    ErrorReport,
    Event,
    ItemReport,
    MissingReport,
    RaceReport,
    RaceSummary,
    RaceTimeline,
    SessionEndInfo,
    SessionInfo,
    SessionOverlap,
    SessionSummary,
    StageBreakdown,
    StageDelta,
    TimeRange,
)
