"""Pydantic schemas for ingestion and analysis boundaries.

ORM rows never leave the store layer. Stores convert them into these
models (``from_attributes=True``), and every analysis result is one of the
report models below so it can be rendered by the CLI or dumped as JSON.

Examples
--------
Convert an ORM row:
    >>> event = Event.model_validate(indexing_event_row)

Export a report:
    >>> summary = aggregator.summarize(session_id)
    >>> print(summary.model_dump_json(indent=2))
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from algolia_indexlog.constants import BATCH_ITEM_ID, ItemStatus, Level, Stage
from algolia_indexlog.utils import ensure_utc, normalize_item_id

__all__ = [
    # Stored records
    "Access",
    "CorrelationRecord",
    "Event",
    "SessionEndInfo",
    # Reports
    "AnalysisInputMissing",
    "CompareReport",
    "ErrorDetail",
    "ErrorReport",
    "ItemReport",
    "MissingReport",
    "RaceReport",
    "RaceSummary",
    "RaceTimeline",
    "SessionInfo",
    "SessionOverlap",
    "SessionSummary",
    "StageBreakdown",
    "StageDelta",
    "TimeRange",
]

ItemId = int | str


class _Record(BaseModel):
    """Common config and validators for stored records."""

    model_config = ConfigDict(from_attributes=True)

    @field_validator("item_id", mode="before", check_fields=False)
    @classmethod
    def _normalize_item_id(cls, value: Any) -> ItemId:
        return normalize_item_id(value)

    @field_validator(
        "timestamp", "first_seen", "last_seen", "ended_at", check_fields=False
    )
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ============================================================================
# Stored records
# ============================================================================


class Event(_Record):
    """
    One observation of an item passing through one pipeline stage.

    ``seq`` is assigned by the store and is ``None`` until the event has
    been flushed and read back.
    """

    session_id: str = Field(..., min_length=1, max_length=64)
    item_id: ItemId = BATCH_ITEM_ID
    stage: Stage
    level: Level = Level.INFO
    timestamp: datetime
    payload: dict[str, Any] = Field(default_factory=dict)
    seq: int | None = None

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_or_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def is_batch_level(self) -> bool:
        return self.item_id == BATCH_ITEM_ID


class Access(_Record):
    """Race-detection candidate written for every tracked item access."""

    item_id: ItemId
    session_id: str
    stage: Stage
    timestamp: datetime


class CorrelationRecord(_Record):
    """
    Heuristic race evidence: different sessions touched one item in a window.

    Not a proof of concurrent execution, only of timestamp proximity.
    """

    item_id: ItemId
    session_ids: list[str]
    stages: list[Stage]
    first_seen: datetime
    last_seen: datetime
    occurrence_count: int = Field(1, ge=1)
    detected_by: str
    stage: Stage


class SessionEndInfo(_Record):
    """Explicit closing record for a session."""

    session_id: str
    ended_at: datetime
    duration: float | None = None
    memory_peak: int | None = None
    total_items: int = 0
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Reports
# ============================================================================


class AnalysisInputMissing(BaseModel):
    """Returned instead of a report when a session has no stored events."""

    found: Literal[False] = False
    session_ids: list[str]
    message: str

    @classmethod
    def for_sessions(cls, *session_ids: str) -> AnalysisInputMissing:
        joined = ", ".join(session_ids)
        return cls(
            session_ids=list(session_ids),
            message=f"No events found for session(s): {joined}",
        )


class SessionSummary(BaseModel):
    """Per-session statistics computed from stored events."""

    session_id: str
    total_items: int
    status_counts: dict[ItemStatus, int]
    stage_counts: dict[Stage, int]
    event_count: int
    error_count: int
    start_time: datetime
    end_time: datetime
    duration: float = Field(..., description="Seconds between start and end")
    closed: bool = Field(False, description="True once a session end record exists")
    memory_peak: int | None = None


class ItemReport(BaseModel):
    """Flattened view of one item's journey through a session."""

    item_id: ItemId
    item_type: str = ""
    final_status: ItemStatus = ItemStatus.UNKNOWN
    skip_reason: str = ""
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)
    last_stage: Stage | None = None

    @property
    def is_problematic(self) -> bool:
        return (
            self.final_status in (ItemStatus.FAILED, ItemStatus.SKIPPED)
            or self.error_count > 0
        )


class ErrorDetail(BaseModel):
    """One error-level event, batch-level events included."""

    item_id: ItemId
    stage: Stage
    message: str
    timestamp: datetime

    @property
    def is_batch_level(self) -> bool:
        return self.item_id == BATCH_ITEM_ID


class ErrorReport(BaseModel):
    """Errors of one session, oldest first."""

    found: Literal[True] = True
    session_id: str
    total_count: int
    by_stage: dict[Stage, int]
    details: list[ErrorDetail]


class MissingReport(BaseModel):
    """Expected vs. observed items for one session."""

    found: Literal[True] = True
    session_id: str
    expected_count: int
    retrieved_count: int
    observed_count: int = Field(..., description="Items with any event in the session")
    processed_count: int = Field(
        ..., description="Items that reached submission or deletion"
    )
    never_seen: list[ItemId]
    retrieved_not_processed: list[ItemId]
    by_stage: dict[Stage, list[ItemId]]
    status_breakdown: dict[ItemStatus, int]


class StageDelta(BaseModel):
    """Event counts for one stage in two sessions."""

    session_a: int
    session_b: int
    difference: int


class CompareReport(BaseModel):
    """Set comparison of the items two sessions processed."""

    found: Literal[True] = True
    session_a: str
    session_b: str
    only_in_a: list[ItemId]
    only_in_b: list[ItemId]
    in_both: list[ItemId]
    stage_deltas: dict[Stage, StageDelta]
    error_counts: dict[str, int]


class StageBreakdown(BaseModel):
    """Per-stage counters for one session."""

    retrieval_count: int = 0
    filtering_passed: int = 0
    filtering_skipped: int = 0
    skip_reasons: dict[str, int] = Field(default_factory=dict)
    generation_success: int = 0
    generation_failed: int = 0
    sanitization_count: int = 0
    records_dropped: int = 0
    submission_success: int = 0
    submission_failed: int = 0
    deletion_count: int = 0


class TimeRange(BaseModel):
    first: datetime | None = None
    last: datetime | None = None


class SessionInfo(BaseModel):
    """Row of the recent-sessions listing."""

    session_id: str
    start_time: datetime
    end_time: datetime
    event_count: int
    error_count: int
    closed: bool = False


class RaceSummary(BaseModel):
    """Correlation records for one item, aggregated."""

    item_id: ItemId
    occurrences: int
    sessions: list[str]
    stages: list[Stage]
    first_seen: datetime
    last_seen: datetime


class RaceReport(BaseModel):
    """Store-wide race detection report."""

    total_items_affected: int
    items: list[RaceSummary]
    time_range: TimeRange
    by_stage: dict[Stage, int] = Field(default_factory=dict)
    by_hour: dict[int, int] = Field(default_factory=dict)


class SessionOverlap(BaseModel):
    """Two sessions whose activity on an item overlapped in time."""

    sessions: tuple[str, str]
    overlap_seconds: float
    overlap_start: datetime
    overlap_end: datetime


class RaceTimeline(BaseModel):
    """Merged operations and race detections for one item."""

    item_id: ItemId
    entries: list[dict[str, Any]]
    session_overlap: list[SessionOverlap]
