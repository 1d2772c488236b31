"""Constants and enumerations for algolia_indexlog."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "BATCH_ITEM_ID",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_HTTP_BUFFER_SIZE",
    "DEFAULT_RACE_WINDOW_SECONDS",
    "DEFAULT_TTL_DAYS",
    "ItemStatus",
    "Level",
    "STAGE_ORDER",
    "Stage",
    "TERMINAL_STAGES",
]


class Stage(str, Enum):
    """Indexing pipeline stages, in pipeline order."""

    RETRIEVAL = "retrieval"
    FILTERING = "filtering"
    GENERATION = "generation"
    SANITIZATION = "sanitization"
    SUBMISSION = "submission"
    DELETION = "deletion"


class Level(str, Enum):
    """Event severity."""

    INFO = "info"
    DEBUG = "debug"
    ERROR = "error"
    WARNING = "warning"
    STATS = "stats"


class ItemStatus(str, Enum):
    """Final status of an item within one session."""

    INDEXED = "indexed"
    SKIPPED = "skipped"
    FAILED = "failed"
    UNKNOWN = "unknown"


STAGE_ORDER: dict[Stage, int] = {stage: i for i, stage in enumerate(Stage)}

# Stages that end an item's journey through the pipeline
TERMINAL_STAGES = frozenset({Stage.SUBMISSION, Stage.DELETION})

# Item id carried by batch-level events
BATCH_ITEM_ID = 0

DEFAULT_BUFFER_SIZE = 50
DEFAULT_HTTP_BUFFER_SIZE = 25
DEFAULT_RACE_WINDOW_SECONDS = 10.0
DEFAULT_TTL_DAYS = 7
