"""Race detection, session aggregation and analysis services."""

from __future__ import annotations

__all__ = [
    "Analyzer",
    "ItemTimeline",
    "RaceDetector",
    "SessionAggregator",
    "build_summary",
    "derive_item_status",
]

from .aggregator import SessionAggregator, build_summary, derive_item_status
from .analyzer import Analyzer, ItemTimeline
from .race import RaceDetector
