"""Tests for session aggregation and item status derivation."""

from __future__ import annotations

from datetime import timedelta

from algolia_indexlog.constants import ItemStatus, Level, Stage
from algolia_indexlog.models.schemas import AnalysisInputMissing, SessionEndInfo
from algolia_indexlog.services import SessionAggregator, derive_item_status

from conftest import T0


def _journey(make_event, item_id, *steps, session_id="sess-a", start=0):
    """Events for one item; each step is (stage, payload[, level])."""
    events = []
    for offset, step in enumerate(steps, start=start):
        stage, payload, *level = step
        events.append(
            make_event(
                session_id,
                item_id,
                stage,
                offset=offset,
                payload=payload,
                level=level[0] if level else Level.INFO,
            )
        )
    return events


INDEXED = (
    (Stage.RETRIEVAL, {"type": "product"}),
    (Stage.FILTERING, {"should_index": True}, Level.DEBUG),
    (Stage.GENERATION, {"records_count": 2}, Level.DEBUG),
    (Stage.SUBMISSION, {"success": True, "records_count": 2}),
)


class TestDeriveItemStatus:
    """Test last-stage-wins status derivation."""

    def test_indexed(self, make_event):
        assert derive_item_status(_journey(make_event, 1, *INDEXED)) is ItemStatus.INDEXED

    def test_skipped(self, make_event):
        events = _journey(
            make_event,
            1,
            (Stage.RETRIEVAL, {}),
            (Stage.FILTERING, {"should_index": False, "skip_reason": "draft"}),
        )
        assert derive_item_status(events) is ItemStatus.SKIPPED

    def test_failed_generation(self, make_event):
        events = _journey(
            make_event,
            1,
            (Stage.RETRIEVAL, {}),
            (Stage.FILTERING, {"should_index": True}),
            (Stage.GENERATION, {"error": "bad template"}, Level.ERROR),
        )
        assert derive_item_status(events) is ItemStatus.FAILED

    def test_unknown_without_signal(self, make_event):
        events = _journey(make_event, 1, (Stage.RETRIEVAL, {}))
        assert derive_item_status(events) is ItemStatus.UNKNOWN

    def test_later_stage_wins(self, make_event):
        """Test that a generation error after a skip marks the item failed."""
        events = _journey(
            make_event,
            1,
            (Stage.RETRIEVAL, {}),
            (Stage.FILTERING, {"should_index": False}),
            (Stage.GENERATION, {"error": "x"}, Level.ERROR),
        )
        assert derive_item_status(events) is ItemStatus.FAILED

    def test_retry_after_retrieval(self, make_event):
        """Test that a new retrieval starts a fresh attempt."""
        events = _journey(
            make_event,
            1,
            (Stage.RETRIEVAL, {}),
            (Stage.GENERATION, {"error": "timeout"}, Level.ERROR),
            *INDEXED,
        )
        assert derive_item_status(events) is ItemStatus.INDEXED

    def test_no_regression_without_retrieval(self, make_event):
        """Test that a late filtering event cannot undo a submission."""
        events = _journey(
            make_event,
            1,
            *INDEXED,
            (Stage.FILTERING, {"should_index": False}),
        )
        assert derive_item_status(events) is ItemStatus.INDEXED

    def test_out_of_order_timestamps(self, make_event):
        """Test that pipeline order, not timestamps, decides."""
        submission = make_event("sess-a", 1, Stage.SUBMISSION, offset=0, payload={"success": True})
        filtering = make_event("sess-a", 1, Stage.FILTERING, offset=1, payload={"should_index": False})
        assert derive_item_status([submission, filtering]) is ItemStatus.INDEXED

    def test_malformed_flag_is_absent(self, make_event):
        """Test that an unreadable should_index gives no skip signal."""
        events = _journey(make_event, 1, (Stage.FILTERING, {"should_index": {"nested": 1}}))
        assert derive_item_status(events) is ItemStatus.UNKNOWN

    def test_string_flag(self, make_event):
        events = _journey(make_event, 1, (Stage.FILTERING, {"should_index": "false"}))
        assert derive_item_status(events) is ItemStatus.SKIPPED


class TestSessionAggregator:
    """Test session summaries."""

    def _populate(self, store, make_event):
        events = (
            _journey(make_event, 1, *INDEXED)
            + _journey(make_event, 2, (Stage.RETRIEVAL, {}), (Stage.FILTERING, {"should_index": False}), start=4)
            + _journey(make_event, 3, (Stage.RETRIEVAL, {}), (Stage.GENERATION, {"error": "x"}, Level.ERROR), start=6)
            + _journey(make_event, 4, (Stage.RETRIEVAL, {}), start=8)
            + [make_event("sess-a", 0, Stage.SANITIZATION, offset=9, payload={"dropped_count": 1})]
        )
        store.append(events)
        return events

    def test_summary_counts(self, store, make_event):
        """Test status and stage counts."""
        events = self._populate(store, make_event)

        summary = SessionAggregator(store).summarize("sess-a")

        assert summary.total_items == 4
        assert summary.status_counts == {
            ItemStatus.INDEXED: 1,
            ItemStatus.SKIPPED: 1,
            ItemStatus.FAILED: 1,
            ItemStatus.UNKNOWN: 1,
        }
        assert summary.event_count == len(events)
        assert summary.error_count == 1
        assert summary.stage_counts[Stage.RETRIEVAL] == 4
        assert summary.stage_counts[Stage.SANITIZATION] == 1
        assert summary.stage_counts[Stage.DELETION] == 0
        assert summary.start_time == T0
        assert summary.end_time == T0 + timedelta(seconds=9)
        assert summary.duration == 9.0

    def test_idempotent(self, store, make_event):
        """Test that summarizing twice gives the same result."""
        self._populate(store, make_event)
        aggregator = SessionAggregator(store)
        assert aggregator.summarize("sess-a") == aggregator.summarize("sess-a")

    def test_open_session(self, store, make_event):
        """Test that a session without end record is open."""
        self._populate(store, make_event)
        summary = SessionAggregator(store).summarize("sess-a")
        assert not summary.closed
        assert summary.memory_peak is None

    def test_closed_session(self, store, make_event):
        """Test that the end record closes the session and extends it."""
        self._populate(store, make_event)
        store.record_session_end(
            SessionEndInfo(
                session_id="sess-a",
                ended_at=T0 + timedelta(seconds=20),
                duration=20.0,
                memory_peak=64 * 1024 * 1024,
            )
        )

        summary = SessionAggregator(store).summarize("sess-a")

        assert summary.closed
        assert summary.memory_peak == 64 * 1024 * 1024
        assert summary.end_time == T0 + timedelta(seconds=20)
        assert summary.duration == 20.0

    def test_missing_session(self, store):
        """Test that an unknown session yields AnalysisInputMissing."""
        result = SessionAggregator(store).summarize("nope")
        assert isinstance(result, AnalysisInputMissing)
        assert result.session_ids == ["nope"]
        assert not result.found

    def test_item_statuses(self, store, make_event):
        self._populate(store, make_event)
        statuses = SessionAggregator(store).item_statuses("sess-a")
        assert statuses == {
            1: ItemStatus.INDEXED,
            2: ItemStatus.SKIPPED,
            3: ItemStatus.FAILED,
            4: ItemStatus.UNKNOWN,
        }
