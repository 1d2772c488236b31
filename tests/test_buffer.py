"""Tests for the event buffer."""

from __future__ import annotations

from datetime import timedelta

import pytest

from algolia_indexlog.constants import Level, Stage
from algolia_indexlog.errors import WriteFailed
from algolia_indexlog.ingest import derive_level
from algolia_indexlog.store import MemoryEventStore

from conftest import T0


class FailingStore(MemoryEventStore):
    """Store whose batch writes always fail."""

    def __init__(self, exc: Exception | None = None) -> None:
        super().__init__()
        self.exc = exc or WriteFailed("disk full")
        self.attempts = 0

    def append(self, events):
        self.attempts += 1
        raise self.exc


class ExplodingDetector:
    def check(self, event):
        raise RuntimeError("store lookup failed")


class TestFlush:
    """Test threshold and forced flushes."""

    def test_below_threshold_stays_queued(self, memory_store, make_buffer):
        """Test that nothing is written before the threshold."""
        buffer = make_buffer(memory_store, threshold=3)
        buffer.track(1, Stage.RETRIEVAL)
        buffer.track(2, Stage.RETRIEVAL)

        assert buffer.pending == 2
        assert memory_store.session_events("sess-a") == []

    def test_threshold_triggers_flush(self, memory_store, make_buffer):
        """Test that reaching the threshold writes one batch."""
        buffer = make_buffer(memory_store, threshold=3)
        for item_id in (1, 2, 3):
            buffer.track(item_id, Stage.RETRIEVAL)

        assert buffer.pending == 0
        assert [e.item_id for e in memory_store.session_events("sess-a")] == [1, 2, 3]

    def test_flush_round_trip(self, store, make_buffer):
        """Test that flushed events read back equal to what was tracked."""
        buffer = make_buffer(store)
        tracked = [
            buffer.track(10, Stage.RETRIEVAL, {"type": "product"}),
            buffer.track(10, Stage.FILTERING, {"should_index": True}),
            buffer.track(10, Stage.GENERATION, {"records_count": 2}),
        ]

        assert buffer.flush() == 3

        stored = store.session_events("sess-a")
        assert [e.model_dump(exclude={"seq"}) for e in stored] == [
            e.model_dump(exclude={"seq"}) for e in tracked
        ]

    def test_flush_empty_queue(self, memory_store, make_buffer):
        """Test that flushing nothing writes nothing."""
        assert make_buffer(memory_store).flush() == 0

    def test_close_flushes(self, memory_store, make_buffer):
        """Test that leaving the context flushes the queue."""
        with make_buffer(memory_store) as buffer:
            buffer.track(1, Stage.RETRIEVAL)
        assert len(memory_store.session_events("sess-a")) == 1

    def test_invalid_threshold(self, memory_store, make_buffer):
        """Test that a zero threshold is rejected."""
        with pytest.raises(ValueError):
            make_buffer(memory_store, threshold=0)


class TestFailures:
    """Test at-most-once delivery."""

    @pytest.mark.parametrize("exc", [WriteFailed("disk full"), RuntimeError("boom")])
    def test_failed_batch_is_dropped(self, make_buffer, exc, log_messages):
        """Test that a failed write drops the batch without raising."""
        store = FailingStore(exc)
        buffer = make_buffer(store, threshold=2)

        buffer.track(1, Stage.RETRIEVAL)
        buffer.track(2, Stage.RETRIEVAL)

        assert buffer.pending == 0
        assert buffer.dropped == 2
        assert store.attempts == 1
        assert any(m.startswith("WARNING|Dropped 2 events") for m in log_messages)

    def test_no_retry_after_drop(self, make_buffer):
        """Test that a dropped batch is not re-sent by the next flush."""
        store = FailingStore()
        buffer = make_buffer(store)
        buffer.track(1, Stage.RETRIEVAL)
        assert buffer.flush() == 0
        assert buffer.flush() == 0
        assert store.attempts == 1

    def test_detector_failure_is_swallowed(self, memory_store, make_buffer):
        """Test that a failing race check still queues the event."""
        buffer = make_buffer(memory_store, detector=ExplodingDetector())
        buffer.track(1, Stage.RETRIEVAL)
        assert buffer.pending == 1


class TestEvents:
    """Test event construction."""

    @pytest.mark.parametrize(
        ("stage", "payload", "expected"),
        [
            (Stage.RETRIEVAL, {}, Level.INFO),
            (Stage.FILTERING, {"should_index": False}, Level.DEBUG),
            (Stage.GENERATION, {"records_count": 1}, Level.DEBUG),
            (Stage.GENERATION, {"error": "template failed"}, Level.ERROR),
            (Stage.SUBMISSION, {"success": False}, Level.ERROR),
            (Stage.SUBMISSION, {"success": True}, Level.INFO),
        ],
    )
    def test_derive_level(self, stage, payload, expected):
        """Test default severity rules."""
        assert derive_level(stage, payload) is expected

    def test_explicit_level_wins(self, memory_store, make_buffer):
        """Test that an explicit level overrides derivation."""
        event = make_buffer(memory_store).track(1, Stage.RETRIEVAL, {"error": "x"}, level="stats")
        assert event.level is Level.STATS

    def test_stage_from_string(self, memory_store, make_buffer):
        """Test that stages may be given by name."""
        assert make_buffer(memory_store).track(1, "deletion").stage is Stage.DELETION

    def test_payload_made_json_safe(self, memory_store, make_buffer):
        """Test that non-JSON values are stored as strings."""

        class Widget:
            def __str__(self) -> str:
                return "widget"

        event = make_buffer(memory_store).track(
            1, Stage.RETRIEVAL, {"obj": Widget(), "when": T0, "tags": ("a", "b")}
        )
        assert event.payload == {
            "obj": "widget",
            "when": "2024-05-01T12:00:00Z",
            "tags": ["a", "b"],
        }

    def test_index_id_added_to_payload(self, memory_store, make_buffer):
        """Test that the session's index name is attached."""
        event = make_buffer(memory_store, index_id="products").track(1, Stage.RETRIEVAL)
        assert event.payload["index_id"] == "products"

    def test_timestamps_never_go_backwards(self, memory_store, make_buffer, clock):
        """Test that a clock step back does not reorder events."""
        buffer = make_buffer(memory_store)
        first = buffer.track(1, Stage.RETRIEVAL)
        clock.now = T0 - timedelta(seconds=5)
        second = buffer.track(1, Stage.FILTERING)
        assert second.timestamp == first.timestamp

    def test_batch_level_item(self, memory_store, make_buffer):
        """Test that a missing item id means batch level."""
        event = make_buffer(memory_store).track(None, Stage.SANITIZATION)
        assert event.item_id == 0
        assert event.is_batch_level

    def test_error_mirrored_to_log(self, memory_store, make_buffer, log_messages):
        """Test that error events are also written to the application log."""
        make_buffer(memory_store).track(3, Stage.GENERATION, {"error": "template failed"})
        assert "ERROR|[Algolia Index] generation - ERROR: template failed" in log_messages
