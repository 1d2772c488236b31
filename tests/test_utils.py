"""Tests for identifier, time and payload helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from algolia_indexlog.errors import MalformedPayload
from algolia_indexlog.services.payload import (
    payload_flag,
    payload_int,
    payload_str,
    require_flag,
    require_int,
)
from algolia_indexlog.utils import (
    UtcDateTime,
    ensure_utc,
    item_key,
    make_session_id,
    normalize_item_id,
    utc_now,
)


class TestItemIds:
    """Test item id normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (42, 42),
            ("42", 42),
            (" 7 ", 7),
            (None, 0),
            ("", 0),
            ("sku-9", "sku-9"),
            ("007", "007"),
            ("0", 0),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_item_id(raw) == expected

    def test_item_key(self):
        assert item_key("42") == "42"
        assert item_key("042") == "042"
        assert item_key(None) == "0"


class TestSessionIds:
    """Test session id generation."""

    def test_unique(self):
        ids = {make_session_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_prefix(self):
        assert make_session_id("run_").startswith("run_")
        assert len(make_session_id()) <= 64


class TestTime:
    """Test UTC helpers."""

    def test_utc_now_aware(self):
        assert utc_now().tzinfo == timezone.utc

    def test_ensure_utc(self):
        naive = datetime(2024, 5, 1, 12, 0)
        assert ensure_utc(naive) == naive.replace(tzinfo=timezone.utc)
        plus_two = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(plus_two).tzinfo == timezone.utc

    def test_utc_datetime_type(self):
        column_type = UtcDateTime()
        plus_two = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        stored = column_type.process_bind_param(plus_two, None)
        assert stored == datetime(2024, 5, 1, 12, 0)
        assert stored.tzinfo is None
        assert column_type.process_result_value(stored, None).tzinfo == timezone.utc
        assert column_type.process_bind_param(None, None) is None


class TestPayloadAccessors:
    """Test strict and lenient payload field access."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(True, True), (False, False), (0, False), (1, True), ("false", False), ("Yes", True)],
    )
    def test_require_flag(self, value, expected):
        assert require_flag({"f": value}, "f") is expected

    @pytest.mark.parametrize("payload", [{}, {"f": None}, {"f": "maybe"}, {"f": [1]}])
    def test_require_flag_malformed(self, payload):
        with pytest.raises(MalformedPayload) as excinfo:
            require_flag(payload, "f")
        assert excinfo.value.field == "f"

    def test_require_int(self):
        assert require_int({"n": "3"}, "n") == 3
        with pytest.raises(MalformedPayload):
            require_int({"n": "three"}, "n")
        with pytest.raises(MalformedPayload):
            require_int({"n": True}, "n")

    def test_lenient(self):
        assert payload_flag({}, "f") is None
        assert payload_flag({"f": "maybe"}, "f", default=True) is True
        assert payload_int({"n": "x"}, "n") == 0
        assert payload_int({"n": 4}, "n") == 4
        assert payload_str({"reason": "draft"}, "skip_reason", "reason") == "draft"
        assert payload_str({}, "skip_reason", default="n/a") == "n/a"
