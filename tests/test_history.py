"""
Tests for applei.history: bounded message store and message records.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from applei.history import Message, MessageStore, Role

# ========================================================================
# MessageStore bounds and ordering
# ========================================================================


class TestMessageStoreBounds:
    def test_default_max_history_is_ten(self):
        assert MessageStore().max_history == 10

    def test_fifo_eviction_keeps_last_ten(self):
        store = MessageStore(max_history=10)
        for i in range(1, 13):
            store.append(Role.USER, f"m{i}")

        assert store.count() == 10
        assert [m.content for m in store.snapshot()] == [f"m{i}" for i in range(3, 13)]

    def test_append_below_capacity_grows_by_one(self):
        store = MessageStore(max_history=3)
        store.append(Role.USER, "a")
        store.append(Role.ASSISTANT, "b")
        assert len(store) == 2

    def test_insertion_order_preserved(self):
        store = MessageStore()
        store.append(Role.USER, "q")
        store.append(Role.ASSISTANT, "a")
        assert [m.role for m in store] == [Role.USER, Role.ASSISTANT]

    def test_role_accepts_plain_string(self):
        store = MessageStore()
        message = store.append("assistant", "hi")
        assert message.role is Role.ASSISTANT

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            MessageStore().append("narrator", "hi")

    def test_invalid_capacity_rejected(self):
        with pytest.raises(ValueError):
            MessageStore(max_history=0)


class TestMessageStoreQueries:
    def test_recent_returns_tail(self):
        store = MessageStore()
        for i in range(5):
            store.append(Role.USER, str(i))
        assert [m.content for m in store.recent(2)] == ["3", "4"]

    def test_recent_more_than_available(self):
        store = MessageStore()
        store.append(Role.USER, "only")
        assert [m.content for m in store.recent(10)] == ["only"]

    @pytest.mark.parametrize("n", [0, -3])
    def test_recent_non_positive_is_empty(self, n):
        store = MessageStore()
        store.append(Role.USER, "x")
        assert store.recent(n) == []

    def test_clear(self):
        store = MessageStore()
        store.append(Role.USER, "x")
        store.clear()
        assert store.count() == 0
        assert store.snapshot() == []

    def test_snapshot_is_a_copy(self):
        store = MessageStore()
        store.append(Role.USER, "x")
        snap = store.snapshot()
        snap.clear()
        assert store.count() == 1

    def test_replace_respects_capacity(self):
        store = MessageStore(max_history=2)
        store.replace([Message(Role.USER, str(i)) for i in range(4)])
        assert [m.content for m in store] == ["2", "3"]

    def test_render_context(self):
        store = MessageStore()
        store.append(Role.USER, "hello")
        store.append(Role.ASSISTANT, "hi there")
        assert store.render_context() == "user: hello\nassistant: hi there"


class TestTimestamps:
    def test_timestamps_never_go_backwards(self):
        store = MessageStore()
        later = datetime(2030, 1, 1, tzinfo=timezone.utc)
        earlier = later - timedelta(seconds=5)

        with patch("applei.history.utc_now", return_value=later):
            store.append(Role.USER, "first")
        with patch("applei.history.utc_now", return_value=earlier):
            second = store.append(Role.ASSISTANT, "second")

        assert second.timestamp == later

    def test_timestamps_are_timezone_aware(self):
        message = MessageStore().append(Role.USER, "x")
        assert message.timestamp.tzinfo is not None


# ========================================================================
# Message records
# ========================================================================


class TestMessage:
    def test_to_dict_and_back(self):
        original = Message(Role.USER, "hello", datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))
        data = original.to_dict()
        assert data == {
            "role": "user",
            "content": "hello",
            "timestamp": "2025-06-01T12:00:00+00:00",
        }
        assert Message.from_dict(data) == original

    def test_from_dict_accepts_z_suffix(self):
        message = Message.from_dict(
            {"role": "assistant", "content": "ok", "timestamp": "2025-06-01T12:00:00Z"}
        )
        assert message.timestamp.tzinfo is not None

    def test_from_dict_naive_timestamp_assumed_utc(self):
        message = Message.from_dict(
            {"role": "user", "content": "ok", "timestamp": "2025-06-01T12:00:00"}
        )
        assert message.timestamp.tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "record",
        [
            {"content": "x", "timestamp": "2025-06-01T12:00:00"},
            {"role": "robot", "content": "x", "timestamp": "2025-06-01T12:00:00"},
            {"role": "user", "content": 3, "timestamp": "2025-06-01T12:00:00"},
            {"role": "user", "content": "x", "timestamp": "not a date"},
            "not a dict",
        ],
    )
    def test_from_dict_rejects_malformed(self, record):
        with pytest.raises(ValueError):
            Message.from_dict(record)

    def test_preview_truncates_to_fifty_chars(self):
        message = Message(Role.USER, "x" * 80)
        assert message.preview() == "x" * 50 + "..."

    @pytest.mark.parametrize("content", ["hi", "x" * 50])
    def test_preview_leaves_short_content_alone(self, content):
        assert Message(Role.USER, content).preview() == content

    def test_messages_are_immutable(self):
        message = Message(Role.USER, "x")
        with pytest.raises(AttributeError):
            message.content = "y"
