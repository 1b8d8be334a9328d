"""
Tests for applei.persistence: JSON conversation snapshots on disk.
"""

import json
import logging
from datetime import datetime, timezone

import pytest

from applei.history import Message, Role
from applei.persistence import DEFAULT_CONVERSATION, ConversationStore


@pytest.fixture
def store(tmp_path):
    return ConversationStore(tmp_path / "conversations")


def _messages():
    stamp = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)
    return [Message(Role.USER, "hello", stamp), Message(Role.ASSISTANT, "hi", stamp)]


class TestSaveLoad:
    def test_save_creates_directory_and_file(self, store):
        path = store.save(_messages())

        assert path == store.directory / f"{DEFAULT_CONVERSATION}.json"
        assert json.loads(path.read_text(encoding="utf-8")) == [m.to_dict() for m in _messages()]

    def test_load_round_trip(self, store):
        store.save(_messages(), "work")
        assert store.load("work") == _messages()

    def test_save_replaces_previous_snapshot(self, store):
        store.save(_messages(), "work")
        store.save(_messages()[:1], "work")
        assert len(store.load("work")) == 1

    def test_no_temp_files_left_behind(self, store):
        store.save(_messages())
        assert [p.name for p in store.directory.iterdir()] == ["current.json"]

    def test_unicode_preserved(self, store):
        store.save([Message(Role.USER, "café ☕")])
        assert store.load()[0].content == "café ☕"


class TestBestEffortLoad:
    def test_missing_file_is_empty(self, store):
        assert store.load("nothing-here") == []

    def test_corrupt_json_is_empty(self, store, caplog):
        path = store.path_for("broken")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="applei"):
            assert store.load("broken") == []
        assert "Ignoring unreadable conversation" in caplog.text

    def test_wrong_shape_is_empty(self, store):
        path = store.path_for("shape")
        path.parent.mkdir(parents=True)
        path.write_text('{"role": "user"}', encoding="utf-8")
        assert store.load("shape") == []

    def test_malformed_record_is_empty(self, store):
        path = store.path_for("bad")
        path.parent.mkdir(parents=True)
        path.write_text('[{"role": "wizard", "content": "x", "timestamp": "2025"}]')
        assert store.load("bad") == []


class TestNames:
    @pytest.mark.parametrize("name", ["../escape", "", ".hidden", "a/b", "x" * 200])
    def test_invalid_names_rejected(self, store, name):
        with pytest.raises(ValueError):
            store.path_for(name)

    @pytest.mark.parametrize("name", ["current", "work-2025", "notes_v1.2"])
    def test_valid_names(self, store, name):
        assert store.path_for(name).name == f"{name}.json"

    def test_list_conversations_sorted(self, store):
        for name in ("zeta", "alpha", "mid"):
            store.save(_messages(), name)
        assert store.list_conversations() == ["alpha", "mid", "zeta"]

    def test_list_conversations_without_directory(self, store):
        assert store.list_conversations() == []

    def test_delete(self, store):
        store.save(_messages(), "gone")
        assert store.delete("gone") is True
        assert store.delete("gone") is False
        assert store.load("gone") == []
