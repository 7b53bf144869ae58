"""
照合（リモートレコード + ローカル完了状態）のテスト
"""

from datetime import datetime, timezone

import pytest

from folder_todo.core.models import EPOCH
from folder_todo.layers.storage_layer.reconciliation import (
    ENCODING_VERSION, build_remote_payload, decode_description, encode_description,
    reconcile_todo, reconcile_todos, remote_todo_id
)


class TestDescriptionCodec:
    """description へのフォルダID埋め込み"""

    def test_encode_folder_id(self):
        assert encode_description("f1") == "folderId:f1"

    def test_encode_without_folder(self):
        assert encode_description(None) == ""
        assert encode_description(None, "memo") == "memo"

    def test_encode_with_note(self):
        assert encode_description("f1", "買い物リスト") == "folderId:f1\n買い物リスト"

    def test_encode_rejects_whitespace(self):
        with pytest.raises(ValueError):
            encode_description("bad id")

    def test_decode_tagged(self):
        tag = decode_description("folderId:abc123")
        assert tag.folder_id == "abc123"
        assert tag.note == ""
        assert tag.version == ENCODING_VERSION

    def test_decode_with_note(self):
        tag = decode_description("folderId:abc\nline one\nline two")
        assert tag.folder_id == "abc"
        assert tag.note == "line one\nline two"

    @pytest.mark.parametrize("description", [None, "", "just a note", "folder:abc"])
    def test_decode_untagged(self, description):
        tag = decode_description(description)
        assert tag.folder_id is None
        assert tag.version is None

    def test_decode_empty_tag(self):
        assert decode_description("folderId:").folder_id is None

    def test_round_trip(self):
        assert decode_description(encode_description("-NxYz_09")).folder_id == "-NxYz_09"


class TestReconcile:
    """リモートレコードの照合"""

    def test_remote_id_prefers_underscore_id(self):
        assert remote_todo_id({'_id': 'a', 'id': 'b'}) == 'a'
        assert remote_todo_id({'id': 7}) == '7'
        assert remote_todo_id({'title': 'x'}) is None

    def test_reconcile_fills_folder_and_completion(self):
        raw = {
            '_id': 't1',
            'title': '牛乳を買う',
            'description': 'folderId:f1',
            'createdAt': '2024-03-01T10:00:00.000Z',
        }
        todo = reconcile_todo(raw, {'t1': True})

        assert todo.id == 't1'
        assert todo.text == '牛乳を買う'
        assert todo.folder_id == 'f1'
        assert todo.completed is True
        assert todo.created_at == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_missing_completion_defaults_to_false(self):
        todo = reconcile_todo({'id': 't2', 'title': 'x'}, {})
        assert todo.completed is False
        assert todo.folder_id is None
        assert todo.created_at == EPOCH

    def test_reconcile_requires_id(self):
        with pytest.raises(ValueError):
            reconcile_todo({'title': 'no id'}, {})

    def test_reconcile_many_sorted_and_skips_malformed(self):
        raws = [
            {'_id': 'old', 'title': 'old', 'createdAt': '2024-01-01T00:00:00Z'},
            {'title': 'malformed'},
            {'_id': 'new', 'title': 'new', 'createdAt': '2024-02-01T00:00:00Z'},
        ]
        todos = reconcile_todos(raws, {'old': True})

        assert [todo.id for todo in todos] == ['new', 'old']
        assert todos[1].completed is True

    def test_payload_round_trip(self):
        payload = build_remote_payload("text", "f9")
        raw = {'_id': 'r1', **payload}

        todo = reconcile_todo(raw, {'r1': False})
        assert (todo.text, todo.folder_id, todo.completed) == ("text", "f9", False)

    def test_note_survives_rewrite(self):
        todo = reconcile_todo({'_id': 'r2', 'title': 'x', 'description': 'folderId:f1\nメモ'}, {})
        assert todo.note == "メモ"

        payload = build_remote_payload("y", todo.folder_id, todo.note)
        assert payload['description'] == "folderId:f1\nメモ"
