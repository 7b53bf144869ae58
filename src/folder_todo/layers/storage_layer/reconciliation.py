"""
照合（Reconciliation）- リモートのタスクレコードとローカル補助状態の統合

リモート（/todos API）は completed / folderId を持たない。
  - folderId は description に "folderId:<id>" として埋め込む（エンコーディング v1）
  - completed はローカルのキー・バリュー表（タスクID → bool）から復元
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ...core.models import Todo, EPOCH, parse_timestamp

logger = logging.getLogger(__name__)

FOLDER_TAG_PREFIX = "folderId:"
ENCODING_VERSION = 1


@dataclass(frozen=True)
class DescriptionTag:
    """description から読み取った補助情報"""
    folder_id: Optional[str]
    note: str = ""
    version: Optional[int] = None


def encode_description(folder_id: Optional[str], note: str = "") -> str:
    """フォルダIDを description 文字列へエンコード"""
    if not folder_id:
        return note
    if any(ch.isspace() for ch in folder_id):
        raise ValueError(f"Folder id cannot contain whitespace: {folder_id!r}")

    encoded = f"{FOLDER_TAG_PREFIX}{folder_id}"
    return f"{encoded}\n{note}" if note else encoded


def decode_description(description: Optional[str]) -> DescriptionTag:
    """description 文字列からフォルダIDを復元（タグがなければ folder_id=None）"""
    if not description or not description.startswith(FOLDER_TAG_PREFIX):
        return DescriptionTag(folder_id=None, note=description or "")

    first_line, _, note = description.partition("\n")
    folder_id = first_line[len(FOLDER_TAG_PREFIX):].strip()

    return DescriptionTag(
        folder_id=folder_id or None,
        note=note,
        version=ENCODING_VERSION,
    )


def remote_todo_id(raw: Mapping[str, Any]) -> Optional[str]:
    """_id（MongoDB系）または id"""
    value = raw.get('_id', raw.get('id'))
    return str(value) if value not in (None, "") else None


def reconcile_todo(raw: Mapping[str, Any], completion: Mapping[str, bool]) -> Todo:
    """リモートレコード1件を完全なTodoへ変換"""
    todo_id = remote_todo_id(raw)
    if todo_id is None:
        raise ValueError(f"Remote todo has no id: {dict(raw)}")

    tag = decode_description(raw.get('description'))
    created_at = parse_timestamp(raw.get('createdAt')) or EPOCH

    return Todo(
        id=todo_id,
        text=raw.get('title') or '',
        completed=bool(completion.get(todo_id, False)),
        folder_id=tag.folder_id,
        created_at=created_at,
        updated_at=parse_timestamp(raw.get('updatedAt')) or created_at,
        note=tag.note,
    )


def reconcile_todos(raws: Iterable[Mapping[str, Any]], completion: Mapping[str, bool]) -> List[Todo]:
    """リモートレコード一覧を照合し、作成日時の降順で返す"""
    todos: List[Todo] = []
    for raw in raws:
        try:
            todos.append(reconcile_todo(raw, completion))
        except ValueError as e:
            logger.warning(f"Skipping malformed remote todo: {e}")

    todos.sort(key=lambda todo: todo.created_at, reverse=True)
    return todos


def build_remote_payload(text: str, folder_id: Optional[str], note: str = "") -> Dict[str, str]:
    """POST/PUT 用ボディ"""
    return {
        'title': text,
        'description': encode_description(folder_id, note),
    }
