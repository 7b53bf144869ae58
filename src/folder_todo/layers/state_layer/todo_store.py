"""
タスクストア - タスクのCRUDと照合済みレコードのキャッシュ
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from ...core.exceptions import NotFoundError, ValidationError
from ...core.models import Todo, utc_now
from ..storage_layer.base import StorageBackend
from .app_state import AppState

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """フォルダ連動削除の結果"""
    deleted_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failed_ids


class TodoStore:
    """タスクストア"""

    def __init__(self, backend: StorageBackend, state: AppState,
                 clock: Callable[[], datetime] = utc_now):
        self.backend = backend
        self.state = state
        self.clock = clock

    @staticmethod
    def _normalize_text(text: Optional[str]) -> str:
        text = (text or '').strip()
        if not text:
            raise ValidationError("Todo text must not be empty")
        return text

    def apply_snapshot(self, todos: List[Todo]):
        """バックエンドから受け取った全件でキャッシュを置き換え"""
        self.state.todos = sorted(todos, key=lambda todo: todo.created_at, reverse=True)

    def _replace(self, todo: Todo):
        others = [item for item in self.state.todos if item.id != todo.id]
        self.apply_snapshot(others + [todo])

    def _remove(self, todo_ids: List[str]):
        removed = set(todo_ids)
        self.state.todos = [todo for todo in self.state.todos if todo.id not in removed]

    async def refresh(self) -> List[Todo]:
        """バックエンドから再読込（照合済み）"""
        self.apply_snapshot(await self.backend.list_todos())
        return list(self.state.todos)

    async def list(self) -> List[Todo]:
        """全タスク（作成日時の降順）"""
        return await self.refresh()

    async def list_by_folder(self, folder_id: str) -> List[Todo]:
        return [todo for todo in await self.refresh() if todo.folder_id == folder_id]

    async def get(self, todo_id: str) -> Todo:
        await self.refresh()
        todo = self.state.find_todo(todo_id)
        if todo is None:
            raise NotFoundError(f"Todo not found: {todo_id}", entity_id=todo_id)
        return todo

    async def create(self, text: str, folder_id: Optional[str] = None) -> Todo:
        """タスク作成。folder_id は既存フォルダを指す必要がある"""
        text = self._normalize_text(text)

        if folder_id:
            folders = await self.backend.list_folders()
            if not any(folder.id == folder_id for folder in folders):
                raise NotFoundError(f"Folder not found: {folder_id}", entity_id=folder_id)

        todo = await self.backend.create_todo(text, folder_id or None, self.clock())
        self._replace(todo)
        logger.info(f"Todo created: {todo.id} (folder={todo.folder_id})")
        return todo

    async def update(self, todo_id: str, text: str) -> Todo:
        """本文の更新。同じ内容なら何もしない"""
        text = self._normalize_text(text)
        todo = await self.get(todo_id)

        if todo.text == text:
            logger.debug(f"Todo text unchanged, skipping update: {todo_id}")
            return todo

        now = self.clock()
        await self.backend.update_todo_text(todo, text, now)
        updated = todo.with_changes(text=text, updated_at=now)
        self._replace(updated)
        logger.info(f"Todo updated: {todo_id}")
        return updated

    async def toggle_completed(self, todo_id: str) -> Todo:
        """完了状態の反転"""
        todo = await self.get(todo_id)
        now = self.clock()
        completed = not todo.completed

        await self.backend.set_todo_completed(todo, completed, now)
        updated = todo.with_changes(completed=completed, updated_at=now)
        self._replace(updated)
        logger.info(f"Todo {todo_id} marked {'completed' if completed else 'active'}")
        return updated

    async def delete(self, todo_id: str):
        """タスク削除"""
        await self.get(todo_id)
        await self.backend.delete_todo(todo_id)
        self._remove([todo_id])
        logger.info(f"Todo deleted: {todo_id}")

    async def delete_in_folder(self, folder_id: str) -> CascadeResult:
        """フォルダ内の全タスクを個別に削除し、全件の完了を待つ（部分失敗あり）"""
        targets = await self.list_by_folder(folder_id)
        result = CascadeResult()
        if not targets:
            return result

        outcomes = await asyncio.gather(
            *(self.backend.delete_todo(todo.id) for todo in targets),
            return_exceptions=True
        )

        for todo, outcome in zip(targets, outcomes):
            if not isinstance(outcome, BaseException) or isinstance(outcome, NotFoundError):
                # 既に存在しないものは削除済みとみなす
                result.deleted_ids.append(todo.id)
            elif isinstance(outcome, Exception):
                result.failed_ids.append(todo.id)
                result.errors.append(outcome)
            else:
                raise outcome

        self._remove(result.deleted_ids)
        logger.info(f"Cascade delete for folder {folder_id}: "
                    f"{len(result.deleted_ids)} deleted, {len(result.failed_ids)} failed")
        return result
