"""
メモリバックエンド - リアルタイムストア（Variant A）と同じ契約をプロセス内で実現
ローカル実行・テスト用
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ...core.models import Folder, Todo, format_timestamp
from .base import StorageBackend, Collection

logger = logging.getLogger(__name__)


class MemoryBackend(StorageBackend):
    """辞書ベースのプッシュストア"""

    name = "memory"

    def __init__(self):
        super().__init__()
        # パス "folders/{id}", "todos/{id}" に相当
        self.folders: Dict[str, Dict[str, Any]] = {}
        self.todos: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def _new_key() -> str:
        return uuid.uuid4().hex

    async def list_folders(self) -> List[Folder]:
        folders = [Folder.from_dict(key, data) for key, data in self.folders.items()]
        folders.sort(key=lambda folder: folder.created_at, reverse=True)
        return folders

    async def create_folder(self, name: str, created_at: datetime) -> Folder:
        folder = Folder(id=self._new_key(), name=name, created_at=created_at)
        self.folders[folder.id] = folder.to_dict()
        logger.debug(f"Folder created in memory: {folder.id}")
        await self._emit(Collection.FOLDERS)
        return folder

    async def update_folder(self, folder_id: str, name: str, updated_at: datetime):
        # リアルタイムストアの update と同様、存在確認はしない
        record = self.folders.setdefault(folder_id, {})
        record.update({'name': name, 'updatedAt': format_timestamp(updated_at)})
        await self._emit(Collection.FOLDERS)

    async def delete_folder(self, folder_id: str):
        self.folders.pop(folder_id, None)
        await self._emit(Collection.FOLDERS)

    async def list_todos(self) -> List[Todo]:
        todos = [Todo.from_dict(key, data) for key, data in self.todos.items()]
        todos.sort(key=lambda todo: todo.created_at, reverse=True)
        return todos

    async def create_todo(self, text: str, folder_id: Optional[str], created_at: datetime) -> Todo:
        todo = Todo(
            id=self._new_key(),
            text=text,
            completed=False,
            folder_id=folder_id,
            created_at=created_at,
            updated_at=created_at
        )
        self.todos[todo.id] = todo.to_dict()
        logger.debug(f"Todo created in memory: {todo.id}")
        await self._emit(Collection.TODOS)
        return todo

    async def update_todo_text(self, todo: Todo, text: str, updated_at: datetime):
        record = self.todos.setdefault(todo.id, todo.to_dict())
        record.update({'text': text, 'updatedAt': format_timestamp(updated_at)})
        await self._emit(Collection.TODOS)

    async def set_todo_completed(self, todo: Todo, completed: bool, updated_at: datetime):
        record = self.todos.setdefault(todo.id, todo.to_dict())
        record.update({'completed': completed, 'updatedAt': format_timestamp(updated_at)})
        await self._emit(Collection.TODOS)

    async def delete_todo(self, todo_id: str):
        self.todos.pop(todo_id, None)
        await self._emit(Collection.TODOS)
