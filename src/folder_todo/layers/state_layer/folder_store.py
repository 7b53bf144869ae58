"""
フォルダストア - フォルダのCRUD、名前の一意性制約、タスクの連動削除
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ...core.exceptions import CascadeDeleteError, NotFoundError, ValidationError
from ...core.models import Folder, utc_now
from ..storage_layer.base import StorageBackend
from .app_state import AppState
from .todo_store import TodoStore, CascadeResult

logger = logging.getLogger(__name__)


class FolderStore:
    """フォルダストア"""

    def __init__(self, backend: StorageBackend, state: AppState, todo_store: TodoStore,
                 clock: Callable[[], datetime] = utc_now):
        self.backend = backend
        self.state = state
        self.todo_store = todo_store
        self.clock = clock

    @staticmethod
    def _normalize_name(name: Optional[str]) -> str:
        name = (name or '').strip()
        if not name:
            raise ValidationError("Folder name must not be empty")
        return name

    def apply_snapshot(self, folders: List[Folder]):
        """バックエンドから受け取った全件でキャッシュを置き換え"""
        self.state.folders = sorted(folders, key=lambda folder: folder.created_at, reverse=True)

    async def refresh(self) -> List[Folder]:
        self.apply_snapshot(await self.backend.list_folders())
        return list(self.state.folders)

    async def list(self) -> List[Folder]:
        """全フォルダ（作成日時の降順）"""
        return await self.refresh()

    async def get(self, folder_id: str) -> Folder:
        await self.refresh()
        folder = self.state.find_folder(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}", entity_id=folder_id)
        return folder

    async def find_by_name(self, name: str) -> Optional[Folder]:
        """完全一致（大文字小文字を区別）"""
        return next((folder for folder in await self.refresh() if folder.name == name), None)

    async def create(self, name: str) -> Folder:
        """フォルダ作成"""
        name = self._normalize_name(name)

        if await self.find_by_name(name) is not None:
            raise ValidationError(f"Folder name already exists: {name}")

        folder = await self.backend.create_folder(name, self.clock())
        self.apply_snapshot([item for item in self.state.folders if item.id != folder.id] + [folder])
        logger.info(f"Folder created: {folder.id} ({name})")
        return folder

    async def rename(self, folder_id: str, name: str) -> Folder:
        """フォルダ名変更。自分自身の現在名との重複は許可"""
        name = self._normalize_name(name)
        folder = await self.get(folder_id)

        if any(other.id != folder_id and other.name == name for other in self.state.folders):
            raise ValidationError(f"Folder name already exists: {name}")

        now = self.clock()
        await self.backend.update_folder(folder_id, name, now)

        renamed = Folder(id=folder.id, name=name, created_at=folder.created_at, updated_at=now)
        self.apply_snapshot([item for item in self.state.folders if item.id != folder_id] + [renamed])
        logger.info(f"Folder renamed: {folder_id} -> {name}")
        return renamed

    async def delete(self, folder_id: str) -> CascadeResult:
        """フォルダ削除と所属タスクの連動削除（非トランザクション）"""
        await self.get(folder_id)

        await self.backend.delete_folder(folder_id)
        self.apply_snapshot([item for item in self.state.folders if item.id != folder_id])
        logger.info(f"Folder deleted: {folder_id}")

        result = await self.todo_store.delete_in_folder(folder_id)
        if not result.is_complete:
            raise CascadeDeleteError(folder_id, result.failed_ids, result.deleted_ids, result.errors)
        return result
