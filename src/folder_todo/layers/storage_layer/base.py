"""
ストレージバックエンド抽象 - 2種類の永続化方式を同じ境界の裏に置く

  Variant A: リアルタイムプッシュストア（folders/{id}, todos/{id}）
  Variant B: /todos REST API + ローカル補助状態
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ...core.models import Folder, Todo

logger = logging.getLogger(__name__)


class Collection(Enum):
    """購読対象コレクション"""
    FOLDERS = "folders"
    TODOS = "todos"


# 変更のたびにコレクション全体を受け取る
ChangeCallback = Callable[[List[Any]], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class StorageBackend(ABC):
    """バックエンド共通インターフェース"""

    name = "abstract"

    def __init__(self):
        self._listeners: Dict[Collection, List[ChangeCallback]] = {
            Collection.FOLDERS: [],
            Collection.TODOS: [],
        }

    # --- フォルダ ---

    @abstractmethod
    async def list_folders(self) -> List[Folder]:
        """全フォルダ（作成日時の降順）"""

    @abstractmethod
    async def create_folder(self, name: str, created_at: datetime) -> Folder:
        """フォルダ作成（IDはバックエンドが採番）"""

    @abstractmethod
    async def update_folder(self, folder_id: str, name: str, updated_at: datetime):
        """フォルダ名の更新"""

    @abstractmethod
    async def delete_folder(self, folder_id: str):
        """フォルダ削除"""

    # --- タスク ---

    @abstractmethod
    async def list_todos(self) -> List[Todo]:
        """照合済みの全タスク（作成日時の降順）"""

    @abstractmethod
    async def create_todo(self, text: str, folder_id: Optional[str], created_at: datetime) -> Todo:
        """タスク作成（completed=False）"""

    @abstractmethod
    async def update_todo_text(self, todo: Todo, text: str, updated_at: datetime):
        """タスク本文の更新"""

    @abstractmethod
    async def set_todo_completed(self, todo: Todo, completed: bool, updated_at: datetime):
        """完了状態の更新"""

    @abstractmethod
    async def delete_todo(self, todo_id: str):
        """タスク削除（ローカル補助状態も含む）"""

    # --- 購読 ---

    async def subscribe(self, collection: Collection, callback: ChangeCallback) -> Unsubscribe:
        """変更購読。登録直後に現在のコレクション全体を一度配信する"""
        first = not self._listeners[collection]
        self._listeners[collection].append(callback)
        if first:
            await self._on_first_listener(collection)
        await callback(await self._fetch(collection))

        async def unsubscribe():
            if callback in self._listeners[collection]:
                self._listeners[collection].remove(callback)
            if not self._listeners[collection]:
                await self._on_last_listener(collection)

        return unsubscribe

    async def _on_first_listener(self, collection: Collection):
        """購読開始フック（ストリーム接続など）"""

    async def _on_last_listener(self, collection: Collection):
        """購読終了フック"""

    async def _fetch(self, collection: Collection) -> List[Any]:
        if collection == Collection.FOLDERS:
            return await self.list_folders()
        return await self.list_todos()

    async def _emit(self, collection: Collection):
        """購読者へコレクション全体を通知"""
        listeners = list(self._listeners[collection])
        if not listeners:
            return

        items = await self._fetch(collection)
        for callback in listeners:
            try:
                await callback(items)
            except Exception as e:
                logger.error(f"Change listener for {collection.value} failed: {e}")

    async def close(self):
        """リソース解放"""
        for collection in Collection:
            self._listeners[collection].clear()
