"""
アプリケーションコントローラ - 状態の唯一の所有者

一方向のデータフロー:
  ストア変更 → 明示的な通知 → 純粋なビュー導出 → リスナー（描画）
処理中の操作は同じキーで再実行できない（UIのボタン無効化に相当）
"""

import logging
from typing import Awaitable, Callable, List, Optional, Set, Union

from ...core.error_handler import ErrorHandler, ErrorReport
from ...core.exceptions import (
    NotFoundError, OperationInProgressError, ValidationError
)
from ...core.models import Folder, StatusFilter, Todo, ViewSnapshot, ViewType, utc_now
from ...utils.enhanced_logger import EnhancedLogger, get_logger
from ..storage_layer.base import Collection, StorageBackend
from .app_state import AppState
from .folder_store import FolderStore
from .todo_store import CascadeResult, TodoStore
from . import view_selector

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[ViewSnapshot], Awaitable[None]]


class AppController:
    """フォルダ付きタスク管理のコントローラ"""

    def __init__(self, backend: StorageBackend, clock: Callable = utc_now,
                 app_logger: Optional[EnhancedLogger] = None):
        self.backend = backend
        self.state = AppState()
        self.todo_store = TodoStore(backend, self.state, clock)
        self.folder_store = FolderStore(backend, self.state, self.todo_store, clock)
        self.error_handler = ErrorHandler()
        self.last_error: Optional[ErrorReport] = None
        self.app_logger = app_logger or get_logger()

        self._pending: Set[str] = set()
        self._listeners: List[SnapshotListener] = []
        self._unsubscribes: List[Callable[[], Awaitable[None]]] = []

    # --- ライフサイクル ---

    async def start(self):
        """両コレクションを読み込み、バックエンドの変更を購読"""
        self._unsubscribes.append(
            await self.backend.subscribe(Collection.FOLDERS, self._on_folders_changed))
        self._unsubscribes.append(
            await self.backend.subscribe(Collection.TODOS, self._on_todos_changed))
        logger.info(f"Controller started with {self.backend.name} backend")

    async def close(self):
        for unsubscribe in self._unsubscribes:
            await unsubscribe()
        self._unsubscribes.clear()
        await self.backend.close()

    async def refresh(self) -> ViewSnapshot:
        """明示的な再読込"""
        await self.folder_store.refresh()
        await self.todo_store.refresh()
        await self._publish()
        return self.snapshot()

    async def _on_folders_changed(self, folders: List[Folder]):
        self.folder_store.apply_snapshot(folders)
        # 他所で削除された選択中フォルダ
        current = self.state.view_state
        if current.view == ViewType.FOLDER and self.state.find_folder(current.folder_id) is None:
            self.state.view_state = view_selector.folder_deleted(current, current.folder_id)
        await self._publish()

    async def _on_todos_changed(self, todos: List[Todo]):
        self.todo_store.apply_snapshot(todos)
        await self._publish()

    # --- 通知 ---

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def snapshot(self) -> ViewSnapshot:
        """現在の状態から描画用スナップショットを導出"""
        view_state = self.state.view_state
        visible = view_selector.select_todos(self.state.todos, view_state)
        return ViewSnapshot(
            view_state=view_state,
            folders=list(self.state.folders),
            todos=visible,
            counts=view_selector.summarize(visible),
            current_folder=self.state.find_folder(view_state.folder_id)
        )

    async def _publish(self):
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                await listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}")

    # --- 処理中ガード ---

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def health(self) -> dict:
        """バックエンド名・処理中キー・件数と操作メトリクス"""
        return {
            'backend': self.backend.name,
            'pending': sorted(self._pending),
            'folders': len(self.state.folders),
            'todos': len(self.state.todos),
            'error_counts': {kind.value: count for kind, count in self.error_handler.error_counts.items()},
            **self.app_logger.get_health_status()
        }

    async def _run(self, key: str, operation: str, action: Callable[[], Awaitable], **context):
        if key in self._pending:
            raise OperationInProgressError(f"Operation already in progress: {key}", entity_id=key)

        self._pending.add(key)
        self.last_error = None
        op_context = self.app_logger.log_operation_start(operation, **context)
        try:
            result = await action()
        except Exception as e:
            self.last_error = self.error_handler.handle_error(e, operation)
            self.app_logger.log_operation_end(op_context, success=False, error=e,
                                              error_kind=self.last_error.kind.value)
            raise
        else:
            self.app_logger.log_operation_end(op_context, success=True)
            return result
        finally:
            self._pending.discard(key)
            await self._publish()

    # --- タスク操作 ---

    async def add_todo(self, text: str, folder_id: Optional[str] = None,
                       new_folder_name: Optional[str] = None) -> Todo:
        """タスク追加。today ビューではフォルダ指定（または新規作成）が必須"""

        async def action():
            if not (text or '').strip():
                raise ValidationError("Todo text must not be empty")

            view_state = self.state.view_state
            target_folder_id = folder_id
            # フォルダビューで未指定なら現在のフォルダ
            if not target_folder_id and view_state.view == ViewType.FOLDER:
                target_folder_id = view_state.folder_id

            if view_state.view == ViewType.TODAY and not target_folder_id and new_folder_name is None:
                raise ValidationError("A folder must be selected to add a todo in the today view")

            if new_folder_name is not None:
                folder = await self.folder_store.create(new_folder_name)
                target_folder_id = folder.id

            return await self.todo_store.create(text, target_folder_id)

        return await self._run("add", "add_todo", action, folder_id=folder_id)

    async def edit_todo(self, todo_id: str, text: str) -> Todo:
        return await self._run(f"todo:{todo_id}", "edit_todo",
                               lambda: self.todo_store.update(todo_id, text), todo_id=todo_id)

    async def toggle_todo(self, todo_id: str) -> Todo:
        return await self._run(f"todo:{todo_id}", "toggle_todo",
                               lambda: self.todo_store.toggle_completed(todo_id), todo_id=todo_id)

    async def delete_todo(self, todo_id: str):
        return await self._run(f"todo:{todo_id}", "delete_todo",
                               lambda: self.todo_store.delete(todo_id), todo_id=todo_id)

    # --- フォルダ操作 ---

    async def create_folder(self, name: str) -> Folder:
        return await self._run("folder:create", "create_folder",
                               lambda: self.folder_store.create(name))

    async def rename_folder(self, folder_id: str, name: str) -> Folder:
        return await self._run(f"folder:{folder_id}", "rename_folder",
                               lambda: self.folder_store.rename(folder_id, name), folder_id=folder_id)

    async def delete_folder(self, folder_id: str) -> CascadeResult:
        """フォルダ削除。選択中なら today ビューへ戻る"""

        async def action():
            # 連動削除が一部失敗（CascadeDeleteError）してもフォルダ自体は削除済み
            try:
                return await self.folder_store.delete(folder_id)
            finally:
                if self.state.find_folder(folder_id) is None:
                    self.state.view_state = view_selector.folder_deleted(self.state.view_state, folder_id)

        return await self._run(f"folder:{folder_id}", "delete_folder", action, folder_id=folder_id)

    # --- ビュー操作 ---

    async def select_today(self) -> ViewSnapshot:
        self.state.view_state = view_selector.select_today(self.state.view_state)
        await self._publish()
        return self.snapshot()

    async def select_folder(self, folder_id: str) -> ViewSnapshot:
        if self.state.find_folder(folder_id) is None:
            await self.folder_store.refresh()
            if self.state.find_folder(folder_id) is None:
                raise NotFoundError(f"Folder not found: {folder_id}", entity_id=folder_id)

        self.state.view_state = view_selector.select_folder(self.state.view_state, folder_id)
        await self._publish()
        return self.snapshot()

    async def set_filter(self, status_filter: Union[StatusFilter, str]) -> ViewSnapshot:
        self.state.view_state = view_selector.set_status_filter(self.state.view_state, status_filter)
        await self._publish()
        return self.snapshot()
