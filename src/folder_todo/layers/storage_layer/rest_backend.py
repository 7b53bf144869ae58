"""
RESTバックエンド（Variant B）- /todos リクエスト/レスポンスAPI + ローカル補助状態

リモートが保持するのは {title, description, createdAt} のみ。
  - folderId: description の "folderId:<id>" 規約（reconciliation モジュール）
  - completed: LocalStateStore の完了状態マップ（リモートへは送信しない）
  - フォルダ: LocalStateStore に保存
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from ...core.exceptions import NotFoundError, TransportError
from ...core.models import Folder, Todo, parse_timestamp
from .base import StorageBackend, Collection
from .local_state import LocalStateStore
from .reconciliation import (
    build_remote_payload, reconcile_todo, reconcile_todos, remote_todo_id
)

logger = logging.getLogger(__name__)


class RestTodoClient:
    """/todos 資源のHTTPクライアント"""

    def __init__(self, base_url: str, api_token: Optional[str] = None,
                 timeout_seconds: float = 10.0, resource: str = "todos"):
        self.base_url = base_url.rstrip('/')
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self.resource = resource.strip('/')

        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {'Accept': 'application/json'}
            if self.api_token:
                headers['Authorization'] = f"Bearer {self.api_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    def _url(self, todo_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{self.resource}"
        return f"{url}/{todo_id}" if todo_id else url

    async def _request(self, method: str, todo_id: Optional[str] = None,
                       payload: Optional[Dict[str, Any]] = None) -> Any:
        """HTTP呼び出し。404は NotFoundError、その他の失敗は TransportError"""
        session = await self._get_session()
        target = f"/{self.resource}" + (f"/{todo_id}" if todo_id else "")

        try:
            async with session.request(method, self._url(todo_id), json=payload) as response:
                body = await response.text()
                status = response.status
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {target} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {target} timed out") from e

        if status == 404:
            raise NotFoundError(f"Todo not found: {todo_id}", entity_id=todo_id)
        if status >= 400:
            raise TransportError(f"{method} {target} failed with HTTP {status}", status=status)

        if not body.strip():
            return None
        try:
            return self._unwrap(json.loads(body))
        except ValueError as e:
            raise TransportError(f"{method} {target} returned non-JSON response", status=status) from e

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """{"data": ...} / {"todos": ...} 形式のラッパーを外す"""
        if isinstance(body, dict):
            for key in ('data', 'todos', 'todo'):
                if key in body and isinstance(body[key], (list, dict)):
                    return body[key]
        return body

    async def list(self) -> List[Dict[str, Any]]:
        body = await self._request('GET')
        if body is None:
            return []
        if not isinstance(body, list):
            raise TransportError(f"GET /{self.resource} returned {type(body).__name__}, expected list")
        return [record for record in body if isinstance(record, dict)]

    async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request('POST', payload=payload)
        if not isinstance(body, dict) or remote_todo_id(body) is None:
            raise TransportError(f"POST /{self.resource} returned no todo id")
        return body

    async def update(self, todo_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        body = await self._request('PUT', todo_id, payload)
        return body if isinstance(body, dict) else None

    async def delete(self, todo_id: str):
        await self._request('DELETE', todo_id)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()


class RestBackend(StorageBackend):
    """RESTクライアントとローカル状態を組み合わせたバックエンド"""

    name = "rest"

    def __init__(self, client: RestTodoClient, local_state: LocalStateStore):
        super().__init__()
        self.client = client
        self.local_state = local_state

    # --- フォルダ（ローカルのみ） ---

    async def list_folders(self) -> List[Folder]:
        return await self.local_state.list_folders()

    async def create_folder(self, name: str, created_at: datetime) -> Folder:
        folder = Folder(id=uuid.uuid4().hex, name=name, created_at=created_at)
        await self.local_state.save_folder(folder)
        await self._emit(Collection.FOLDERS)
        return folder

    async def update_folder(self, folder_id: str, name: str, updated_at: datetime):
        folder = await self.local_state.get_folder(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}", entity_id=folder_id)

        folder.name = name
        folder.updated_at = updated_at
        await self.local_state.save_folder(folder)
        await self._emit(Collection.FOLDERS)

    async def delete_folder(self, folder_id: str):
        if not await self.local_state.delete_folder(folder_id):
            raise NotFoundError(f"Folder not found: {folder_id}", entity_id=folder_id)
        await self._emit(Collection.FOLDERS)

    # --- タスク（リモート + ローカル照合） ---

    async def list_todos(self) -> List[Todo]:
        raws = await self.client.list()
        completion = await self.local_state.get_completion_map()
        todos = reconcile_todos(raws, completion)
        logger.debug(f"Reconciled {len(todos)} remote todos")
        return todos

    async def create_todo(self, text: str, folder_id: Optional[str], created_at: datetime) -> Todo:
        raw = await self.client.create(build_remote_payload(text, folder_id))
        todo = reconcile_todo(raw, {})

        # サーバーが一部項目を返さない場合はリクエスト内容で補完
        if 'description' not in raw:
            todo.folder_id = folder_id
        if parse_timestamp(raw.get('createdAt')) is None:
            todo.created_at = created_at
            todo.updated_at = created_at

        await self.local_state.set_completed(todo.id, False)
        await self._emit(Collection.TODOS)
        return todo

    async def update_todo_text(self, todo: Todo, text: str, updated_at: datetime):
        # PUT は全体置換のため folderId タグとメモを毎回書き戻す
        await self.client.update(todo.id, build_remote_payload(text, todo.folder_id, todo.note))
        await self._emit(Collection.TODOS)

    async def set_todo_completed(self, todo: Todo, completed: bool, updated_at: datetime):
        # ローカルのみ。リモートには completed 項目が存在しない
        await self.local_state.set_completed(todo.id, completed)
        await self._emit(Collection.TODOS)

    async def delete_todo(self, todo_id: str):
        try:
            await self.client.delete(todo_id)
        except NotFoundError:
            await self.local_state.remove_completed(todo_id)
            raise

        await self.local_state.remove_completed(todo_id)
        await self._emit(Collection.TODOS)

    async def close(self):
        await self.client.close()
        await super().close()
