"""
リアルタイムバックエンド（Variant A）- Firebase Realtime Database の REST/ストリーミングAPI
  GET/POST/PATCH/DELETE {database_url}/{path}.json
  購読: Accept: text/event-stream（put/patch イベントごとにコレクション全体を再取得）
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from ...core.exceptions import TransportError
from ...core.models import Folder, Todo, format_timestamp
from .base import StorageBackend, Collection

logger = logging.getLogger(__name__)

# コレクション変更を示すストリームイベント
CHANGE_EVENTS = ('put', 'patch')
TERMINAL_EVENTS = ('cancel', 'auth_revoked')


class RealtimeBackend(StorageBackend):
    """Firebase Realtime Database クライアント"""

    name = "realtime"

    def __init__(self, database_url: str, auth_token: Optional[str] = None,
                 timeout_seconds: float = 10.0):
        super().__init__()
        self.database_url = database_url.rstrip('/')
        self.auth_token = auth_token
        self.timeout_seconds = timeout_seconds

        self._session: Optional[aiohttp.ClientSession] = None
        self._stream_tasks: Dict[Collection, asyncio.Task] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.database_url}/{path}.json"

    def _params(self) -> Optional[Dict[str, str]]:
        return {'auth': self.auth_token} if self.auth_token else None

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """REST呼び出し。通信失敗・エラー応答・非JSONは TransportError"""
        session = await self._get_session()
        try:
            async with session.request(method, self._url(path), json=payload,
                                       params=self._params()) as response:
                body = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"{method} {path} failed with HTTP {response.status}",
                        status=response.status
                    )
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {path} timed out") from e

        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            raise TransportError(f"{method} {path} returned non-JSON response") from e

    @staticmethod
    def _records(data: Any) -> Dict[str, Dict[str, Any]]:
        """スナップショットを {key: record} に正規化"""
        if not data:
            return {}
        if isinstance(data, list):
            # 連番キーは配列で返される
            return {str(index): record for index, record in enumerate(data) if isinstance(record, dict)}
        if isinstance(data, dict):
            return {key: record for key, record in data.items() if isinstance(record, dict)}
        raise TransportError(f"Unexpected snapshot type: {type(data).__name__}")

    async def list_folders(self) -> List[Folder]:
        records = self._records(await self._request('GET', Collection.FOLDERS.value))
        folders = [Folder.from_dict(key, data) for key, data in records.items()]
        folders.sort(key=lambda folder: folder.created_at, reverse=True)
        return folders

    async def _push(self, collection: Collection, record: Dict[str, Any]) -> str:
        """push() + set() 相当。生成されたキーを返す"""
        response = await self._request('POST', collection.value, record)
        if not isinstance(response, dict) or 'name' not in response:
            raise TransportError(f"Push to {collection.value} returned no key")
        return response['name']

    async def create_folder(self, name: str, created_at: datetime) -> Folder:
        folder = Folder(id='', name=name, created_at=created_at)
        folder.id = await self._push(Collection.FOLDERS, folder.to_dict())
        logger.debug(f"Folder pushed: {folder.id}")
        return folder

    async def update_folder(self, folder_id: str, name: str, updated_at: datetime):
        await self._request('PATCH', f"{Collection.FOLDERS.value}/{folder_id}", {
            'name': name,
            'updatedAt': format_timestamp(updated_at)
        })

    async def delete_folder(self, folder_id: str):
        await self._request('DELETE', f"{Collection.FOLDERS.value}/{folder_id}")

    async def list_todos(self) -> List[Todo]:
        records = self._records(await self._request('GET', Collection.TODOS.value))
        todos = [Todo.from_dict(key, data) for key, data in records.items()]
        todos.sort(key=lambda todo: todo.created_at, reverse=True)
        return todos

    async def create_todo(self, text: str, folder_id: Optional[str], created_at: datetime) -> Todo:
        todo = Todo(id='', text=text, completed=False, folder_id=folder_id,
                    created_at=created_at, updated_at=created_at)
        todo.id = await self._push(Collection.TODOS, todo.to_dict())
        logger.debug(f"Todo pushed: {todo.id}")
        return todo

    async def update_todo_text(self, todo: Todo, text: str, updated_at: datetime):
        await self._request('PATCH', f"{Collection.TODOS.value}/{todo.id}", {
            'text': text,
            'updatedAt': format_timestamp(updated_at)
        })

    async def set_todo_completed(self, todo: Todo, completed: bool, updated_at: datetime):
        await self._request('PATCH', f"{Collection.TODOS.value}/{todo.id}", {
            'completed': completed,
            'updatedAt': format_timestamp(updated_at)
        })

    async def delete_todo(self, todo_id: str):
        await self._request('DELETE', f"{Collection.TODOS.value}/{todo_id}")

    # --- ストリーミング購読 ---

    async def _on_first_listener(self, collection: Collection):
        task = self._stream_tasks.get(collection)
        if task is None or task.done():
            self._stream_tasks[collection] = asyncio.create_task(self._stream(collection))

    async def _on_last_listener(self, collection: Collection):
        task = self._stream_tasks.pop(collection, None)
        if task:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _stream(self, collection: Collection):
        """イベントストリームを読み、変更ごとに購読者へ全件配信"""
        session = await self._get_session()
        event_name: Optional[str] = None

        try:
            async with session.get(self._url(collection.value), params=self._params(),
                                   headers={'Accept': 'text/event-stream'},
                                   timeout=aiohttp.ClientTimeout(total=None)) as response:
                if response.status != 200:
                    logger.error(f"Realtime stream for {collection.value} rejected: HTTP {response.status}")
                    return

                logger.info(f"Realtime stream opened: {collection.value}")
                async for raw_line in response.content:
                    line = raw_line.decode('utf-8', errors='replace').strip()

                    if line.startswith('event:'):
                        event_name = line[len('event:'):].strip()
                    elif line.startswith('data:'):
                        if event_name in CHANGE_EVENTS:
                            try:
                                await self._emit(collection)
                            except TransportError as e:
                                logger.error(f"Failed to reload {collection.value} after change: {e}")
                        elif event_name in TERMINAL_EVENTS:
                            logger.warning(f"Realtime stream for {collection.value} ended by server: {event_name}")
                            return

        except aiohttp.ClientError as e:
            logger.error(f"Realtime stream for {collection.value} disconnected: {e}")

    async def close(self):
        for collection in list(self._stream_tasks):
            await self._on_last_listener(collection)
        if self._session and not self._session.closed:
            await self._session.close()
        await super().close()
