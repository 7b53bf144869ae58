"""
ローカル状態ストレージ - ブラウザの localStorage に相当する補助テーブル
SQLite（aiosqlite）によるタスク完了状態マップとフォルダの永続化
"""

import aiosqlite
from datetime import datetime
from typing import Dict, List, Optional, Union
from pathlib import Path
import logging

from ...core.models import Folder, EPOCH, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


class LocalStateStore:
    """ローカル状態ストレージ管理"""

    def __init__(self, database_path: Union[str, Path] = "data/local_state.db"):
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    async def initialize(self):
        """データベース初期化"""
        if self._initialized:
            return

        await self._create_tables()
        self._initialized = True
        logger.info(f"Local state store initialized: {self.database_path}")

    async def _create_tables(self):
        """テーブル作成"""

        # タスク完了状態（タスクID → 完了フラグ）
        completion_table_sql = """
        CREATE TABLE IF NOT EXISTS todo_completion (
            todo_id TEXT PRIMARY KEY,
            completed BOOLEAN NOT NULL DEFAULT FALSE,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """

        # フォルダ（RESTバックエンドにはフォルダ資源がない）
        folders_table_sql = """
        CREATE TABLE IF NOT EXISTS folders (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP
        )
        """

        async with aiosqlite.connect(self.database_path) as db:
            await db.execute(completion_table_sql)
            await db.execute(folders_table_sql)
            await db.execute("CREATE INDEX IF NOT EXISTS idx_folders_created_at ON folders(created_at)")
            await db.commit()

    async def get_completion_map(self) -> Dict[str, bool]:
        """完了状態マップ取得"""
        await self.initialize()
        async with aiosqlite.connect(self.database_path) as db:
            cursor = await db.execute("SELECT todo_id, completed FROM todo_completion")
            rows = await cursor.fetchall()
        return {row[0]: bool(row[1]) for row in rows}

    async def set_completed(self, todo_id: str, completed: bool):
        """完了状態の保存（最後のローカル書き込みが優先）"""
        await self.initialize()
        sql = """
        INSERT INTO todo_completion (todo_id, completed, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(todo_id) DO UPDATE SET completed = excluded.completed, updated_at = excluded.updated_at
        """
        async with aiosqlite.connect(self.database_path) as db:
            await db.execute(sql, (todo_id, completed, datetime.now().isoformat()))
            await db.commit()
        logger.debug(f"Completion stored: {todo_id} -> {completed}")

    async def remove_completed(self, todo_id: str):
        """完了状態の削除"""
        await self.initialize()
        async with aiosqlite.connect(self.database_path) as db:
            await db.execute("DELETE FROM todo_completion WHERE todo_id = ?", (todo_id,))
            await db.commit()

    async def list_folders(self) -> List[Folder]:
        """フォルダ一覧（作成日時の降順）"""
        await self.initialize()
        async with aiosqlite.connect(self.database_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM folders ORDER BY created_at DESC")
            rows = await cursor.fetchall()

        folders = [self._row_to_folder(row) for row in rows]
        folders.sort(key=lambda folder: folder.created_at, reverse=True)
        return folders

    async def get_folder(self, folder_id: str) -> Optional[Folder]:
        await self.initialize()
        async with aiosqlite.connect(self.database_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM folders WHERE id = ?", (folder_id,))
            row = await cursor.fetchone()

        return self._row_to_folder(row) if row else None

    async def save_folder(self, folder: Folder):
        """フォルダの保存（新規・更新）"""
        await self.initialize()
        sql = """
        INSERT INTO folders (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET name = excluded.name, updated_at = excluded.updated_at
        """
        async with aiosqlite.connect(self.database_path) as db:
            await db.execute(sql, (
                folder.id, folder.name,
                format_timestamp(folder.created_at),
                format_timestamp(folder.updated_at)
            ))
            await db.commit()

    async def delete_folder(self, folder_id: str) -> bool:
        """フォルダ削除（削除できたかを返す）"""
        await self.initialize()
        async with aiosqlite.connect(self.database_path) as db:
            cursor = await db.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
            await db.commit()
            return cursor.rowcount > 0

    def _row_to_folder(self, row: aiosqlite.Row) -> Folder:
        """データベース行をFolderに変換"""
        return Folder(
            id=row['id'],
            name=row['name'],
            created_at=parse_timestamp(row['created_at']) or EPOCH,
            updated_at=parse_timestamp(row['updated_at'])
        )
