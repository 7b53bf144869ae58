"""データモデル定義"""

from datetime import datetime, timezone
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Dict, Any, List


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """現在時刻（UTC）"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO文字列・エポックミリ秒をdatetimeに変換"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    text = str(value).strip()
    # JavaScriptの toISOString() は末尾が 'Z'
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


class ViewType(Enum):
    """ナビゲーションビュー"""
    TODAY = "today"      # 絞り込みなし（日付フィルタではない）
    FOLDER = "folder"    # 単一フォルダに限定


class StatusFilter(Enum):
    """完了状態フィルタ"""
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Folder:
    """フォルダモデル"""
    id: str
    name: str
    created_at: datetime = EPOCH
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """保存用の辞書形式（idはキー側に持つ）"""
        data: Dict[str, Any] = {
            'name': self.name,
            'createdAt': format_timestamp(self.created_at),
        }
        if self.updated_at:
            data['updatedAt'] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, folder_id: str, data: Dict[str, Any]) -> "Folder":
        return cls(
            id=folder_id,
            name=data.get('name', ''),
            created_at=parse_timestamp(data.get('createdAt')) or EPOCH,
            updated_at=parse_timestamp(data.get('updatedAt')),
        )


@dataclass
class Todo:
    """タスク（Todo）モデル - 照合後は completed / folder_id が必ず埋まる"""
    id: str
    text: str
    completed: bool = False
    folder_id: Optional[str] = None
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH
    # REST の description のうちフォルダタグ以外の部分（編集時に書き戻す）
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'completed': self.completed,
            'folderId': self.folder_id,
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, todo_id: str, data: Dict[str, Any]) -> "Todo":
        created_at = parse_timestamp(data.get('createdAt')) or EPOCH
        return cls(
            id=todo_id,
            text=data.get('text', ''),
            completed=bool(data.get('completed', False)),
            folder_id=data.get('folderId') or None,
            created_at=created_at,
            updated_at=parse_timestamp(data.get('updatedAt')) or created_at,
        )

    def with_changes(self, **changes) -> "Todo":
        return replace(self, **changes)


@dataclass(frozen=True)
class ViewState:
    """現在のビュー状態（不変）"""
    view: ViewType = ViewType.TODAY
    folder_id: Optional[str] = None
    status_filter: StatusFilter = StatusFilter.ALL


@dataclass
class TodoCounts:
    """表示中タスクの集計"""
    total: int = 0
    active: int = 0
    completed: int = 0


@dataclass
class ViewSnapshot:
    """リスナーへ通知する描画用スナップショット"""
    view_state: ViewState
    folders: List[Folder] = field(default_factory=list)
    todos: List[Todo] = field(default_factory=list)
    counts: TodoCounts = field(default_factory=TodoCounts)
    current_folder: Optional[Folder] = None
