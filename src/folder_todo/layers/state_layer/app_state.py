"""アプリケーション状態 - コントローラが唯一の所有者、ストアへは参照で渡す"""

from dataclasses import dataclass, field
from typing import List, Optional

from ...core.models import Folder, Todo, ViewState


@dataclass
class AppState:
    """フォルダ・タスク・ビュー状態"""
    folders: List[Folder] = field(default_factory=list)
    todos: List[Todo] = field(default_factory=list)
    view_state: ViewState = field(default_factory=ViewState)

    def find_folder(self, folder_id: Optional[str]) -> Optional[Folder]:
        if not folder_id:
            return None
        return next((folder for folder in self.folders if folder.id == folder_id), None)

    def find_todo(self, todo_id: str) -> Optional[Todo]:
        return next((todo for todo in self.todos if todo.id == todo_id), None)
