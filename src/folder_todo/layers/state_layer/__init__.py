"""
状態層 - フォルダ/タスクストア、ビュー選択、アプリケーションコントローラ
"""

from .app_state import AppState
from .folder_store import FolderStore
from .todo_store import TodoStore, CascadeResult
from .app_controller import AppController
from .view_selector import select_todos, summarize

__all__ = [
    'AppState',
    'FolderStore', 'TodoStore', 'CascadeResult',
    'AppController',
    'select_todos', 'summarize'
]
