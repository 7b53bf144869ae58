"""
ビュー/フィルタ選択 - タスク一覧とビュー状態からの純粋な導出（状態を変更しない）

ビュー状態遷移:
  初期状態 today
  today / folder(id) --select_today--> today
  today / folder(id) --select_folder(x)--> folder(x)
  folder(id) --folder_deleted(id)--> today
"""

from dataclasses import replace
from typing import Iterable, List, Union

from ...core.exceptions import ValidationError
from ...core.models import StatusFilter, Todo, TodoCounts, ViewState, ViewType


def select_todos(todos: Iterable[Todo], view_state: ViewState) -> List[Todo]:
    """ビューで絞り込み、続けて完了状態フィルタを適用（入力順を保持）"""
    filtered = list(todos)

    # today は絞り込みなし（日付フィルタは行わない）
    if view_state.view == ViewType.FOLDER and view_state.folder_id:
        filtered = [todo for todo in filtered if todo.folder_id == view_state.folder_id]

    if view_state.status_filter == StatusFilter.ACTIVE:
        return [todo for todo in filtered if not todo.completed]
    if view_state.status_filter == StatusFilter.COMPLETED:
        return [todo for todo in filtered if todo.completed]
    return filtered


def summarize(todos: Iterable[Todo]) -> TodoCounts:
    """件数集計"""
    todos = list(todos)
    completed = sum(1 for todo in todos if todo.completed)
    return TodoCounts(total=len(todos), active=len(todos) - completed, completed=completed)


def select_today(view_state: ViewState) -> ViewState:
    return replace(view_state, view=ViewType.TODAY, folder_id=None)


def select_folder(view_state: ViewState, folder_id: str) -> ViewState:
    if not folder_id:
        raise ValidationError("Folder view requires a folder id")
    return replace(view_state, view=ViewType.FOLDER, folder_id=folder_id)


def folder_deleted(view_state: ViewState, folder_id: str) -> ViewState:
    """選択中のフォルダが削除されたら today へ戻す"""
    if view_state.view == ViewType.FOLDER and view_state.folder_id == folder_id:
        return select_today(view_state)
    return view_state


def set_status_filter(view_state: ViewState, status_filter: Union[StatusFilter, str]) -> ViewState:
    return replace(view_state, status_filter=parse_status_filter(status_filter))


def parse_status_filter(value: Union[StatusFilter, str]) -> StatusFilter:
    if isinstance(value, StatusFilter):
        return value
    try:
        return StatusFilter(str(value).lower())
    except ValueError:
        choices = ", ".join(item.value for item in StatusFilter)
        raise ValidationError(f"Unknown status filter: {value} (expected one of {choices})")
