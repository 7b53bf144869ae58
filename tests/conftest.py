"""
共通フィクスチャ
"""

from datetime import datetime, timedelta, timezone

import pytest

from folder_todo.layers.state_layer import AppController, AppState, FolderStore, TodoStore
from folder_todo.layers.storage_layer import MemoryBackend


class StepClock:
    """呼び出しごとに1秒進む時計（作成順 = 時刻順）"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def stores(memory_backend, clock):
    """(folder_store, todo_store, state)"""
    state = AppState()
    todo_store = TodoStore(memory_backend, state, clock)
    folder_store = FolderStore(memory_backend, state, todo_store, clock)
    return folder_store, todo_store, state


@pytest.fixture
async def controller(memory_backend, clock):
    app = AppController(memory_backend, clock=clock)
    await app.start()
    yield app
    await app.close()
