"""
ストレージ層 - リアルタイムストア / REST + ローカル状態の2方式を共通境界で提供
"""

from .base import StorageBackend, Collection
from .memory_backend import MemoryBackend
from .realtime_backend import RealtimeBackend
from .rest_backend import RestBackend, RestTodoClient
from .local_state import LocalStateStore
from .reconciliation import encode_description, decode_description, reconcile_todo, reconcile_todos

__all__ = [
    'StorageBackend', 'Collection',
    'MemoryBackend', 'RealtimeBackend',
    'RestBackend', 'RestTodoClient', 'LocalStateStore',
    'encode_description', 'decode_description', 'reconcile_todo', 'reconcile_todos'
]
