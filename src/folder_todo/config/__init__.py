"""設定管理"""

from .settings import (
    AppConfig, RealtimeConfig, RestConfig, LocalStorageConfig, LoggingConfig,
    ConfigManager, SecurityManager, create_backend
)

__all__ = [
    'AppConfig', 'RealtimeConfig', 'RestConfig', 'LocalStorageConfig', 'LoggingConfig',
    'ConfigManager', 'SecurityManager', 'create_backend'
]
