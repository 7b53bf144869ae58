"""
設定管理 - YAML設定ファイル・環境変数オーバーライド・秘密情報の復号
"""

import os
import yaml
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Dict, Any, Optional, Union
from cryptography.fernet import Fernet, InvalidToken
import logging

logger = logging.getLogger(__name__)

ENV_PREFIX = "FOLDER_TODO_"
ENCRYPTED_PREFIX = "encrypted:"
BACKEND_CHOICES = ("memory", "realtime", "rest")


@dataclass
class RealtimeConfig:
    """リアルタイムストア（Variant A）設定"""
    database_url: str = ""
    timeout_seconds: float = 10.0


@dataclass
class RestConfig:
    """REST API（Variant B）設定"""
    base_url: str = "http://localhost:3000"
    resource: str = "todos"
    timeout_seconds: float = 10.0


@dataclass
class LocalStorageConfig:
    """ローカル補助状態（完了状態・フォルダ）設定"""
    database_path: str = "data/local_state.db"


@dataclass
class LoggingConfig:
    """ログ設定"""
    level: str = "INFO"
    file_path: Optional[str] = None
    json_output: bool = False
    metrics_enabled: bool = True


@dataclass
class AppConfig:
    """設定メインクラス"""
    backend: str = "memory"  # memory, realtime, rest
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    rest: RestConfig = field(default_factory=RestConfig)
    local_storage: LocalStorageConfig = field(default_factory=LocalStorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    debug: bool = False
    version: str = "1.0.0"
    environment: str = "development"  # development, staging, production


class SecurityManager:
    """秘密情報の暗号化・復号（Fernet）"""

    def __init__(self, encryption_key: Optional[str] = None):
        self.encryption_key = encryption_key or os.getenv(f'{ENV_PREFIX}ENCRYPTION_KEY')
        self.cipher = Fernet(self.encryption_key.encode()) if self.encryption_key else None

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt_value(self, value: str) -> str:
        """値の暗号化（"encrypted:" 付きで返す）"""
        if not self.cipher:
            raise ValueError(f"{ENV_PREFIX}ENCRYPTION_KEY is not set")
        return ENCRYPTED_PREFIX + self.cipher.encrypt(value.encode()).decode()

    def decrypt_value(self, value: str) -> str:
        """"encrypted:" 付きの値を復号。それ以外はそのまま返す"""
        if not value.startswith(ENCRYPTED_PREFIX):
            return value
        if not self.cipher:
            logger.warning("Encrypted secret found but no encryption key configured")
            return value

        try:
            return self.cipher.decrypt(value[len(ENCRYPTED_PREFIX):].encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt secret: invalid token or wrong key")
            return value


class ConfigManager:
    """YAML・環境変数・秘密情報から AppConfig を組み立てる"""

    SECRET_KEYS = ('REALTIME_AUTH', 'REST_TOKEN')

    def __init__(self,
                 config_dir: Union[str, Path] = "config",
                 secrets_dir: Optional[Union[str, Path]] = None,
                 security_manager: Optional[SecurityManager] = None):

        self.config_dir = Path(config_dir)
        self.secrets_dir = Path(secrets_dir) if secrets_dir else self.config_dir / "secrets"
        self.security_manager = security_manager or SecurityManager()

        self._config_cache: Optional[AppConfig] = None
        self._secrets_cache: Dict[str, str] = {}

    def load_config(self, reload: bool = False) -> AppConfig:
        """設定の読み込み（main.yaml + storage.yaml + 環境変数）"""
        if self._config_cache and not reload:
            return self._config_cache

        main_config = self._load_yaml_file(self.config_dir / "main.yaml")
        storage_config = self._load_yaml_file(self.config_dir / "storage.yaml")

        merged_config = {**main_config, **storage_config}
        merged_config = self._apply_env_overrides(merged_config)

        self._config_cache = self._create_config_object(merged_config)

        logger.info(f"Configuration loaded: backend={self._config_cache.backend}, "
                    f"environment={self._config_cache.environment}")
        return self._config_cache

    def load_secrets(self, reload: bool = False) -> Dict[str, str]:
        """秘密情報の読み込み（優先順位: 環境変数 > .env）"""
        if self._secrets_cache and not reload:
            return self._secrets_cache

        secrets = {**self._load_env_file(), **self._load_env_secrets()}
        self._secrets_cache = {
            key: self.security_manager.decrypt_value(value) for key, value in secrets.items()
        }

        logger.debug(f"Secrets loaded: {len(self._secrets_cache)} items")
        return self._secrets_cache

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """YAMLを辞書として読み込む（存在しない・不正な場合は空）"""
        if not file_path.exists():
            logger.debug(f"Config file not found: {file_path}")
            return {}

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to load YAML file: {file_path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Config file must contain a mapping: {file_path}")
            return {}
        return data

    def _load_env_secrets(self) -> Dict[str, str]:
        """FOLDER_TODO_ 接頭辞付き環境変数の秘密情報"""
        return {
            key: os.environ[f"{ENV_PREFIX}{key}"]
            for key in self.SECRET_KEYS if os.getenv(f"{ENV_PREFIX}{key}")
        }

    def _load_env_file(self) -> Dict[str, str]:
        """secrets/.env の KEY=VALUE 行"""
        env_file = self.secrets_dir / ".env"
        if not env_file.exists():
            return {}

        secrets = {}
        with open(env_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    if key.startswith(ENV_PREFIX):
                        key = key[len(ENV_PREFIX):]
                    secrets[key] = value.strip().strip('"\'')

        return secrets

    def _apply_env_overrides(self, config: Dict) -> Dict:
        """FOLDER_TODO_* 環境変数で設定値を上書き"""
        env_overrides = {
            f'{ENV_PREFIX}BACKEND': ('backend', str),
            f'{ENV_PREFIX}DEBUG': ('debug', lambda x: x.lower() in ['true', '1', 'yes']),
            f'{ENV_PREFIX}ENVIRONMENT': ('environment', str),
            f'{ENV_PREFIX}LOG_LEVEL': ('logging.level', str),
            f'{ENV_PREFIX}REALTIME_URL': ('realtime.database_url', str),
            f'{ENV_PREFIX}REST_URL': ('rest.base_url', str),
            f'{ENV_PREFIX}DB_PATH': ('local_storage.database_path', str),
        }

        for env_key, (config_path, converter) in env_overrides.items():
            env_value = os.getenv(env_key)
            if env_value:
                self._set_nested_value(config, config_path, converter(env_value))

        return config

    def _set_nested_value(self, config: Dict, path: str, value: Any):
        """"a.b.c" 形式のパスへ値を設定"""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _create_config_object(self, config_dict: Dict) -> AppConfig:
        """設定辞書からネストしたdataclassを構築"""
        config = _build_dataclass(AppConfig, config_dict)
        if config.backend not in BACKEND_CHOICES:
            raise ValueError(f"Unknown backend '{config.backend}' (expected one of {', '.join(BACKEND_CHOICES)})")
        return config

    def save_config_template(self):
        """main.yaml と storage.yaml の雛形を書き出す"""
        templates = {
            "main.yaml": {
                "version": "1.0.0",
                "environment": "development",
                "debug": False,
                "backend": "memory",
                "logging": {
                    "level": "INFO",
                    "file_path": "logs/folder_todo.log",
                    "json_output": False
                }
            },
            "storage.yaml": {
                "realtime": {
                    "database_url": "https://<project>-default-rtdb.firebaseio.com",
                    "timeout_seconds": 10.0
                },
                "rest": {
                    "base_url": "http://localhost:3000",
                    "resource": "todos",
                    "timeout_seconds": 10.0
                },
                "local_storage": {
                    "database_path": "data/local_state.db"
                }
            }
        }

        self.config_dir.mkdir(parents=True, exist_ok=True)
        for filename, template in templates.items():
            file_path = self.config_dir / filename
            if not file_path.exists():
                with open(file_path, 'w', encoding='utf-8') as f:
                    yaml.dump(template, f, default_flow_style=False, allow_unicode=True)
                logger.info(f"Created config template: {filename}")


def _build_dataclass(cls, values: Dict[str, Any]):
    """未知のキーは警告して無視"""
    known = {f.name: f for f in fields(cls)}
    kwargs = {}

    for key, value in (values or {}).items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key for {cls.__name__}: {key}")
            continue

        default = known[key].default_factory() if callable(known[key].default_factory) else None
        if is_dataclass(default) and isinstance(value, dict):
            kwargs[key] = _build_dataclass(type(default), value)
        else:
            kwargs[key] = value

    return cls(**kwargs)


def create_backend(config: AppConfig, secrets: Optional[Dict[str, str]] = None):
    """設定に応じたストレージバックエンドを生成"""
    from ..layers.storage_layer import (
        LocalStateStore, MemoryBackend, RealtimeBackend, RestBackend, RestTodoClient
    )

    secrets = secrets or {}

    if config.backend == "memory":
        return MemoryBackend()

    if config.backend == "realtime":
        if not config.realtime.database_url:
            raise ValueError("realtime.database_url is required for the realtime backend")
        return RealtimeBackend(
            config.realtime.database_url,
            auth_token=secrets.get('REALTIME_AUTH'),
            timeout_seconds=config.realtime.timeout_seconds
        )

    if config.backend == "rest":
        client = RestTodoClient(
            config.rest.base_url,
            api_token=secrets.get('REST_TOKEN'),
            timeout_seconds=config.rest.timeout_seconds,
            resource=config.rest.resource
        )
        return RestBackend(client, LocalStateStore(config.local_storage.database_path))

    raise ValueError(f"Unknown backend '{config.backend}' (expected one of {', '.join(BACKEND_CHOICES)})")
