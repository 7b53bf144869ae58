"""
強化ログシステム - 構造化ログ（structlog）と標準ログ、コントローラ操作のメトリクス

パッケージ配下の logging.getLogger(__name__) は "folder_todo" ロガーに集約される
"""

import json
import logging
import sys
from collections import defaultdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


class LogLevel(Enum):
    """ログレベル定義"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ActionMetrics:
    """操作（add_todo, delete_folder など）ごとの成否と所要時間"""

    def __init__(self):
        self.succeeded = defaultdict(int)
        self.failed = defaultdict(int)
        self.failures_by_kind = defaultdict(int)
        self.durations = defaultdict(list)
        self.started_at = datetime.now()

    def record_success(self, action: str, duration: float):
        self.succeeded[action] += 1
        self.durations[action].append(duration)

    def record_failure(self, action: str, error_kind: str, duration: float = 0.0):
        self.failed[action] += 1
        self.failures_by_kind[error_kind] += 1
        self.durations[action].append(duration)

    def summary(self) -> Dict[str, Any]:
        """操作別の集計"""
        total_succeeded = sum(self.succeeded.values())
        total = total_succeeded + sum(self.failed.values())

        actions = {}
        for action in sorted(set(self.succeeded) | set(self.failed)):
            durations = self.durations[action]
            actions[action] = {
                'succeeded': self.succeeded[action],
                'failed': self.failed[action],
                'avg_seconds': sum(durations) / len(durations) if durations else 0.0,
            }

        return {
            'uptime_seconds': (datetime.now() - self.started_at).total_seconds(),
            'total_actions': total,
            'success_rate_percent': (total_succeeded / total * 100) if total else 100.0,
            'actions': actions,
            'failures_by_kind': dict(self.failures_by_kind),
        }


class EnhancedLogger:
    """強化ログシステム"""

    def __init__(self,
                 name: str = "folder_todo",
                 log_level: LogLevel = LogLevel.INFO,
                 log_file: Optional[Path] = None,
                 json_output: bool = False,
                 metrics_enabled: bool = True):

        self.name = name
        self.log_level = log_level
        self.log_file = log_file
        self.json_output = json_output

        self.metrics = ActionMetrics() if metrics_enabled else None

        self._setup_structured_logging()
        self._setup_standard_logging()

    def _setup_structured_logging(self):
        """構造化ログ（1行1JSON、stderr）"""
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.JSONRenderer(ensure_ascii=False, default=str),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(
                getattr(logging, self.log_level.value)
            ),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
            cache_logger_on_first_use=False,
        )

        self.structured_logger = structlog.get_logger(self.name).bind(app=self.name)

    def _setup_standard_logging(self):
        """標準ログ（再設定時は既存ハンドラーを置き換える）"""
        self.logger = logging.getLogger(self.name)
        self.logger.setLevel(getattr(logging, self.log_level.value))
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

        # JSON出力時のコンソールは structlog が担当
        if not self.json_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def info(self, message: str, **fields):
        self._log(LogLevel.INFO, message, fields)

    def warning(self, message: str, **fields):
        self._log(LogLevel.WARNING, message, fields)

    def error(self, message: str, error: Optional[BaseException] = None, **fields):
        if error is not None:
            fields.setdefault('error_type', error.__class__.__name__)
            fields.setdefault('error_message', str(error))
        self._log(LogLevel.ERROR, message, fields)

    def debug(self, message: str, **fields):
        self._log(LogLevel.DEBUG, message, fields)

    def _log(self, level: LogLevel, message: str, fields: Dict[str, Any]):
        method = level.value.lower()
        if self.json_output:
            getattr(self.structured_logger, method)(message, **fields)

        if fields:
            message = f"{message} | {json.dumps(fields, default=str, ensure_ascii=False)}"
        getattr(self.logger, method)(message)

    def log_operation_start(self, operation: str, **context) -> dict:
        """操作開始。戻り値を log_operation_end に渡す"""
        self.debug(f"Operation started: {operation}", operation=operation, **context)
        return {'operation': operation, 'started_at': datetime.now(), 'context': context}

    def log_operation_end(self, operation_context: dict, success: bool = True,
                          error: Optional[BaseException] = None,
                          error_kind: Optional[str] = None, **extra):
        """操作終了。メトリクスにも記録"""
        operation = operation_context.get('operation', 'unknown')
        started_at = operation_context.get('started_at')
        duration = (datetime.now() - started_at).total_seconds() if started_at else 0.0
        fields = {**operation_context.get('context', {}), **extra,
                  'operation': operation, 'duration_seconds': round(duration, 4)}

        if success:
            if self.metrics:
                self.metrics.record_success(operation, duration)
            self.info(f"Operation completed: {operation}", **fields)
            return

        kind = error_kind or (error.__class__.__name__ if error else 'unknown')
        if self.metrics:
            self.metrics.record_failure(operation, kind, duration)
        # 入力起因の失敗は警告止まり
        if kind in ('validation', 'not_found'):
            self.warning(f"Operation rejected: {operation}", error_kind=kind,
                         error_message=str(error) if error else None, **fields)
        else:
            self.error(f"Operation failed: {operation}", error=error, error_kind=kind, **fields)

    def get_health_status(self) -> dict:
        """操作メトリクスに基づく健全性"""
        if not self.metrics:
            return {"overall_status": "metrics_disabled"}

        summary = self.metrics.summary()
        # 入力エラーは健全性に含めない
        transport_failures = sum(
            count for kind, count in summary['failures_by_kind'].items()
            if kind not in ('validation', 'not_found')
        )
        if transport_failures == 0:
            status = "healthy"
        elif summary['success_rate_percent'] >= 90.0:
            status = "warning"
        else:
            status = "degraded"

        return {
            "overall_status": status,
            "timestamp": datetime.now().isoformat(),
            **summary
        }


_global_logger: Optional[EnhancedLogger] = None


def get_logger() -> EnhancedLogger:
    """プロセス共通のロガー（未設定なら既定値で作成）"""
    global _global_logger

    if _global_logger is None:
        _global_logger = EnhancedLogger()

    return _global_logger


def setup_logging(config: Optional[Dict[str, Any]] = None) -> EnhancedLogger:
    """logging 設定セクションからロガーを作り直す"""
    config = config or {}

    log_file_path = config.get('file_path')

    global _global_logger
    _global_logger = EnhancedLogger(
        name=config.get('name', 'folder_todo'),
        log_level=LogLevel(str(config.get('level', 'INFO')).upper()),
        log_file=Path(log_file_path) if log_file_path else None,
        json_output=config.get('json_output', False),
        metrics_enabled=config.get('metrics_enabled', True)
    )

    return _global_logger
