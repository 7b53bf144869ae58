"""
エラーハンドリング - 例外を分類し、呼び出し元アクションへ一度だけ報告する
自動リトライは行わない（再実行は常にユーザー操作）
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import aiohttp

from .exceptions import (
    TodoAppError, ValidationError, NotFoundError, TransportError, CascadeDeleteError
)

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """エラー種別"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


@dataclass
class ErrorStrategy:
    """種別ごとの対応方針"""
    recoverable: bool
    user_action: str
    alert_threshold: int = 1


@dataclass
class ErrorReport:
    """UIアクションへ返す報告"""
    kind: ErrorKind
    message: str
    recoverable: bool
    user_action: str
    entity_id: Optional[str] = None

    def summary(self) -> str:
        return f"[{self.kind.value}] {self.message}"


class ErrorHandler:
    """エラー分類・報告"""

    STRATEGIES: Dict[ErrorKind, ErrorStrategy] = {
        ErrorKind.VALIDATION: ErrorStrategy(
            recoverable=True,
            user_action='correct_input',
            alert_threshold=50
        ),
        ErrorKind.NOT_FOUND: ErrorStrategy(
            recoverable=True,
            user_action='refresh_and_retry',
            alert_threshold=10
        ),
        ErrorKind.TRANSPORT: ErrorStrategy(
            recoverable=False,
            user_action='retry_later',
            alert_threshold=3
        ),
        ErrorKind.UNKNOWN: ErrorStrategy(
            recoverable=False,
            user_action='report_bug',
            alert_threshold=1
        ),
    }

    def __init__(self):
        self.error_counts: Dict[ErrorKind, int] = {}

    def classify_error(self, error: BaseException) -> ErrorKind:
        """例外を分類"""
        if isinstance(error, ValidationError):
            return ErrorKind.VALIDATION
        if isinstance(error, NotFoundError):
            return ErrorKind.NOT_FOUND
        if isinstance(error, TransportError):
            return ErrorKind.TRANSPORT

        # ライブラリ由来の通信エラー
        if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)):
            return ErrorKind.TRANSPORT

        error_message = str(error).lower()
        if any(keyword in error_message for keyword in ['connection', 'timeout', 'network']):
            return ErrorKind.TRANSPORT

        return ErrorKind.UNKNOWN

    def handle_error(self, error: BaseException, operation: str = "unknown") -> ErrorReport:
        """分類して報告を作成"""
        kind = self.classify_error(error)
        strategy = self.STRATEGIES[kind]

        self.error_counts[kind] = self.error_counts.get(kind, 0) + 1

        message = error.message if isinstance(error, TodoAppError) else str(error) or error.__class__.__name__
        entity_id = error.entity_id if isinstance(error, TodoAppError) else None

        if kind in (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND):
            logger.info(f"{operation} rejected ({kind.value}): {message}")
        else:
            logger.error(f"{operation} failed ({kind.value}): {message}")

        if isinstance(error, CascadeDeleteError):
            logger.warning(f"Cascade delete left {len(error.failed_ids)} todos behind: {error.failed_ids}")

        if self.error_counts[kind] >= strategy.alert_threshold:
            logger.warning(f"Error count for {kind.value} reached {self.error_counts[kind]}")

        return ErrorReport(
            kind=kind,
            message=message,
            recoverable=strategy.recoverable,
            user_action=strategy.user_action,
            entity_id=entity_id
        )
