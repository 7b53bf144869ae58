"""
例外定義 - 操作を起動したUIアクションへ同期的に伝播する
"""

from typing import List, Optional


class TodoAppError(Exception):
    """アプリケーション例外の基底クラス"""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class ValidationError(TodoAppError):
    """空入力・重複入力（状態は変更されない）"""


class OperationInProgressError(ValidationError):
    """同じ対象への操作が処理中"""


class NotFoundError(TodoAppError):
    """既に存在しないIDへの操作"""


class TransportError(TodoAppError):
    """バックエンド到達不可・非JSON応答"""

    def __init__(self, message: str, status: Optional[int] = None,
                 entity_id: Optional[str] = None):
        super().__init__(message, entity_id)
        self.status = status


class CascadeDeleteError(TransportError):
    """フォルダ削除に伴うタスク削除の一部失敗（ロールバックなし）"""

    def __init__(self, folder_id: str, failed_ids: List[str], deleted_ids: List[str],
                 errors: Optional[List[BaseException]] = None):
        super().__init__(
            f"Folder {folder_id} deleted but {len(failed_ids)} of "
            f"{len(failed_ids) + len(deleted_ids)} todos could not be deleted",
            entity_id=folder_id,
        )
        self.failed_ids = failed_ids
        self.deleted_ids = deleted_ids
        self.errors = errors or []
