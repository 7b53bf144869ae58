"""
エラーハンドリングのテスト
"""

import asyncio

import aiohttp
import pytest

from folder_todo.core.error_handler import ErrorHandler, ErrorKind
from folder_todo.core.exceptions import (
    CascadeDeleteError, NotFoundError, OperationInProgressError, TransportError, ValidationError
)


class TestErrorClassification:
    """例外の分類"""

    @pytest.fixture
    def handler(self):
        return ErrorHandler()

    @pytest.mark.parametrize("error, kind", [
        (ValidationError("empty"), ErrorKind.VALIDATION),
        (OperationInProgressError("busy"), ErrorKind.VALIDATION),
        (NotFoundError("gone"), ErrorKind.NOT_FOUND),
        (TransportError("down", status=500), ErrorKind.TRANSPORT),
        (CascadeDeleteError("f1", ["t1"], ["t2"]), ErrorKind.TRANSPORT),
        (aiohttp.ClientConnectionError("refused"), ErrorKind.TRANSPORT),
        (asyncio.TimeoutError(), ErrorKind.TRANSPORT),
        (RuntimeError("network unreachable"), ErrorKind.TRANSPORT),
        (KeyError("x"), ErrorKind.UNKNOWN),
    ])
    def test_classify(self, handler, error, kind):
        assert handler.classify_error(error) == kind

    def test_report_carries_entity(self, handler):
        report = handler.handle_error(NotFoundError("Todo not found: t1", entity_id="t1"), "toggle_todo")

        assert report.kind == ErrorKind.NOT_FOUND
        assert report.entity_id == "t1"
        assert report.recoverable is True
        assert report.summary() == "[not_found] Todo not found: t1"

    def test_transport_is_not_recoverable(self, handler):
        report = handler.handle_error(TransportError("HTTP 503"), "list_todos")
        assert report.recoverable is False
        assert report.user_action == 'retry_later'

    def test_counts_accumulate(self, handler):
        for _ in range(3):
            handler.handle_error(ValidationError("empty"))
        handler.handle_error(TransportError("down"))

        assert handler.error_counts[ErrorKind.VALIDATION] == 3
        assert handler.error_counts[ErrorKind.TRANSPORT] == 1

    def test_cascade_error_message(self):
        error = CascadeDeleteError("f1", failed_ids=["t1"], deleted_ids=["t2", "t3"])
        assert "1 of 3" in error.message
        assert error.entity_id == "f1"
