"""
コマンドラインインターフェースのテスト
"""

import json

import pytest

from folder_todo.cli import build_parser, execute, format_snapshot, main
from folder_todo.layers.state_layer import AppController
from folder_todo.utils import enhanced_logger


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv("FOLDER_TODO_BACKEND", raising=False)
    yield
    # main() が差し替えたプロセスロガーを破棄
    enhanced_logger._global_logger = None


class TestExecute:
    """サブコマンドの実行"""

    @pytest.fixture
    def parser(self):
        return build_parser()

    @pytest.mark.asyncio
    async def test_folder_commands(self, parser, memory_backend, clock):
        controller = AppController(memory_backend, clock=clock)
        await controller.start()

        output = await execute(controller, parser.parse_args(["folder", "create", "仕事"]))
        folder_id = next(iter(memory_backend.folders))
        assert output == f"Created folder {folder_id} (仕事)"

        output = await execute(controller, parser.parse_args(["folder", "list"]))
        assert f"{folder_id}  仕事  (0)" in output

        output = await execute(controller, parser.parse_args(["folder", "rename", folder_id, "家"]))
        assert output.endswith("-> 家")

        output = await execute(controller, parser.parse_args(["folder", "delete", folder_id]))
        assert output == f"Deleted folder {folder_id} and 0 todos"
        await controller.close()

    @pytest.mark.asyncio
    async def test_todo_commands(self, parser, memory_backend, clock):
        controller = AppController(memory_backend, clock=clock)
        await controller.start()

        await execute(controller, parser.parse_args(["todo", "add", "牛乳", "--new-folder", "買い物"]))
        todo_id = next(iter(memory_backend.todos))
        folder_id = next(iter(memory_backend.folders))

        output = await execute(controller, parser.parse_args(["todo", "toggle", todo_id]))
        assert output == f"Todo {todo_id} is now completed"

        output = await execute(controller, parser.parse_args(["todo", "list", "--folder", folder_id]))
        assert "📁 買い物 (all)" in output
        assert f"[x] 牛乳  <買い物>  {todo_id}" in output

        output = await execute(controller, parser.parse_args(["todo", "list", "--filter", "active"]))
        assert "(タスクなし)" in output
        await controller.close()

    def test_add_target_is_exclusive(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["todo", "add", "x", "--folder", "a", "--new-folder", "b"])

    @pytest.mark.asyncio
    async def test_format_empty_today(self, memory_backend):
        controller = AppController(memory_backend)
        await controller.start()
        text = format_snapshot(controller.snapshot())
        await controller.close()

        assert text.splitlines()[0] == "📅 今日 (all)"
        assert text.splitlines()[-1] == "合計 0 / 未完了 0 / 完了 0"


class TestMain:
    """プロセスのエントリポイント"""

    def test_init_config(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path / "config"), "init-config"]) == 0
        assert (tmp_path / "config" / "main.yaml").exists()

    def test_list_today(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path), "todo", "list"]) == 0
        assert "📅 今日" in capsys.readouterr().out

    def test_validation_error_exit_code(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path), "todo", "add", "フォルダなし"]) == 1
        assert "Error: [validation]" in capsys.readouterr().err

    def test_not_found_exit_code(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path), "todo", "toggle", "missing"]) == 1
        assert "Error: [not_found]" in capsys.readouterr().err

    def test_status_reports_backend(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path), "status"]) == 0

        health = json.loads(capsys.readouterr().out)
        assert health["backend"] == "memory"
        assert health["overall_status"] == "healthy"
        assert health["pending"] == []

    def test_memory_backend_warns_about_persistence(self, tmp_path, capsys):
        assert main(["--config-dir", str(tmp_path), "folder", "create", "仕事"]) == 0

        captured = capsys.readouterr()
        assert captured.out.startswith("Created folder")
        assert "in-memory backend" in captured.err

    def test_bad_backend_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FOLDER_TODO_BACKEND", "sqlite")
        with pytest.raises(SystemExit):
            main(["--config-dir", str(tmp_path), "todo", "list"])
