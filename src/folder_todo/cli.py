import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Iterable, Optional

from .config.settings import ConfigManager, create_backend
from .core.exceptions import TodoAppError
from .core.models import StatusFilter, ViewSnapshot
from .layers.state_layer import AppController
from .utils.enhanced_logger import setup_logging

logger = logging.getLogger(__name__)


def format_snapshot(snapshot: ViewSnapshot) -> str:
    """ビューのスナップショットを一覧表示用の文字列に整形"""
    folder_names = {folder.id: folder.name for folder in snapshot.folders}

    if snapshot.current_folder:
        header = f"📁 {snapshot.current_folder.name}"
    else:
        header = "📅 今日"
    header += f" ({snapshot.view_state.status_filter.value})"

    lines = [header]
    if not snapshot.todos:
        lines.append("  (タスクなし)")
    for todo in snapshot.todos:
        mark = "x" if todo.completed else " "
        folder = folder_names.get(todo.folder_id, "-") if todo.folder_id else "-"
        lines.append(f"  [{mark}] {todo.text}  <{folder}>  {todo.id}")

    counts = snapshot.counts
    lines.append(f"合計 {counts.total} / 未完了 {counts.active} / 完了 {counts.completed}")
    return "\n".join(lines)


def format_folders(snapshot: ViewSnapshot, todo_counts: dict) -> str:
    if not snapshot.folders:
        return "(フォルダなし)"
    return "\n".join(
        f"{folder.id}  {folder.name}  ({todo_counts.get(folder.id, 0)})"
        for folder in snapshot.folders
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="folder-todo", description="Folder-organized todo list")
    parser.add_argument("--config-dir", default="config", help="設定ディレクトリ（main.yaml / storage.yaml）")
    parser.add_argument("--backend", choices=["memory", "realtime", "rest"], help="設定のバックエンドを上書き")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-config", help="設定ファイルのテンプレートを作成")
    commands.add_parser("status", help="バックエンドと操作メトリクスの状態")

    folder = commands.add_parser("folder", help="フォルダ操作").add_subparsers(dest="action", required=True)
    folder.add_parser("list", help="フォルダ一覧")
    create = folder.add_parser("create", help="フォルダ作成")
    create.add_argument("name")
    rename = folder.add_parser("rename", help="フォルダ名変更")
    rename.add_argument("folder_id")
    rename.add_argument("name")
    delete = folder.add_parser("delete", help="フォルダと所属タスクの削除")
    delete.add_argument("folder_id")

    todo = commands.add_parser("todo", help="タスク操作").add_subparsers(dest="action", required=True)
    listing = todo.add_parser("list", help="タスク一覧")
    listing.add_argument("--folder", help="フォルダIDで絞り込み（未指定時は今日ビュー）")
    listing.add_argument("--filter", default="all", choices=[item.value for item in StatusFilter],
                         help="完了状態フィルタ")
    add = todo.add_parser("add", help="タスク追加")
    add.add_argument("text")
    target = add.add_mutually_exclusive_group()
    target.add_argument("--folder", help="追加先のフォルダID")
    target.add_argument("--new-folder", help="新しいフォルダを作成して追加")
    edit = todo.add_parser("edit", help="タスク本文の変更")
    edit.add_argument("todo_id")
    edit.add_argument("text")
    toggle = todo.add_parser("toggle", help="完了状態の切り替え")
    toggle.add_argument("todo_id")
    remove = todo.add_parser("delete", help="タスク削除")
    remove.add_argument("todo_id")

    return parser


async def execute(controller: AppController, args: argparse.Namespace) -> str:
    """サブコマンドをコントローラ操作に対応付けて実行し、表示用の文字列を返す"""
    if args.command == "status":
        return json.dumps(controller.health(), ensure_ascii=False, indent=2, default=str)

    if args.command == "folder":
        if args.action == "create":
            folder = await controller.create_folder(args.name)
            return f"Created folder {folder.id} ({folder.name})"
        if args.action == "rename":
            folder = await controller.rename_folder(args.folder_id, args.name)
            return f"Renamed folder {folder.id} -> {folder.name}"
        if args.action == "delete":
            result = await controller.delete_folder(args.folder_id)
            return f"Deleted folder {args.folder_id} and {len(result.deleted_ids)} todos"

        counts = {}
        for item in controller.state.todos:
            counts[item.folder_id] = counts.get(item.folder_id, 0) + 1
        return format_folders(controller.snapshot(), counts)

    if args.action == "add":
        item = await controller.add_todo(args.text, folder_id=args.folder, new_folder_name=args.new_folder)
        return f"Added todo {item.id}"
    if args.action == "edit":
        item = await controller.edit_todo(args.todo_id, args.text)
        return f"Updated todo {item.id}"
    if args.action == "toggle":
        item = await controller.toggle_todo(args.todo_id)
        return f"Todo {item.id} is now {'completed' if item.completed else 'active'}"
    if args.action == "delete":
        await controller.delete_todo(args.todo_id)
        return f"Deleted todo {args.todo_id}"

    if args.folder:
        await controller.select_folder(args.folder)
    await controller.set_filter(args.filter)
    return format_snapshot(controller.snapshot())


async def run(args: argparse.Namespace, manager: ConfigManager) -> int:
    config = manager.load_config()
    if args.backend:
        config.backend = args.backend

    logging_config = asdict(config.logging)
    if config.debug:
        logging_config['level'] = 'DEBUG'
    setup_logging(logging_config)

    if config.backend == "memory":
        logger.warning("Using the in-memory backend: changes are discarded when the command exits "
                       "(set backend to 'rest' or 'realtime' in main.yaml to keep data)")

    controller = AppController(create_backend(config, manager.load_secrets()))
    try:
        await controller.start()
        print(await execute(controller, args))
        return 0
    except TodoAppError as e:
        report = controller.last_error or controller.error_handler.handle_error(e, args.command)
        print(f"Error: {report.summary()}", file=sys.stderr)
        return 1
    finally:
        await controller.close()


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    manager = ConfigManager(args.config_dir)

    if args.command == "init-config":
        manager.save_config_template()
        print(f"Config templates written to {manager.config_dir}")
        return 0

    try:
        return asyncio.run(run(args, manager))
    except ValueError as e:
        # 設定の不備（未知のバックエンド、URL未設定など）
        raise SystemExit(f"設定エラー: {e}")


if __name__ == "__main__":
    sys.exit(main())
