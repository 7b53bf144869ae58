"""
folder-todo - フォルダ付きタスク管理

ストレージ層（リアルタイムストア / REST + ローカル状態）と
状態層（フォルダ・タスクストア、ビュー選択、コントローラ）で構成
"""

__version__ = "1.0.0"
