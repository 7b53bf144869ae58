"""コア - データモデル・例外・エラーハンドリング"""
