"""
レイヤー構成 - storage_layer（永続化）/ state_layer（ストア・ビュー・コントローラ）
"""
