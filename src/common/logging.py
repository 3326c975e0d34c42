"""
形状メモリ向けの軽量ロギングユーティリティ。

要点:
- 各モジュールは `logging.getLogger(__name__)` でロガーを取得する（ライブラリ側で設定はしない）。
- アプリ側で設定が無い場合に限り、妥当な最小構成を 1 度だけ適用するヘルパーを提供する。
- `debug_mode` 指定時は段階ごとの詳細ログを INFO へ引き上げるため、`stage_level()` を使う。
"""

from __future__ import annotations

import logging

from .env import env_name

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_default_logging(level: int | str | None = None) -> None:
    """最小限のロギング設定を 1 度だけ適用する。

    - ルートロガーにハンドラが既にあれば何もしない（no-op）
    - `level` 省略時は環境変数 `SHM_LOG_LEVEL`（既定 INFO）を参照する
    - ホストアプリ/テストから呼び出す想定
    """
    if level is None:
        import os

        level = os.getenv(env_name("LOG_LEVEL"), "INFO")
    lvl = _resolve_level(level)

    root = logging.getLogger()
    if root.handlers:
        # Assume the app has configured logging
        return
    logging.basicConfig(level=lvl, format=_FORMAT)


def stage_level(debug_mode: bool) -> int:
    """段階ログの出力レベル（debug_mode なら INFO、通常は DEBUG）。"""
    return logging.INFO if debug_mode else logging.DEBUG


__all__ = ["setup_default_logging", "stage_level"]
