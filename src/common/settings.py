"""
どこで: `common.settings`
何を: 形状メモリの環境変数（`SHM_*`）を型付きで一元管理し、起動時に読み込む。
なぜ: `os.getenv` の散在を解消し、既定値/型の一貫性とテスト容易性を高めるため。
"""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_bool, env_float, env_int, env_name


@dataclass
class _Settings:
    # MemoryStorage
    MAX_MEMORIES: int = 1000
    INTEGRITY_CHECK: bool = True

    # AdaptationEngine
    HISTORY_MAXSIZE: int = 1000
    TARGET_DIAMETER_RATIO: float = 0.30
    BOUNDARY_MARGIN: float = 10.0
    BATCH_WORKERS: int = 4

    # MemoryManager
    MEMORY_EXPIRATION_S: float = 24 * 60 * 60.0
    CLEANUP_INTERVAL_S: float = 60 * 60.0
    DEBUG: bool = False


_settings = _Settings()


def reload_from_env() -> None:
    """環境変数から設定を再読込。

    - bool は `env_bool`、int は `env_int`、float は `env_float` を使用。
    - 容量/ワーカー数は下限 1、比率は (0, 1] に丸める。
    """

    # MemoryStorage（下限丸め）
    _settings.MAX_MEMORIES = env_int(env_name("MAX_MEMORIES"), 1000, min_value=1) or 1000
    _settings.INTEGRITY_CHECK = env_bool(env_name("INTEGRITY_CHECK"), True)

    # AdaptationEngine
    _settings.HISTORY_MAXSIZE = env_int(env_name("HISTORY_MAXSIZE"), 1000, min_value=1) or 1000
    _settings.TARGET_DIAMETER_RATIO = env_float(
        env_name("TARGET_DIAMETER_RATIO"), 0.30, min_value=1e-6, max_value=1.0
    )
    _settings.BOUNDARY_MARGIN = env_float(env_name("BOUNDARY_MARGIN"), 10.0, min_value=0.0)
    _settings.BATCH_WORKERS = env_int(env_name("BATCH_WORKERS"), 4, min_value=1) or 4

    # MemoryManager
    _settings.MEMORY_EXPIRATION_S = env_float(
        env_name("MEMORY_EXPIRATION_S"), 24 * 60 * 60.0, min_value=0.0
    )
    _settings.CLEANUP_INTERVAL_S = env_float(
        env_name("CLEANUP_INTERVAL_S"), 60 * 60.0, min_value=0.001
    )
    _settings.DEBUG = env_bool(env_name("DEBUG"), False)


def get() -> _Settings:
    """現在の設定スナップショットを返す。"""
    return _settings


# 初期ロード
reload_from_env()


__all__ = ["get", "reload_from_env", "_Settings"]
