"""
どこで: `common.env`
何を: 環境変数の軽量パースヘルパ（int/float/bool）を提供。
なぜ: 各所に散在する `os.getenv` + 例外/境界ガードを簡素化し、設定層から一括で使うため。
"""

from __future__ import annotations

import os
from typing import Optional

ENV_PREFIX = "SHM_"


def env_name(key: str) -> str:
    """キーに共通プレフィックスを付与した環境変数名を返す（例: "MAX_MEMORIES" -> "SHM_MAX_MEMORIES"）。"""
    return key if key.startswith(ENV_PREFIX) else f"{ENV_PREFIX}{key}"


def env_int(
    name: str, default: Optional[int] = None, *, min_value: Optional[int] = None
) -> Optional[int]:
    """整数環境変数を取得（存在しない/不正値は既定値）。

    Parameters
    ----------
    name : str
        環境変数名。
    default : Optional[int]
        既定値（`None` を渡すと `None` を許容）。
    min_value : Optional[int]
        下限（指定時、結果が下回れば下限に丸める）。

    Returns
    -------
    Optional[int]
        取得した整数値。未設定/不正時は `default` を返す。
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw.strip())
    except ValueError:
        return default
    if min_value is not None and val < min_value:
        val = min_value
    return val


def env_float(
    name: str,
    default: float,
    *,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> float:
    """浮動小数の環境変数を取得（未設定/不正/非有限値は既定値、範囲外は丸め）。"""
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        val = float(raw.strip())
    except ValueError:
        return float(default)
    if val != val or val in (float("inf"), float("-inf")):
        return float(default)
    if min_value is not None and val < min_value:
        val = min_value
    if max_value is not None and val > max_value:
        val = max_value
    return val


def env_bool(name: str, default: bool = False) -> bool:
    """真偽環境変数を取得（0/1, true/false を許容）。"""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    try:
        # 数値優先
        return int(raw) != 0
    except ValueError:
        s = raw.strip().lower()
        if s in {"true", "t", "yes", "y", "on"}:
            return True
        if s in {"false", "f", "no", "n", "off"}:
            return False
        return bool(default)


__all__ = ["ENV_PREFIX", "env_name", "env_int", "env_float", "env_bool"]
