"""
どこで: `adaptation` のレジストリ層（ルールクラス専用）。
何を: `@adaptation_rule` デコレータによる既定ルールの登録と、取得/一覧/インスタンス化を提供（キーは正規化）。
なぜ: ルールエンジンが「既定ルール一式」を名前で解決できるようにし、追加ルールも同じ経路で差し込めるようにするため。

公開 API 概要:
- `adaptation_rule`（デコレータ）: ルールクラスを登録
- `get_rule_class(name)` / `list_rules()` / `is_rule_registered(name)`
- `create_default_rules()`: 登録済みルールを 1 つずつ生成して返す
"""

from __future__ import annotations

import inspect
from typing import Any

from common.base_registry import BaseRegistry

# 共通レジストリ
_rule_registry = BaseRegistry()


def adaptation_rule(arg: Any | None = None, /, name: str | None = None):
    """ルールクラスを登録するデコレータ。

    使用例:
    - `@adaptation_rule` / `@adaptation_rule()` → クラス名から自動推論。
    - `@adaptation_rule("custom")` → 明示名で登録。

    例外:
    - TypeError: クラス以外を登録しようとした場合。
    """

    def _register_checked(obj: Any, resolved_name: str | None):
        if not inspect.isclass(obj):
            raise TypeError(f"@adaptation_rule はクラスのみ登録可能です: got {obj!r}")
        return _rule_registry.register(resolved_name)(obj)

    if inspect.isclass(arg) and name is None:
        return _register_checked(arg, None)

    resolved = arg if isinstance(arg, str) else name

    def _decorator(obj: Any):
        return _register_checked(obj, resolved)

    return _decorator


def get_rule_class(name: str) -> type:
    """登録されたルールクラスを取得（未登録は `KeyError`）。"""
    return _rule_registry.get(name)


def list_rules() -> list[str]:
    """登録済みルール名（正規化キー）を登録順で返す。"""
    return _rule_registry.list_all()


def is_rule_registered(name: str) -> bool:
    return _rule_registry.is_registered(name)


def create_default_rules() -> list[Any]:
    """登録済みルールを引数なしで生成する。"""
    return [cls() for _, cls in _rule_registry]


__all__ = [
    "adaptation_rule",
    "get_rule_class",
    "list_rules",
    "is_rule_registered",
    "create_default_rules",
]
