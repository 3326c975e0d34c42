"""
どこで: `common.base_registry`
何を: 名前キーで対象（クラス/ファクトリ）を登録・取得する共通レジストリ基底。
なぜ: 適応ルールの既定セットをデコレータで宣言的に集約し、キー表記揺れ（CamelCase/snake_case）を吸収するため。
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterator


class BaseRegistry:
    """レジストリの基底クラス。

    - 文字列キーは正規化されます（大文字小文字・キャメル→スネークを吸収）。
      例: "SizeScalingRule" / "size-scaling-rule" / "size_scaling_rule" は同一キー。
    - デコレータは名前省略可。省略時はクラス/関数名から自動推論します。
    - 登録順を保持します（既定ルールの列挙順を安定させるため）。
    """

    def __init__(self) -> None:
        self._registry: dict[str, Any] = {}

    # === 内部ユーティリティ ===
    @staticmethod
    def _camel_to_snake(name: str) -> str:
        s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
        s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
        return s2.lower()

    @classmethod
    def normalize_key(cls, name: str) -> str:
        """レジストリキーの正規化（例: "BoundaryRule" -> "boundary_rule"）。"""
        if not isinstance(name, str):
            raise TypeError("レジストリキーは str である必要があります")
        name = name.strip().replace("-", "_")
        if not name:
            raise ValueError("レジストリキーは空であってはなりません")
        return cls._camel_to_snake(name) if any(c.isupper() for c in name) else name.lower()

    def register(self, name: str | None = None, *, replace: bool = False) -> Callable:
        """クラス/関数をレジストリに登録するデコレータ。

        `replace=False` のとき、同名で別オブジェクトの再登録は `ValueError`。
        """

        def decorator(obj: Any) -> Any:
            key = self.normalize_key(name or obj.__name__)
            current = self._registry.get(key)
            if current is not None and current is not obj and not replace:
                raise ValueError(f"'{key}' は既に登録されています")
            self._registry[key] = obj
            return obj

        return decorator

    def get(self, name: str) -> Any:
        """登録されたクラス/関数を取得（未登録は `KeyError`）。"""
        key = self.normalize_key(name)
        if key not in self._registry:
            raise KeyError(f"'{name}' は登録されていません")
        return self._registry[key]

    def list_all(self) -> list[str]:
        """登録済みキーを登録順で返す。"""
        return list(self._registry.keys())

    def is_registered(self, name: str) -> bool:
        return self.normalize_key(name) in self._registry

    def unregister(self, name: str) -> bool:
        """レジストリから削除し、削除したかどうかを返す。"""
        return self._registry.pop(self.normalize_key(name), None) is not None

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return iter(list(self._registry.items()))

    def __len__(self) -> int:
        return len(self._registry)


__all__ = ["BaseRegistry"]
