"""
どこで: `common.errors`
何を: 形状メモリ全体で共有する例外階層と、適応パイプラインの型付きエラー分類。
なぜ: 抽出/保存/適応の各段階が同じ分類で失敗を報告し、呼び出し側が `type` で分岐できるようにするため。

構成:
- `ShapeMemoryError` … ルート。
- `InputValidationError` / `EmptyInputError` … 抽出/保存の入口での入力検証。
- `InvalidTopologyError` … 構造不正なトポロジ（クリーナ/抽出の自己検証/インポート）。
- `AdaptationError` … 適応パイプライン段階の失敗。`AdaptationErrorType` を保持。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class ShapeMemoryError(Exception):
    """形状メモリ系例外の基底。"""


class InputValidationError(ShapeMemoryError, ValueError):
    """入力（点列/キャンバス寸法など）の検証失敗。"""


class EmptyInputError(InputValidationError):
    """空の点列が渡された。"""


class InvalidTopologyError(ShapeMemoryError, ValueError):
    """トポロジが構造的に不正（空ノード、範囲外の相対座標、解決できない関係など）。"""


class AdaptationErrorType(str, Enum):
    MEMORY_NOT_FOUND = "MEMORY_NOT_FOUND"
    INVALID_TOPOLOGY = "INVALID_TOPOLOGY"
    COORDINATE_CLEANING_FAILED = "COORDINATE_CLEANING_FAILED"
    ADAPTATION_FAILED = "ADAPTATION_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"


class AdaptationError(ShapeMemoryError):
    """適応パイプラインの段階失敗を表す例外。

    Attributes
    ----------
    type : AdaptationErrorType
        失敗した段階の分類。
    shape_id : str
        対象のメモリ ID。
    context : dict
        失敗時の適応コンテキスト（キャンバス寸法/オプション等のスナップショット）。
    message : str
        人間向けの説明。

    Notes
    -----
    `__reduce__` を実装し、プロセス境界（pickle）越しでも属性を保持する。
    """

    def __init__(
        self,
        type: AdaptationErrorType,
        shape_id: str,
        message: str,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(f"[{AdaptationErrorType(type).value}] {shape_id}: {message}")
        self.type = AdaptationErrorType(type)
        self.shape_id = shape_id
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def __reduce__(self):  # pragma: no cover - pickle 経路
        return (self.__class__, (self.type, self.shape_id, self.message, self.context))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "shape_id": self.shape_id,
            "message": self.message,
            "context": dict(self.context),
        }


__all__ = [
    "ShapeMemoryError",
    "InputValidationError",
    "EmptyInputError",
    "InvalidTopologyError",
    "AdaptationErrorType",
    "AdaptationError",
]
