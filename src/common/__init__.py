"""
どこで: `common` パッケージ。
何を: topology/memory/adaptation の各層で使う軽量基盤（設定・例外・型・BaseRegistry など）。
なぜ: 各層から再利用する共通基盤を分離し、依存の向きを単純化するため。
"""

from .base_registry import BaseRegistry
from .errors import (
    AdaptationError,
    AdaptationErrorType,
    EmptyInputError,
    InputValidationError,
    InvalidTopologyError,
    ShapeMemoryError,
)
from .types import CanvasSize

__all__ = [
    "AdaptationError",
    "AdaptationErrorType",
    "BaseRegistry",
    "CanvasSize",
    "EmptyInputError",
    "InputValidationError",
    "InvalidTopologyError",
    "ShapeMemoryError",
]
