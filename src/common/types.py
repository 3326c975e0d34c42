"""
どこで: `common` の型定義。
何を: Point/CanvasSize などの軽量型と、API 入口での正規化ヘルパ。
なぜ: 依存の少ない場所に配置して循環と分散定義を避けるため。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

import numpy as np

from .errors import InputValidationError

Point = tuple[float, float]
PointsLike = Union[np.ndarray, Sequence[Sequence[float]], Sequence[Mapping[str, float]]]


@dataclass(frozen=True)
class CanvasSize:
    """キャンバス寸法（px）。値オブジェクトとして不変。"""

    width: float
    height: float

    @property
    def min_edge(self) -> float:
        return min(self.width, self.height)

    @property
    def center(self) -> Point:
        return (self.width / 2.0, self.height / 2.0)

    def is_positive(self) -> bool:
        return self.width > 0 and self.height > 0

    def to_dict(self) -> dict[str, float]:
        return {"width": float(self.width), "height": float(self.height)}

    @classmethod
    def coerce(cls, value: "CanvasLike", *, require_positive: bool = False) -> "CanvasSize":
        """`CanvasSize`/`(w, h)`/`{"width", "height"}` を `CanvasSize` に正規化する。

        Raises
        ------
        InputValidationError
            形式不正・非有限値、または `require_positive` 時に非正の寸法。
        """
        if isinstance(value, CanvasSize):
            size = value
        elif isinstance(value, Mapping):
            try:
                size = cls(float(value["width"]), float(value["height"]))
            except (KeyError, TypeError, ValueError) as e:
                raise InputValidationError(f"invalid canvas size mapping: {value!r}") from e
        else:
            try:
                w, h = value  # type: ignore[misc]
                size = cls(float(w), float(h))
            except (TypeError, ValueError) as e:
                raise InputValidationError(f"invalid canvas size: {value!r}") from e
        if not (math.isfinite(size.width) and math.isfinite(size.height)):
            raise InputValidationError(f"canvas size must be finite: {size}")
        if require_positive and not size.is_positive():
            raise InputValidationError(
                f"canvas size must be positive: {size.width}x{size.height}"
            )
        return size


CanvasLike = Union[CanvasSize, tuple[float, float], Mapping[str, Any]]


__all__ = ["Point", "PointsLike", "CanvasSize", "CanvasLike"]
