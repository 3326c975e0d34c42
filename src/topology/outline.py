"""
どこで: `topology.outline`
何を: 閉多角形の点列を `(N, 2) float64` に正規化して保持する不変型 `Outline` と、その純関数的な変換。
なぜ: 抽出（入力点列の検証）と適応（スケール/平行移動/境界計測）で同じ点列表現を共有し、
      入力形式の揺れ（list/ndarray/{"x","y"}）を入口 1 箇所で吸収するため。

データモデル（不変条件）:
- `coords: float64 ndarray (N, 2)`、C 連続、全要素が有限値。
- 変換（`translate/scale`）は常に新しい `Outline` を返す（元は不変）。
- 空の `Outline` は `coords.shape == (0, 2)`（`from_points` は空を拒否するが、内部生成は許容）。

使用例:
    o = Outline.from_points([(0, 0), (100, 0), (100, 100), (0, 100)])
    o.bounds()          # (0.0, 0.0, 100.0, 100.0)
    o.scale(2.0).translate(10, 10).center()  # (110.0, 110.0)
"""

from __future__ import annotations

from typing import Mapping

import numpy as np

from common.errors import EmptyInputError, InputValidationError
from common.types import Point, PointsLike


def _normalize_points(points: PointsLike) -> np.ndarray:
    """入力点列を `(N, 2) float64` に整形する内部ヘルパ。"""
    if isinstance(points, np.ndarray):
        arr = np.asarray(points, dtype=np.float64)
    else:
        seq = list(points)
        if seq and isinstance(seq[0], Mapping):
            try:
                arr = np.array([[p["x"], p["y"]] for p in seq], dtype=np.float64)
            except (KeyError, TypeError, ValueError) as e:
                raise InputValidationError("点は {'x', 'y'} を持つ必要があります") from e
        else:
            try:
                arr = np.asarray(seq, dtype=np.float64)
            except (TypeError, ValueError) as e:
                raise InputValidationError("点列を数値配列に変換できません") from e
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise InputValidationError(f"点列の形状が不正です: {arr.shape}（(N, 2) を期待）")
    return np.ascontiguousarray(arr, dtype=np.float64)


class Outline:
    """閉多角形の点列（不変）。"""

    __slots__ = ("coords",)

    coords: np.ndarray

    def __init__(self, coords: np.ndarray) -> None:
        arr = _normalize_points(coords)
        if arr.size and not np.all(np.isfinite(arr)):
            raise InputValidationError("座標に非有限値（NaN/Inf）が含まれています")
        arr.setflags(write=False)
        self.coords = arr

    # ── ファクトリ ───────────────────
    @classmethod
    def from_points(cls, points: PointsLike) -> "Outline":
        """外部入力から `Outline` を生成する（空は拒否）。

        Parameters
        ----------
        points : PointsLike
            `(N, 2)` 配列、`[(x, y), ...]`、または `[{"x": .., "y": ..}, ...]`。

        Returns
        -------
        Outline

        Raises
        ------
        EmptyInputError
            点が 1 つもない場合。
        InputValidationError
            形状不正、または非有限値を含む場合。
        """
        arr = _normalize_points(points)
        if arr.shape[0] == 0:
            raise EmptyInputError("点列が空です")
        return cls(arr)

    # ── 計測 ───────────────────
    def __len__(self) -> int:
        return int(self.coords.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.coords.shape[0] == 0

    def bounds(self) -> tuple[float, float, float, float]:
        """軸平行バウンディングボックス `(min_x, min_y, max_x, max_y)`。空は全 0。"""
        if self.is_empty:
            return (0.0, 0.0, 0.0, 0.0)
        mn = self.coords.min(axis=0)
        mx = self.coords.max(axis=0)
        return (float(mn[0]), float(mn[1]), float(mx[0]), float(mx[1]))

    def size(self) -> tuple[float, float]:
        x0, y0, x1, y1 = self.bounds()
        return (x1 - x0, y1 - y0)

    def diameter(self) -> float:
        """バウンディングボックスの長辺。"""
        w, h = self.size()
        return max(w, h)

    def center(self) -> Point:
        """バウンディングボックス中心（重心ではない）。"""
        x0, y0, x1, y1 = self.bounds()
        return ((x0 + x1) / 2.0, (y0 + y1) / 2.0)

    # ── 変換（すべて純粋） ────────
    def translate(self, dx: float = 0.0, dy: float = 0.0) -> "Outline":
        if self.is_empty:
            return Outline(self.coords.copy())
        return Outline(self.coords + np.array([dx, dy], dtype=np.float64))

    def scale(self, sx: float, sy: float | None = None, center: Point = (0.0, 0.0)) -> "Outline":
        """pivot `center` 基準の拡大縮小。`sy` 省略時は等方。"""
        if sy is None:
            sy = sx
        if self.is_empty:
            return Outline(self.coords.copy())
        pivot = np.array(center, dtype=np.float64)
        factors = np.array([sx, sy], dtype=np.float64)
        return Outline((self.coords - pivot) * factors + pivot)

    def as_array(self, *, copy: bool = False) -> np.ndarray:
        """内部配列を返す（`copy=False` は読み取り専用ビュー）。"""
        if copy:
            return self.coords.copy()
        return self.coords

    def to_points(self) -> list[Point]:
        return [(float(x), float(y)) for x, y in self.coords]

    def __repr__(self) -> str:  # pragma: no cover - 表示用
        return f"Outline(n={len(self)}, bounds={self.bounds()})"


__all__ = ["Outline"]
