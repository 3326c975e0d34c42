"""
どこで: `topology.projection`
何を: 相対座標をそのまま目標矩形へ射影する簡易変換 `topology_to_points`。
なぜ: ルールエンジンを通さないプレビュー/比較用に、縦横比を指定寸法へ素直に写像する経路を提供するため。
"""

from __future__ import annotations

import numpy as np

from common.types import CanvasLike, CanvasSize

from .models import CleanTopology, ShapeTopology


def topology_to_points(
    topology: ShapeTopology | CleanTopology,
    target_canvas: CanvasLike,
    target_size: CanvasLike,
) -> np.ndarray:
    """キャンバス中央に置いた `target_size` の矩形へ相対座標を射影する。

    Parameters
    ----------
    topology : ShapeTopology | CleanTopology
        射影元。
    target_canvas : CanvasLike
        出力キャンバス寸法。
    target_size : CanvasLike
        形状を収める矩形の寸法（幅/高さ）。

    Returns
    -------
    np.ndarray
        `(N, 2) float64`。ノードが無ければ `(0, 2)`。
    """
    if not topology.nodes:
        return np.empty((0, 2), dtype=np.float64)
    canvas = CanvasSize.coerce(target_canvas)
    size = CanvasSize.coerce(target_size)
    left = (canvas.width - size.width) / 2.0
    top = (canvas.height - size.height) / 2.0
    ratios = np.array(
        [[n.relative_position.x_ratio, n.relative_position.y_ratio] for n in topology.nodes],
        dtype=np.float64,
    )
    return ratios * np.array([size.width, size.height]) + np.array([left, top])


__all__ = ["topology_to_points"]
