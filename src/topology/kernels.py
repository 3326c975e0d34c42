from __future__ import annotations

"""
どこで: `topology` の数値カーネル群。
何を: 閉多角形の頂点ごとの転角/曲率/重要度、靴紐公式の面積、鏡映/回転対称の一致判定を Numba で計算する。
なぜ: 抽出はノード数に比例するループと O(N^2) の対称照合を含むため、Python ループを避けて一定速度にするため。

提供関数:
- `vertex_metrics_njit(pts) -> (importance, curvature, total_turning, perimeter)`
- `shoelace_area_njit(pts) -> float`（符号なし）
- `mirror_match_njit(pts, cx, cy, axis, tol) -> bool`（axis=0: 垂直軸で左右反転, 1: 水平軸で上下反転）
- `rotation_match_njit(pts, cx, cy, angle, tol) -> bool`

実装メモ:
- 入力は `(N, 2) float64` の C 連続配列を前提とする（`Outline.coords` をそのまま渡す）。
- 頂点 i の前後は `(i-1) % n` / `(i+1) % n`（閉ループ）。
- 一致判定は各点について「許容誤差内の対応点が存在するか」のみを見る（1 対 1 対応は要求しない）。
"""

import math

import numpy as np
from numba import njit

_DISTANCE_NORM = 100.0
_DISTANCE_FACTOR_MAX = 1.2


@njit(cache=True)
def _turn_angle(px: float, py: float, cx: float, cy: float, nx: float, ny: float) -> float:
    """入射方向と出射方向の方位差（0..π）。"""
    a1 = math.atan2(cy - py, cx - px)
    a2 = math.atan2(ny - cy, nx - cx)
    d = abs(a2 - a1)
    if d > math.pi:
        d = 2.0 * math.pi - d
    return d


@njit(cache=True)
def vertex_metrics_njit(pts: np.ndarray):
    """頂点ごとの重要度/曲率と、形状全体の総転角・周長を返す。

    - 重要度 = 転角/π × min(1.2, 1 + 隣接平均距離/100)、上限 1。
    - 曲率 = 入射/出射ベクトルのなす角/π（どちらかが長さ 0 なら 0）。
    - 3 点未満は重要度 1・曲率 0・総転角 0（周長は計算する）。
    """
    n = pts.shape[0]
    importance = np.ones(n, dtype=np.float64)
    curvature = np.zeros(n, dtype=np.float64)
    total_turning = 0.0
    perimeter = 0.0

    for i in range(n):
        j = (i + 1) % n
        dx = pts[j, 0] - pts[i, 0]
        dy = pts[j, 1] - pts[i, 1]
        perimeter += math.sqrt(dx * dx + dy * dy)

    if n < 3:
        return importance, curvature, total_turning, perimeter

    for i in range(n):
        p = (i - 1 + n) % n
        q = (i + 1) % n
        px, py = pts[p, 0], pts[p, 1]
        cx, cy = pts[i, 0], pts[i, 1]
        nx, ny = pts[q, 0], pts[q, 1]

        turn = _turn_angle(px, py, cx, cy, nx, ny)
        total_turning += turn

        d1 = math.sqrt((cx - px) ** 2 + (cy - py) ** 2)
        d2 = math.sqrt((nx - cx) ** 2 + (ny - cy) ** 2)
        factor = min(_DISTANCE_FACTOR_MAX, 1.0 + (d1 + d2) / 2.0 / _DISTANCE_NORM)
        importance[i] = min(1.0, turn / math.pi * factor)

        v1x, v1y = cx - px, cy - py
        v2x, v2y = nx - cx, ny - cy
        if d1 == 0.0 or d2 == 0.0:
            curvature[i] = 0.0
        else:
            cos_a = (v1x * v2x + v1y * v2y) / (d1 * d2)
            if cos_a > 1.0:
                cos_a = 1.0
            elif cos_a < -1.0:
                cos_a = -1.0
            curvature[i] = math.acos(cos_a) / math.pi

    return importance, curvature, total_turning, perimeter


@njit(cache=True)
def shoelace_area_njit(pts: np.ndarray) -> float:
    """靴紐公式による多角形面積（絶対値）。3 点未満は 0。"""
    n = pts.shape[0]
    if n < 3:
        return 0.0
    s = 0.0
    for i in range(n):
        j = (i + 1) % n
        s += pts[i, 0] * pts[j, 1] - pts[j, 0] * pts[i, 1]
    return abs(s) / 2.0


@njit(cache=True)
def _has_match(pts: np.ndarray, x: float, y: float, tol: float) -> bool:
    for k in range(pts.shape[0]):
        if abs(pts[k, 0] - x) < tol and abs(pts[k, 1] - y) < tol:
            return True
    return False


@njit(cache=True)
def mirror_match_njit(pts: np.ndarray, cx: float, cy: float, axis: int, tol: float) -> bool:
    """鏡映対称の判定。axis=0 は x = cx を軸に、axis=1 は y = cy を軸に反転する。"""
    n = pts.shape[0]
    if n == 0:
        return False
    for i in range(n):
        x = pts[i, 0]
        y = pts[i, 1]
        if axis == 0:
            x = 2.0 * cx - x
        else:
            y = 2.0 * cy - y
        if not _has_match(pts, x, y, tol):
            return False
    return True


@njit(cache=True)
def rotation_match_njit(pts: np.ndarray, cx: float, cy: float, angle: float, tol: float) -> bool:
    """中心 (cx, cy) まわりに `angle` 回転した各点が元の点集合に一致するか。"""
    n = pts.shape[0]
    if n == 0:
        return False
    c = math.cos(angle)
    s = math.sin(angle)
    for i in range(n):
        x = pts[i, 0] - cx
        y = pts[i, 1] - cy
        rx = x * c - y * s + cx
        ry = x * s + y * c + cy
        if not _has_match(pts, rx, ry, tol):
            return False
    return True


__all__ = [
    "vertex_metrics_njit",
    "shoelace_area_njit",
    "mirror_match_njit",
    "rotation_match_njit",
]
