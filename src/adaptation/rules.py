"""
どこで: `adaptation.rules`
何を: クリーン済みトポロジを目標キャンバスの具体座標へ写す適応ルール群（基底 + 既定 4 種）。
なぜ: 「大きさ/位置/制約」を独立したルールとして並べ、優先度順に合成できるようにするため。

既定ルール（優先度の降順）:
- `SizeScalingRule`（100, scaling）: 直径 = 短辺 × 0.30 に拡縮し、バウンディングボックス中心をキャンバス中心へ。
- `CenteringRule`（90, position）: 中心の残差を検査し、許容誤差を超える場合のみ補正する。
- `ProportionRule`（80, constraint）: 適応後の縦横比と元の縦横比から忠実度を算出（点は変えない）。
- `BoundaryRule`（70, constraint）: マージン内の利用可能領域に対する収まり具合を算出（点は変えない）。

縦横比の扱い:
- 相対比率は各軸 [0, 1] に正規化されているため、そのまま直径を掛けると正方形に潰れる。
  `preserve_aspect_ratio` 時は保存済みの `aspect_ratio` で長辺 1 の単位箱へ戻してから拡縮する。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

from common import settings as settings_mod
from common.logging import stage_level
from topology.models import CleanTopology
from topology.outline import Outline

from .models import AdaptationContext
from .registry import adaptation_rule

logger = logging.getLogger(__name__)

RulePhase = Literal["scaling", "position", "constraint"]
PHASES: tuple[RulePhase, ...] = ("scaling", "position", "constraint")

FALLBACK_SCALE_FACTOR = 1.0
_DIAMETER_EPS = 1e-9
CENTER_TOLERANCE = 1e-6
_MIN_ASPECT = 1e-6


@dataclass
class RuleOutcome:
    """ルールの部分結果。

    - `points` が None のときは点を変更しない。
    - `metrics` は `AdaptationMetrics` のうち指定キーのみ上書き。
    - `offset_delta` は追加で平行移動した量（`center_offset` に加算される）。
    """

    points: np.ndarray | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    offset_delta: tuple[float, float] | None = None


class AdaptationRule(ABC):
    """適応ルールの基底。

    サブクラスは `name/priority/phase/description` を定義し、`apply` を実装する。
    `condition` は既定で常に True。
    """

    name: str = "AdaptationRule"
    priority: int = 0
    phase: RulePhase = "constraint"
    description: str = ""

    def condition(self, context: AdaptationContext) -> bool:
        return True

    @abstractmethod
    def apply(
        self,
        topology: CleanTopology,
        context: AdaptationContext,
        points: np.ndarray | None,
    ) -> RuleOutcome:
        """部分結果を返す。`points` は前段までの点列（scaling 段では None）。"""

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "priority": self.priority,
            "phase": self.phase,
            "description": self.description,
        }

    def __repr__(self) -> str:  # pragma: no cover - 表示用
        return f"{type(self).__name__}(priority={self.priority}, phase={self.phase!r})"


# ── 幾何ヘルパ ───────────────────
def relative_ratios(topology: CleanTopology) -> np.ndarray:
    """ノードの相対比率 `(N, 2)`。"""
    if not topology.nodes:
        return np.empty((0, 2), dtype=np.float64)
    return np.array(
        [[n.relative_position.x_ratio, n.relative_position.y_ratio] for n in topology.nodes],
        dtype=np.float64,
    )


def unit_box(aspect_ratio: float) -> tuple[float, float]:
    """長辺 1 の単位箱 `(w, h)`。縦横比 = w / h。"""
    if not (aspect_ratio > 0 and np.isfinite(aspect_ratio)):
        return (1.0, 1.0)
    if aspect_ratio >= 1.0:
        return (1.0, 1.0 / aspect_ratio)
    return (aspect_ratio, 1.0)


def points_aspect_ratio(points: np.ndarray) -> float:
    """点列のバウンディングボックス縦横比。

    抽出側と同じ規約: 高さ 0 は 1.0、幅 0 は下限 1e-6。
    """
    if points.shape[0] == 0:
        return 1.0
    span = points.max(axis=0) - points.min(axis=0)
    w, h = float(span[0]), float(span[1])
    if h <= 0:
        return 1.0
    return max(w / h, _MIN_ASPECT)


# ── 既定ルール ───────────────────
@adaptation_rule
class SizeScalingRule(AdaptationRule):
    name = "SizeScalingRule"
    priority = 100
    phase: RulePhase = "scaling"
    description = "形状の直径をキャンバス短辺の一定割合に拡縮し、中心へ配置する"

    def __init__(self, diameter_ratio: float | None = None) -> None:
        self.diameter_ratio = (
            float(diameter_ratio)
            if diameter_ratio is not None
            else settings_mod.get().TARGET_DIAMETER_RATIO
        )

    def apply(
        self,
        topology: CleanTopology,
        context: AdaptationContext,
        points: np.ndarray | None,
    ) -> RuleOutcome:
        target = context.target_canvas
        target_diameter = target.min_edge * self.diameter_ratio

        if context.preserve_aspect_ratio:
            box = unit_box(topology.bounding_info.aspect_ratio)
        else:
            box = (1.0, 1.0)
        rel = Outline(relative_ratios(topology) * np.array(box))
        original_diameter = rel.diameter()
        if original_diameter > _DIAMETER_EPS:
            scale_factor = target_diameter / original_diameter
        else:
            scale_factor = FALLBACK_SCALE_FACTOR

        scaled = rel.scale(scale_factor)
        sx, sy = scaled.center()
        tx, ty = target.center
        offset = (tx - sx, ty - sy)
        centered = scaled.translate(*offset)

        logger.log(
            stage_level(context.debug_mode),
            "SizeScalingRule: canvas=%gx%g target_diameter=%.3f original_diameter=%.4f scale=%.4f",
            target.width,
            target.height,
            target_diameter,
            original_diameter,
            scale_factor,
        )
        return RuleOutcome(
            points=centered.as_array(copy=True),
            metrics={"scale_factor": float(scale_factor), "center_offset": offset},
        )


@adaptation_rule
class CenteringRule(AdaptationRule):
    """中心の検証パス。通常は残差 0 で点を変更しない。"""

    name = "CenteringRule"
    priority = 90
    phase: RulePhase = "position"
    description = "バウンディングボックス中心とキャンバス中心の残差を検証・補正する"

    def __init__(self, tolerance: float = CENTER_TOLERANCE) -> None:
        self.tolerance = float(tolerance)

    def condition(self, context: AdaptationContext) -> bool:
        return context.center_shape

    def apply(
        self,
        topology: CleanTopology,
        context: AdaptationContext,
        points: np.ndarray | None,
    ) -> RuleOutcome:
        if points is None or points.shape[0] == 0:
            return RuleOutcome()
        outline = Outline(points)
        cx, cy = outline.center()
        tx, ty = context.target_canvas.center
        dx, dy = tx - cx, ty - cy
        if abs(dx) <= self.tolerance and abs(dy) <= self.tolerance:
            return RuleOutcome()
        logger.log(stage_level(context.debug_mode), "CenteringRule: residual=(%.6f, %.6f)", dx, dy)
        return RuleOutcome(
            points=outline.translate(dx, dy).as_array(copy=True), offset_delta=(dx, dy)
        )


@adaptation_rule
class ProportionRule(AdaptationRule):
    name = "ProportionRule"
    priority = 80
    phase: RulePhase = "constraint"
    description = "適応後の縦横比と元の縦横比の一致度（忠実度）を算出する"

    def condition(self, context: AdaptationContext) -> bool:
        return context.preserve_aspect_ratio

    def apply(
        self,
        topology: CleanTopology,
        context: AdaptationContext,
        points: np.ndarray | None,
    ) -> RuleOutcome:
        original = float(topology.bounding_info.aspect_ratio)
        if points is None:
            points = relative_ratios(topology)
        current = points_aspect_ratio(points)
        if current <= 0 or original <= 0:
            fidelity = 0.0
        else:
            fidelity = min(current, original) / max(current, original)
        return RuleOutcome(metrics={"fidelity": float(min(1.0, max(0.0, fidelity)))})


@adaptation_rule
class BoundaryRule(AdaptationRule):
    name = "BoundaryRule"
    priority = 70
    phase: RulePhase = "constraint"
    description = "マージンを除いたキャンバス内への収まり具合を算出する"

    def __init__(self, margin: float | None = None) -> None:
        self.margin = float(margin) if margin is not None else settings_mod.get().BOUNDARY_MARGIN

    def apply(
        self,
        topology: CleanTopology,
        context: AdaptationContext,
        points: np.ndarray | None,
    ) -> RuleOutcome:
        canvas = context.target_canvas
        avail_w = canvas.width - 2 * self.margin
        avail_h = canvas.height - 2 * self.margin
        if points is None or points.shape[0] == 0:
            w = h = 0.0
        else:
            w, h = Outline(points).size()
        return RuleOutcome(metrics={"boundary_fit": boundary_fit(w, h, avail_w, avail_h)})


def boundary_fit(width: float, height: float, avail_w: float, avail_h: float) -> float:
    """利用可能領域に対する収まり具合 [0, 1]。利用可能領域が 0 以下なら 0。"""
    if avail_w <= 0 or avail_h <= 0:
        return 0.0
    if width <= avail_w and height <= avail_h:
        return 1.0
    wf = min(1.0, avail_w / width) if width > 0 else 1.0
    hf = min(1.0, avail_h / height) if height > 0 else 1.0
    return float(min(1.0, max(0.0, min(wf, hf))))


__all__ = [
    "RulePhase",
    "PHASES",
    "FALLBACK_SCALE_FACTOR",
    "RuleOutcome",
    "AdaptationRule",
    "SizeScalingRule",
    "CenteringRule",
    "ProportionRule",
    "BoundaryRule",
    "boundary_fit",
    "relative_ratios",
    "unit_box",
    "points_aspect_ratio",
]
