"""
どこで: `adaptation.rule_engine`
何を: 適応ルールの登録/並べ替え/段階実行と、適応結果の検証を担う `AdaptationRuleEngine`。
なぜ: ルールの部分結果（点列/指標）を決まった順序で合成し、常に完全な `AdaptedShape` を返すため。

段階:
1) scaling   … 基準点列を生成（最初に点を返したルールが基準）
2) position  … 点列の追加平行移動（`center_offset` に加算）
3) constraint … 指標のみ（点は変更しない）

各段階内は優先度の降順。ルールの段階は名前ではなく `AdaptationRule.phase` で決まる。
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import replace
from threading import RLock
from typing import Any, Iterable

import numpy as np

from common.logging import stage_level
from topology.models import CleanTopology

from .models import AdaptationContext, AdaptationMetrics, AdaptedShape
from .registry import create_default_rules
from .rules import PHASES, AdaptationRule, BoundaryRule, RuleOutcome

logger = logging.getLogger(__name__)

_METRIC_KEYS = frozenset(AdaptationMetrics.__dataclass_fields__)


class AdaptationRuleEngine:
    """優先度付きルール集合の実行器。

    Parameters
    ----------
    rules : Iterable[AdaptationRule], optional
        初期ルール。省略時はレジストリ登録済みの既定ルールを生成する。
    debug_mode : bool, default False
        True の場合、段階ごとのログを INFO で出力する。
    """

    def __init__(
        self, rules: Iterable[AdaptationRule] | None = None, *, debug_mode: bool = False
    ) -> None:
        self._rules: list[AdaptationRule] = []
        self._lock = RLock()
        self.debug_mode = bool(debug_mode)
        for rule in rules if rules is not None else create_default_rules():
            self.add_rule(rule)

    # ── ルール管理 ───────────────────
    def add_rule(self, rule: AdaptationRule) -> None:
        """ルールを追加（同名は置換）し、優先度の降順に並べ直す。"""
        with self._lock:
            for i, existing in enumerate(self._rules):
                if existing.name == rule.name:
                    self._rules[i] = rule
                    break
            else:
                self._rules.append(rule)
            self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove_rule(self, name: str) -> bool:
        with self._lock:
            for i, existing in enumerate(self._rules):
                if existing.name == name:
                    del self._rules[i]
                    return True
            return False

    def get_rules(self) -> list[AdaptationRule]:
        with self._lock:
            return list(self._rules)

    def set_debug_mode(self, enabled: bool) -> None:
        self.debug_mode = bool(enabled)

    # ── 実行 ───────────────────
    def apply_rules(self, topology: CleanTopology, context: AdaptationContext) -> AdaptedShape:
        """適用可能なルールを段階順に実行し、完全な `AdaptedShape` を返す。

        Raises
        ------
        RuntimeError
            scaling 段でどのルールも点列を生成しなかった場合。
        """
        t0 = time.perf_counter()
        debug = self.debug_mode or context.debug_mode
        rules = self.get_rules()
        points: np.ndarray | None = None
        metrics = AdaptationMetrics()

        for phase in PHASES:
            for rule in rules:
                if rule.phase != phase or not rule.condition(context):
                    continue
                outcome = rule.apply(topology, context, points)
                points, metrics = self._merge(points, metrics, outcome)
                logger.log(
                    stage_level(debug),
                    "rule %s (%s) applied to %s",
                    rule.name,
                    phase,
                    topology.original_memory_id,
                )
            if phase == "scaling" and points is None:
                raise RuntimeError("no scaling rule produced points")

        if points is None:
            raise RuntimeError("rule engine produced no points")
        metrics = replace(metrics, processing_time=time.perf_counter() - t0)
        return AdaptedShape(
            shape_id=topology.original_memory_id,
            points=points,
            canvas_size=context.target_canvas,
            adaptation_metrics=metrics,
            timestamp=time.time(),
        )

    @staticmethod
    def _merge(
        points: np.ndarray | None, metrics: AdaptationMetrics, outcome: RuleOutcome
    ) -> tuple[np.ndarray | None, AdaptationMetrics]:
        if outcome.points is not None:
            points = np.asarray(outcome.points, dtype=np.float64)
        updates = {k: v for k, v in outcome.metrics.items() if k in _METRIC_KEYS}
        unknown = set(outcome.metrics) - _METRIC_KEYS
        if unknown:
            logger.debug("ignoring unknown rule metrics: %s", sorted(unknown))
        if updates:
            metrics = replace(metrics, **updates)
        if outcome.offset_delta is not None:
            ox, oy = metrics.center_offset
            dx, dy = outcome.offset_delta
            metrics = replace(metrics, center_offset=(ox + dx, oy + dy))
        return points, metrics

    # ── 検証 ───────────────────
    def validate_adaptation(
        self,
        adapted: AdaptedShape,
        original: CleanTopology,
        *,
        strict: bool = False,
    ) -> bool:
        """適応結果の妥当性（例外ではなく bool を返す）。

        - 点数 == ノード数
        - 全座標が有限
        - `fidelity` / `boundary_fit` ∈ [0, 1]
        - `strict` 時: `boundary_fit == 1` かつ全点がキャンバス内
        """
        pts = np.asarray(adapted.points, dtype=np.float64)
        n_nodes = len(original.nodes)
        if pts.ndim != 2 or pts.shape != (n_nodes, 2):
            logger.log(
                stage_level(self.debug_mode),
                "point count mismatch: adapted=%s nodes=%d",
                pts.shape,
                n_nodes,
            )
            return False
        if not np.all(np.isfinite(pts)):
            logger.log(stage_level(self.debug_mode), "non-finite coordinates in adaptation")
            return False
        m = adapted.adaptation_metrics
        for key in ("fidelity", "boundary_fit"):
            v = getattr(m, key)
            if not (math.isfinite(v) and 0.0 <= v <= 1.0):
                logger.log(stage_level(self.debug_mode), "metric %s out of range: %s", key, v)
                return False
        if strict:
            if m.boundary_fit < 1.0:
                return False
            canvas = adapted.canvas_size
            if pts.size and (
                pts[:, 0].min() < 0
                or pts[:, 1].min() < 0
                or pts[:, 0].max() > canvas.width
                or pts[:, 1].max() > canvas.height
            ):
                return False
        return True

    def get_engine_info(self) -> dict[str, Any]:
        rules = self.get_rules()
        return {
            "rules_count": len(rules),
            "rules": [r.describe() for r in rules],
            "debug_mode": self.debug_mode,
        }

    def boundary_margin(self) -> float | None:
        """登録中の `BoundaryRule` のマージン（無ければ None）。"""
        for rule in self.get_rules():
            if isinstance(rule, BoundaryRule):
                return rule.margin
        return None


__all__ = ["AdaptationRuleEngine"]
