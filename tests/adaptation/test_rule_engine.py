from __future__ import annotations

import numpy as np
import pytest

from adaptation.models import AdaptationContext, AdaptationMetrics, AdaptedShape
from adaptation.registry import create_default_rules, get_rule_class, is_rule_registered, list_rules
from adaptation.rule_engine import AdaptationRuleEngine
from adaptation.rules import AdaptationRule, BoundaryRule, RuleOutcome, SizeScalingRule
from common.types import CanvasSize
from memory.cleaner import CoordinateCleaner
from topology.extractor import extract_topology

# What this tests
# - 既定ルールの登録（名前の正規化）と優先度順
# - add_rule の同名置換/remove_rule
# - 段階実行: phase が順序を決め、position 段の平行移動が center_offset に加算される
# - scaling 段が点を出さない、または全段後に点が無ければ RuntimeError
# - validate_adaptation（通常/strict）


class _ShiftRule(AdaptationRule):
    name = "ShiftRule"
    priority = 500  # 優先度が高くても position 段で実行される
    phase = "position"

    def apply(self, topology, context, points):
        return RuleOutcome(points=points + np.array([1.0, 2.0]), offset_delta=(1.0, 2.0))


def _clean(points):
    return CoordinateCleaner().clean_from_topology(extract_topology(points), "shape")


def _ctx(w: float = 800, h: float = 600, **kw) -> AdaptationContext:
    return AdaptationContext(CanvasSize(400, 400), CanvasSize(w, h), **kw)


def test_default_rules_registered() -> None:
    names = list_rules()
    for key in ("size_scaling_rule", "centering_rule", "proportion_rule", "boundary_rule"):
        assert key in names
    assert is_rule_registered("SizeScalingRule")
    assert get_rule_class("boundary-rule") is BoundaryRule
    assert {type(r) for r in create_default_rules()} >= {SizeScalingRule, BoundaryRule}


def test_rules_sorted_by_priority() -> None:
    engine = AdaptationRuleEngine()
    priorities = [r.priority for r in engine.get_rules()]
    assert priorities == sorted(priorities, reverse=True)
    assert engine.get_rules()[0].name == "SizeScalingRule"
    assert engine.boundary_margin() == 10.0


def test_add_replaces_same_name_and_remove() -> None:
    engine = AdaptationRuleEngine()
    n = len(engine.get_rules())
    engine.add_rule(BoundaryRule(margin=0))
    assert len(engine.get_rules()) == n
    assert engine.boundary_margin() == 0.0
    assert engine.remove_rule("BoundaryRule")
    assert not engine.remove_rule("BoundaryRule")
    assert engine.boundary_margin() is None
    assert engine.get_engine_info()["rules_count"] == n - 1


def test_apply_rules_full_shape(square_pts) -> None:
    engine = AdaptationRuleEngine()
    clean = _clean(square_pts)
    adapted = engine.apply_rules(clean, _ctx())
    assert adapted.shape_id == "shape"
    assert adapted.points.shape == (4, 2)
    m = adapted.adaptation_metrics
    assert m.scale_factor == pytest.approx(180.0)
    assert m.fidelity == pytest.approx(1.0)
    assert m.boundary_fit == 1.0
    assert engine.validate_adaptation(adapted, clean, strict=True)


def test_position_phase_runs_after_scaling(square_pts) -> None:
    engine = AdaptationRuleEngine([SizeScalingRule(), _ShiftRule()])
    adapted = engine.apply_rules(_clean(square_pts), _ctx())
    assert adapted.points.min(axis=0) == pytest.approx([311.0, 212.0])
    assert adapted.adaptation_metrics.center_offset == pytest.approx((311.0, 212.0))


def test_missing_scaling_rule_raises(square_pts) -> None:
    engine = AdaptationRuleEngine([BoundaryRule()])
    with pytest.raises(RuntimeError, match="no scaling rule"):
        engine.apply_rules(_clean(square_pts), _ctx())


def test_no_points_after_all_phases_raises(monkeypatch, square_pts) -> None:
    # scaling 段が無い構成でも、点が無ければ明示的に RuntimeError（-O でも消えない）
    monkeypatch.setattr("adaptation.rule_engine.PHASES", ("position",))
    engine = AdaptationRuleEngine([BoundaryRule()])
    with pytest.raises(RuntimeError, match="produced no points"):
        engine.apply_rules(_clean(square_pts), _ctx())


def test_validate_adaptation(square_pts) -> None:
    engine = AdaptationRuleEngine()
    clean = _clean(square_pts)
    canvas = CanvasSize(100, 100)

    def shape(points, **metrics) -> AdaptedShape:
        return AdaptedShape("shape", np.asarray(points, float), canvas, AdaptationMetrics(**metrics))

    inside = [[10, 10], [90, 10], [90, 90], [10, 90]]
    assert engine.validate_adaptation(shape(inside), clean)
    assert not engine.validate_adaptation(shape(inside[:3]), clean)
    assert not engine.validate_adaptation(shape([[np.nan, 0]] + inside[1:]), clean)
    assert not engine.validate_adaptation(shape(inside, fidelity=1.5), clean)

    outside = [[-5, 10], [90, 10], [90, 90], [10, 90]]
    assert engine.validate_adaptation(shape(outside), clean)
    assert not engine.validate_adaptation(shape(outside), clean, strict=True)
    assert not engine.validate_adaptation(shape(inside, boundary_fit=0.5), clean, strict=True)
