"""
どこで: `adaptation` パッケージ。
何を: クリーン済みトポロジを目標キャンバスの座標へ写す適応ルール/ルールエンジンと、その入出力型。
なぜ: 「記憶（トポロジ）」から「表示（座標）」を作る段を 1 箇所に集約するため。

補足:
- `AdaptationEngine`（保存層と結合するオーケストレータ）は `adaptation.engine` から直接 import する。
  `memory` パッケージがここの型を参照するため、パッケージ初期化時には読み込まない。
"""

# 既定ルールを登録（import 副作用）
from . import rules  # noqa: F401
from .models import (
    AdaptationContext,
    AdaptationHistory,
    AdaptationMetrics,
    AdaptationOptions,
    AdaptedShape,
)
from .registry import adaptation_rule, create_default_rules, get_rule_class, list_rules
from .rule_engine import AdaptationRuleEngine
from .rules import (
    AdaptationRule,
    BoundaryRule,
    CenteringRule,
    ProportionRule,
    RuleOutcome,
    SizeScalingRule,
)

__all__ = [
    "AdaptationContext",
    "AdaptationHistory",
    "AdaptationMetrics",
    "AdaptationOptions",
    "AdaptationRule",
    "AdaptationRuleEngine",
    "AdaptedShape",
    "BoundaryRule",
    "CenteringRule",
    "ProportionRule",
    "RuleOutcome",
    "SizeScalingRule",
    "adaptation_rule",
    "create_default_rules",
    "get_rule_class",
    "list_rules",
]
