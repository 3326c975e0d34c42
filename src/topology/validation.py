"""
どこで: `topology.validation`
何を: トポロジの構造検査（ノード/関係/境界記述子）を問題文字列のリストとして返す関数群。
なぜ: 抽出後の自己検証・保存時の整合性検査・クリーナ入力検査で同じ規則を共有するため。

方針:
- `collect_*` 系は例外を投げず、見つかった問題を列挙する（空リスト = 妥当）。
- `ensure_valid_topology` のみが `InvalidTopologyError` を送出する。
"""

from __future__ import annotations

import math
from typing import Iterable

from common.errors import InvalidTopologyError

from .models import (
    NODE_TYPES,
    RELATIONSHIP_TYPES,
    BoundingInfo,
    CleanTopology,
    NodeRelationship,
    ShapeTopology,
    TopologyNode,
)

TopologyLike = ShapeTopology | CleanTopology


def _finite_in_unit(v: object) -> bool:
    return isinstance(v, (int, float)) and math.isfinite(v) and 0.0 <= v <= 1.0


def collect_node_issues(nodes: Iterable[TopologyNode]) -> list[str]:
    """ノード単体の検査（ID/型/相対座標の範囲）と ID 重複。"""
    issues: list[str] = []
    seen: set[str] = set()
    for node in nodes:
        if not node.id:
            issues.append("node without id")
            continue
        if node.id in seen:
            issues.append(f"duplicate node id: {node.id}")
        seen.add(node.id)
        if node.type not in NODE_TYPES:
            issues.append(f"node {node.id} has unknown type {node.type!r}")
        pos = node.relative_position
        if not (_finite_in_unit(pos.x_ratio) and _finite_in_unit(pos.y_ratio)):
            issues.append(
                f"node {node.id} relative position out of range: "
                f"({pos.x_ratio}, {pos.y_ratio})"
            )
    return issues


def collect_relationship_issues(
    relationships: Iterable[NodeRelationship], node_ids: set[str]
) -> list[str]:
    issues: list[str] = []
    for rel in relationships:
        if rel.from_node_id not in node_ids or rel.to_node_id not in node_ids:
            issues.append(f"unresolved relationship: {rel.from_node_id} -> {rel.to_node_id}")
        if rel.type not in RELATIONSHIP_TYPES:
            issues.append(f"relationship {rel.from_node_id}->{rel.to_node_id} has unknown type")
        if not _finite_in_unit(rel.strength):
            issues.append(
                f"relationship {rel.from_node_id}->{rel.to_node_id} strength out of range"
            )
    return issues


def collect_bounding_issues(info: BoundingInfo | None) -> list[str]:
    if info is None:
        return ["missing bounding info"]
    issues: list[str] = []
    if not (math.isfinite(info.aspect_ratio) and info.aspect_ratio > 0):
        issues.append(f"invalid aspect ratio: {info.aspect_ratio}")
    if not _finite_in_unit(info.complexity):
        issues.append(f"complexity out of range: {info.complexity}")
    if not _finite_in_unit(info.area):
        issues.append(f"area out of range: {info.area}")
    if info.symmetry is None:
        issues.append("missing symmetry info")
    return issues


def collect_topology_issues(topology: TopologyLike, *, check_connections: bool = True) -> list[str]:
    """トポロジ全体の構造検査。

    Parameters
    ----------
    topology : ShapeTopology | CleanTopology
        検査対象。
    check_connections : bool, default True
        ノードの `connections` が既存 ID を参照しているかも検査する。

    Returns
    -------
    list[str]
        問題の説明。空なら妥当。
    """
    if not topology.nodes:
        return ["topology has no nodes"]
    issues = collect_node_issues(topology.nodes)
    ids = topology.node_ids()
    if check_connections:
        for node in topology.nodes:
            missing = [c for c in node.connections if c not in ids]
            if missing:
                issues.append(f"node {node.id} connects to unknown nodes: {missing}")
    issues.extend(collect_relationship_issues(topology.relationships, ids))
    issues.extend(collect_bounding_issues(topology.bounding_info))
    return issues


def is_valid_topology(topology: TopologyLike) -> bool:
    return not collect_topology_issues(topology)


def ensure_valid_topology(topology: TopologyLike) -> None:
    """構造が不正なら `InvalidTopologyError`（最初の問題を本文、全件を `issues` 属性に格納）。"""
    issues = collect_topology_issues(topology)
    if issues:
        err = InvalidTopologyError(f"invalid topology: {issues[0]}")
        err.issues = issues  # type: ignore[attr-defined]
        raise err


__all__ = [
    "collect_node_issues",
    "collect_relationship_issues",
    "collect_bounding_issues",
    "collect_topology_issues",
    "is_valid_topology",
    "ensure_valid_topology",
]
