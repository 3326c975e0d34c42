"""
どこで: `memory.cleaner`
何を: 保存済みトポロジから、適応用の一時ビュー `CleanTopology` を作る `CoordinateCleaner`。
なぜ: 保存物に絶対座標由来の情報が紛れ込んでいても、適応段には比率と構造だけを渡すため。

処理:
- ノード/関係をディープコピーし、コピー後に端点が存在しない関係を除外する。
- オプションに応じて重要度/曲率/対称性のメタ情報を落とす。
- 統計（保持率と、その平均である整合性スコア）を `CleaningStats` に記録する。

失敗:
- `clean_from_topology` はノードが空、または相対座標が [0, 1] 外なら `InvalidTopologyError`。
- `clean_from_memory` は例外を投げず、`CleaningResult.success/error` で報告する。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from common.errors import InvalidTopologyError
from topology.models import (
    BoundingInfo,
    CleanTopology,
    NodeMetadata,
    NodeRelationship,
    RelativePosition,
    ShapeTopology,
    SymmetryInfo,
    TopologyNode,
)
from topology.validation import collect_bounding_issues, collect_node_issues

from .models import ShapeMemory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleaningOptions:
    preserve_importance: bool = True
    preserve_curvature: bool = True
    preserve_symmetry: bool = True
    validate_result: bool = True


@dataclass
class CleaningStats:
    original_node_count: int = 0
    cleaned_node_count: int = 0
    original_relationship_count: int = 0
    cleaned_relationship_count: int = 0
    processing_time: float = 0.0
    integrity_score: float = 0.0


@dataclass
class CleaningResult:
    clean_topology: CleanTopology
    cleaning_stats: CleaningStats
    success: bool
    error: str | None = None


@dataclass
class IntegrityReport:
    is_valid: bool
    issues: list[str] = field(default_factory=list)
    score: float = 1.0


def _retention(kept: int, original: int) -> float:
    # 元が 0 件なら欠落もないので 1
    return kept / original if original else 1.0


class CoordinateCleaner:
    """比率/構造のみを残した `CleanTopology` を生成する（状態を持たない）。"""

    def __init__(self, options: CleaningOptions | None = None) -> None:
        self.options = options or CleaningOptions()

    def clean_from_topology(
        self,
        topology: ShapeTopology,
        memory_id: str,
        options: CleaningOptions | None = None,
    ) -> CleanTopology:
        """トポロジを検査してクリーンなコピーを返す。

        Raises
        ------
        InvalidTopologyError
            ノードが空、または相対座標が範囲外。
        """
        opts = options or self.options
        if not topology.nodes:
            raise InvalidTopologyError(f"memory {memory_id} has no nodes")
        bad = [
            n.id for n in topology.nodes if not n.relative_position.in_unit_range()
        ]
        if bad:
            raise InvalidTopologyError(
                f"memory {memory_id} has relative positions out of range: {bad[:5]}"
            )

        nodes = [self._clean_node(n, opts) for n in topology.nodes]
        ids = {n.id for n in nodes}
        relationships = [
            NodeRelationship(r.from_node_id, r.to_node_id, r.type, float(r.strength))
            for r in topology.relationships
            if r.from_node_id in ids and r.to_node_id in ids
        ]
        dropped = len(topology.relationships) - len(relationships)
        if dropped:
            logger.info("dropped %d dangling relationships from %s", dropped, memory_id)
        return CleanTopology(
            nodes=nodes,
            relationships=relationships,
            bounding_info=self._clean_bounding_info(topology.bounding_info, opts),
            original_memory_id=memory_id,
        )

    def clean_from_memory(
        self, memory: ShapeMemory, options: CleaningOptions | None = None
    ) -> CleaningResult:
        """メモリを清掃し、結果と統計を返す（失敗も結果として返す）。"""
        opts = options or self.options
        t0 = time.perf_counter()
        try:
            clean = self.clean_from_topology(memory.topology, memory.id, opts)
        except InvalidTopologyError as e:
            return CleaningResult(
                clean_topology=CleanTopology.empty(memory.id),
                cleaning_stats=CleaningStats(processing_time=time.perf_counter() - t0),
                success=False,
                error=str(e),
            )
        stats = self._stats(memory.topology, clean, time.perf_counter() - t0)
        if opts.validate_result:
            report = self.check_integrity(clean)
            if not report.is_valid:
                return CleaningResult(
                    clean_topology=clean,
                    cleaning_stats=stats,
                    success=False,
                    error="; ".join(report.issues),
                )
        return CleaningResult(clean_topology=clean, cleaning_stats=stats, success=True)

    # ── 診断 ───────────────────
    def check_integrity(self, clean: CleanTopology) -> IntegrityReport:
        """クリーン済みトポロジの健全性。問題ごとにスコアを減衰させる。"""
        issues: list[str] = []
        score = 1.0
        if not clean.nodes:
            issues.append("clean topology has no nodes")
            score = 0.0
        if not clean.original_memory_id:
            issues.append("clean topology has no source memory id")
            score *= 0.9
        for issue in collect_node_issues(clean.nodes):
            issues.append(issue)
            score *= 0.9
        ids = clean.node_ids()
        for rel in clean.relationships:
            if rel.from_node_id not in ids or rel.to_node_id not in ids:
                issues.append(f"unresolved relationship: {rel.from_node_id} -> {rel.to_node_id}")
                score *= 0.8
        for issue in collect_bounding_issues(clean.bounding_info):
            issues.append(issue)
            score *= 0.9
        return IntegrityReport(is_valid=not issues, issues=issues, score=max(0.0, score))

    @staticmethod
    def compare_similarity(a: CleanTopology, b: CleanTopology) -> float:
        """ノード数/関係数/縦横比/複雑度の類似度の平均 [0, 1]。"""

        def count_sim(x: int, y: int) -> float:
            m = max(x, y)
            return 1.0 - abs(x - y) / m if m else 1.0

        ar_a, ar_b = a.bounding_info.aspect_ratio, b.bounding_info.aspect_ratio
        m = max(ar_a, ar_b)
        aspect_sim = 1.0 - abs(ar_a - ar_b) / m if m > 0 else 1.0
        complexity_sim = 1.0 - abs(a.bounding_info.complexity - b.bounding_info.complexity)
        total = (
            count_sim(len(a.nodes), len(b.nodes))
            + count_sim(len(a.relationships), len(b.relationships))
            + aspect_sim
            + complexity_sim
        ) / 4.0
        return float(min(1.0, max(0.0, total)))

    # ── 内部 ───────────────────
    @staticmethod
    def _clean_node(node: TopologyNode, opts: CleaningOptions) -> TopologyNode:
        meta = NodeMetadata(
            importance=node.metadata.importance if opts.preserve_importance else None,
            curvature=node.metadata.curvature if opts.preserve_curvature else None,
        )
        return TopologyNode(
            id=node.id,
            type=node.type,
            relative_position=RelativePosition(
                float(node.relative_position.x_ratio), float(node.relative_position.y_ratio)
            ),
            connections=list(node.connections),
            metadata=meta,
        )

    @staticmethod
    def _clean_bounding_info(info: BoundingInfo, opts: CleaningOptions) -> BoundingInfo:
        sym = info.symmetry
        symmetry = (
            SymmetryInfo(
                has_vertical_symmetry=sym.has_vertical_symmetry,
                has_horizontal_symmetry=sym.has_horizontal_symmetry,
                has_rotational_symmetry=sym.has_rotational_symmetry,
                rotation_angle=sym.rotation_angle,
            )
            if opts.preserve_symmetry
            else SymmetryInfo()
        )
        return BoundingInfo(
            aspect_ratio=float(info.aspect_ratio),
            complexity=float(info.complexity),
            area=float(info.area),
            symmetry=symmetry,
        )

    @staticmethod
    def _stats(original: ShapeTopology, clean: CleanTopology, elapsed: float) -> CleaningStats:
        node_rate = _retention(len(clean.nodes), len(original.nodes))
        rel_rate = _retention(len(clean.relationships), len(original.relationships))
        return CleaningStats(
            original_node_count=len(original.nodes),
            cleaned_node_count=len(clean.nodes),
            original_relationship_count=len(original.relationships),
            cleaned_relationship_count=len(clean.relationships),
            processing_time=elapsed,
            integrity_score=(node_rate + rel_rate) / 2.0,
        )


__all__ = [
    "CleaningOptions",
    "CleaningStats",
    "CleaningResult",
    "IntegrityReport",
    "CoordinateCleaner",
]
