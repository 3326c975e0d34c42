"""
どこで: `topology.extractor`
何を: 順序付き点列（閉多角形）から `ShapeTopology` を抽出する `TopologyExtractor`。
なぜ: 形状の「構造」（相対配置・接続・記述子）をキャンバス解像度から切り離し、任意のキャンバスへ再適応できるようにするため。

処理の流れ:
1) 入力を `Outline` に正規化（空は `EmptyInputError`、非有限値は `InputValidationError`）。
2) バウンディングボックスを求め、各点を比率 [0, 1] へ正規化（幅/高さは ε 下限でガード）。
3) Numba カーネルで頂点ごとの重要度/曲率を計算し、ノード型を分類。
   - 曲率 > 0.8 かつ 重要度 > 0.7 → `anchor`
   - 曲率 > 0.3 → `control`
   - それ以外 → `vertex`
4) 隣接（前後 + 閉路の首尾）から接続と関係を生成。
5) 境界記述子（縦横比/複雑度/相対面積/対称性）を 1 度だけ計算。
6) 生成物を自己検証（不正なら `InvalidTopologyError`）。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

import numpy as np

from common.errors import InputValidationError
from common.types import CanvasLike, CanvasSize, PointsLike

from .kernels import (
    mirror_match_njit,
    rotation_match_njit,
    shoelace_area_njit,
    vertex_metrics_njit,
)
from .models import (
    TOPOLOGY_VERSION,
    BoundingInfo,
    NodeMetadata,
    NodeRelationship,
    NodeType,
    RelationshipType,
    RelativePosition,
    ShapeTopology,
    SymmetryInfo,
    TopologyNode,
)
from .outline import Outline
from .validation import ensure_valid_topology

logger = logging.getLogger(__name__)

_EPS = 1e-6
ANCHOR_CURVATURE = 0.8
ANCHOR_IMPORTANCE = 0.7
CONTROL_CURVATURE = 0.3
ROTATION_CANDIDATES: tuple[float, ...] = (math.pi / 2, math.pi / 3, math.pi / 4, math.pi / 6)


@dataclass(frozen=True)
class ExtractionOptions:
    """抽出オプション。

    Attributes
    ----------
    detect_curves : bool
        False の場合、全ノードを `vertex`、全関係を `edge` とする。
    importance_threshold : float
        `simplify_topology` 時に間引く `vertex` の重要度しきい値。
    symmetry_tolerance : float
        対称判定の許容誤差（バウンディングボックス長辺に対する比率）。
    simplify_topology : bool
        True の場合、重要度がしきい値未満の `vertex` を間引く（3 ノード未満にはしない）。
    """

    detect_curves: bool = True
    importance_threshold: float = 0.1
    symmetry_tolerance: float = 0.05
    simplify_topology: bool = False


DEFAULT_EXTRACTION_OPTIONS = ExtractionOptions()


def classify_node(curvature: float, importance: float, *, detect_curves: bool = True) -> NodeType:
    if not detect_curves:
        return "vertex"
    if curvature > ANCHOR_CURVATURE and importance > ANCHOR_IMPORTANCE:
        return "anchor"
    if curvature > CONTROL_CURVATURE:
        return "control"
    return "vertex"


def classify_relationship(a: NodeType, b: NodeType, *, detect_curves: bool = True) -> RelationshipType:
    if not detect_curves:
        return "edge"
    if a == "control" or b == "control":
        return "curve"
    if a == "anchor" and b == "anchor":
        return "constraint"
    return "edge"


def neighbor_ids(index: int, total: int) -> list[str]:
    """前後ノードと、3 ノード以上なら閉路の首尾を接続する。"""
    out: list[str] = []
    if index > 0:
        out.append(f"node_{index - 1}")
    if index < total - 1:
        out.append(f"node_{index + 1}")
    if total > 2:
        if index == 0:
            out.append(f"node_{total - 1}")
        if index == total - 1:
            out.append("node_0")
    return out


class TopologyExtractor:
    """点列 → `ShapeTopology` の抽出器（状態を持たない）。"""

    def __init__(self, options: ExtractionOptions | None = None) -> None:
        self.options = options or DEFAULT_EXTRACTION_OPTIONS

    def extract_topology(
        self,
        points: PointsLike | Outline,
        canvas_size: CanvasLike | None = None,
        options: ExtractionOptions | None = None,
        **overrides: object,
    ) -> ShapeTopology:
        """点列からトポロジを抽出する。

        Parameters
        ----------
        points : PointsLike | Outline
            閉多角形の頂点列（順序付き）。
        canvas_size : CanvasLike, optional
            元キャンバス寸法。トポロジ自体には含めない（検証とログのみ）。
        options : ExtractionOptions, optional
            抽出オプション。省略時はインスタンス既定。
        **overrides
            `options` の一部フィールドを上書き（例: `detect_curves=False`）。

        Returns
        -------
        ShapeTopology

        Raises
        ------
        EmptyInputError
            点列が空。
        InputValidationError
            点列/キャンバス寸法の形式不正、または非有限値。
        InvalidTopologyError
            生成結果が自己検証に失敗した場合。
        """
        opts = options or self.options
        if overrides:
            opts = replace(opts, **overrides)  # type: ignore[arg-type]
        if canvas_size is not None:
            canvas_size = CanvasSize.coerce(canvas_size)

        outline = points if isinstance(points, Outline) else Outline.from_points(points)
        pts = outline.as_array()
        min_x, min_y, max_x, max_y = outline.bounds()
        width = max_x - min_x
        height = max_y - min_y
        if not (math.isfinite(width) and math.isfinite(height)):
            # 有限な座標同士でも差がオーバーフローし得る
            raise InputValidationError("bounding box is not finite")

        importance, curvature, total_turning, perimeter = vertex_metrics_njit(pts)

        keep = self._select_indices(importance, curvature, opts)
        kept_pts = np.ascontiguousarray(pts[keep])
        kept_imp = importance[keep]
        kept_curv = curvature[keep]

        nodes = self._build_nodes(kept_pts, kept_imp, kept_curv, (min_x, min_y, width, height), opts)
        relationships = self._build_relationships(nodes, opts)
        bounding = self._analyze_bounding_info(
            pts, (min_x, min_y, max_x, max_y), total_turning, perimeter, opts
        )

        topology = ShapeTopology(
            nodes=nodes,
            relationships=relationships,
            bounding_info=bounding,
            version=TOPOLOGY_VERSION,
        )
        ensure_valid_topology(topology)
        logger.debug(
            "extracted topology: nodes=%d rels=%d aspect=%.3f complexity=%.3f canvas=%s",
            len(nodes),
            len(relationships),
            bounding.aspect_ratio,
            bounding.complexity,
            canvas_size,
        )
        return topology

    # ── ノード/関係 ───────────────────
    @staticmethod
    def _select_indices(
        importance: np.ndarray, curvature: np.ndarray, opts: ExtractionOptions
    ) -> np.ndarray:
        n = importance.shape[0]
        all_idx = np.arange(n)
        if not opts.simplify_topology or n <= 3:
            return all_idx
        types = [
            classify_node(float(c), float(i), detect_curves=opts.detect_curves)
            for c, i in zip(curvature, importance)
        ]
        drop = np.array(
            [t == "vertex" and importance[k] < opts.importance_threshold for k, t in enumerate(types)]
        )
        keep = all_idx[~drop]
        if keep.shape[0] < 3:
            # 重要度の高い順に 3 点を確保し、元の順序を保つ
            top = np.sort(np.argsort(-importance, kind="stable")[:3])
            return top
        return keep

    @staticmethod
    def _build_nodes(
        pts: np.ndarray,
        importance: np.ndarray,
        curvature: np.ndarray,
        box: tuple[float, float, float, float],
        opts: ExtractionOptions,
    ) -> list[TopologyNode]:
        min_x, min_y, width, height = box
        w = max(width, _EPS)
        h = max(height, _EPS)
        ratios = np.clip((pts - np.array([min_x, min_y])) / np.array([w, h]), 0.0, 1.0)
        total = pts.shape[0]
        nodes: list[TopologyNode] = []
        for i in range(total):
            imp = float(importance[i])
            curv = float(curvature[i])
            nodes.append(
                TopologyNode(
                    id=f"node_{i}",
                    type=classify_node(curv, imp, detect_curves=opts.detect_curves),
                    relative_position=RelativePosition(float(ratios[i, 0]), float(ratios[i, 1])),
                    connections=neighbor_ids(i, total),
                    metadata=NodeMetadata(importance=imp, curvature=curv),
                )
            )
        return nodes

    @staticmethod
    def _build_relationships(
        nodes: list[TopologyNode], opts: ExtractionOptions
    ) -> list[NodeRelationship]:
        by_id = {n.id: n for n in nodes}
        seen: set[frozenset[str]] = set()
        rels: list[NodeRelationship] = []
        for node in nodes:
            for other_id in node.connections:
                key = frozenset((node.id, other_id))
                if key in seen:
                    continue
                seen.add(key)
                other = by_id[other_id]
                a_imp = node.metadata.importance if node.metadata.importance is not None else 0.5
                b_imp = other.metadata.importance if other.metadata.importance is not None else 0.5
                rels.append(
                    NodeRelationship(
                        from_node_id=node.id,
                        to_node_id=other_id,
                        type=classify_relationship(
                            node.type, other.type, detect_curves=opts.detect_curves
                        ),
                        strength=(a_imp + b_imp) / 2.0,
                    )
                )
        return rels

    # ── 記述子 ───────────────────
    def _analyze_bounding_info(
        self,
        pts: np.ndarray,
        bounds: tuple[float, float, float, float],
        total_turning: float,
        perimeter: float,
        opts: ExtractionOptions,
    ) -> BoundingInfo:
        min_x, min_y, max_x, max_y = bounds
        width = max_x - min_x
        height = max_y - min_y
        n = pts.shape[0]

        aspect = width / height if height > 0 else 1.0
        if not aspect > 0:
            # 幅 0（垂直線分）は縦横比が 0 になるため ε で下限を取る
            aspect = _EPS

        if n < 3:
            complexity = 0.0
        else:
            complexity = min(
                1.0,
                (total_turning / (2 * math.pi) + min(1.0, perimeter / 1000.0) + min(1.0, n / 50.0))
                / 3.0,
            )

        box_area = width * height
        area = min(1.0, shoelace_area_njit(pts) / box_area) if box_area > 0 else 0.0

        return BoundingInfo(
            aspect_ratio=float(aspect),
            complexity=float(complexity),
            area=float(area),
            symmetry=self._analyze_symmetry(pts, bounds, opts),
        )

    @staticmethod
    def _analyze_symmetry(
        pts: np.ndarray, bounds: tuple[float, float, float, float], opts: ExtractionOptions
    ) -> SymmetryInfo:
        min_x, min_y, max_x, max_y = bounds
        cx = (min_x + max_x) / 2.0
        cy = (min_y + max_y) / 2.0
        tol = max(max_x - min_x, max_y - min_y) * opts.symmetry_tolerance
        if tol <= 0:
            # 単一点/完全縮退は判定不能として非対称扱い
            return SymmetryInfo()

        vertical = bool(mirror_match_njit(pts, cx, cy, 0, tol))
        horizontal = bool(mirror_match_njit(pts, cx, cy, 1, tol))
        angle: float | None = None
        for cand in ROTATION_CANDIDATES:
            if rotation_match_njit(pts, cx, cy, cand, tol):
                angle = cand
                break
        return SymmetryInfo(
            has_vertical_symmetry=vertical,
            has_horizontal_symmetry=horizontal,
            has_rotational_symmetry=angle is not None,
            rotation_angle=angle,
        )


def extract_topology(
    points: PointsLike, canvas_size: CanvasLike | None = None, **options: object
) -> ShapeTopology:
    """既定オプションの `TopologyExtractor` で抽出する簡易関数。"""
    return TopologyExtractor().extract_topology(points, canvas_size, **options)


__all__ = [
    "ExtractionOptions",
    "DEFAULT_EXTRACTION_OPTIONS",
    "TopologyExtractor",
    "classify_node",
    "classify_relationship",
    "neighbor_ids",
    "extract_topology",
]
