"""
どこで: `topology` パッケージ。
何を: 点列からサイズ非依存のトポロジを抽出し、検証/チェックサム/射影を提供する。
なぜ: 形状の構造（相対配置・接続・記述子）を表示座標から分離する唯一の場所とするため。
"""

from .checksum import generate_checksum, verify_checksum
from .extractor import ExtractionOptions, TopologyExtractor, extract_topology
from .models import (
    BoundingInfo,
    CleanTopology,
    NodeMetadata,
    NodeRelationship,
    RelativePosition,
    ShapeTopology,
    SymmetryInfo,
    TopologyNode,
)
from .outline import Outline
from .projection import topology_to_points
from .validation import collect_topology_issues, ensure_valid_topology, is_valid_topology

__all__ = [
    "BoundingInfo",
    "CleanTopology",
    "ExtractionOptions",
    "NodeMetadata",
    "NodeRelationship",
    "Outline",
    "RelativePosition",
    "ShapeTopology",
    "SymmetryInfo",
    "TopologyExtractor",
    "TopologyNode",
    "collect_topology_issues",
    "ensure_valid_topology",
    "extract_topology",
    "generate_checksum",
    "is_valid_topology",
    "topology_to_points",
    "verify_checksum",
]
