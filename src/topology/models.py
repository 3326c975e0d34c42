"""
どこで: `topology.models`
何を: サイズ非依存のトポロジ表現（ノード/関係/境界記述子）と、その dict 直列化。
なぜ: 形状を「どのキャンバスにも属さない比率と構造」で保持し、保存・適応・エクスポートで同じ型を共有するため。

データモデル（不変条件）:
- `RelativePosition.x_ratio/y_ratio` は形状自身のバウンディングボックスに対する比率で [0, 1]。
- `TopologyNode.connections` の各 ID は同じトポロジ内のノード ID を参照する。
- `NodeRelationship` の両端は同じトポロジ内のノード。
- `BoundingInfo` は尺度を持たない記述子のみ（aspect_ratio > 0, complexity/area ∈ [0, 1]）。

補足:
- dict 表現のキーは snake_case。`from_dict` は `to_dict` の逆変換のみを保証する。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

NodeType = Literal["vertex", "control", "anchor"]
RelationshipType = Literal["edge", "curve", "constraint"]

NODE_TYPES: tuple[str, ...] = ("vertex", "control", "anchor")
RELATIONSHIP_TYPES: tuple[str, ...] = ("edge", "curve", "constraint")
TOPOLOGY_VERSION = "1.0.0"


@dataclass
class RelativePosition:
    x_ratio: float
    y_ratio: float

    def in_unit_range(self) -> bool:
        return 0.0 <= self.x_ratio <= 1.0 and 0.0 <= self.y_ratio <= 1.0


@dataclass
class NodeMetadata:
    """ノード付随情報。クリーナのオプションで個別に落とされ得るため None を許容。"""

    importance: float | None = None
    curvature: float | None = None


@dataclass
class TopologyNode:
    id: str
    type: NodeType
    relative_position: RelativePosition
    connections: list[str] = field(default_factory=list)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "relative_position": {
                "x_ratio": float(self.relative_position.x_ratio),
                "y_ratio": float(self.relative_position.y_ratio),
            },
            "connections": list(self.connections),
            "metadata": {
                "importance": self.metadata.importance,
                "curvature": self.metadata.curvature,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopologyNode":
        pos = data["relative_position"]
        meta = data.get("metadata") or {}
        return cls(
            id=str(data["id"]),
            type=data["type"],
            relative_position=RelativePosition(float(pos["x_ratio"]), float(pos["y_ratio"])),
            connections=[str(c) for c in data.get("connections", [])],
            metadata=NodeMetadata(
                importance=meta.get("importance"), curvature=meta.get("curvature")
            ),
        )


@dataclass
class NodeRelationship:
    from_node_id: str
    to_node_id: str
    type: RelationshipType
    strength: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_node_id": self.from_node_id,
            "to_node_id": self.to_node_id,
            "type": self.type,
            "strength": float(self.strength),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeRelationship":
        return cls(
            from_node_id=str(data["from_node_id"]),
            to_node_id=str(data["to_node_id"]),
            type=data["type"],
            strength=float(data["strength"]),
        )


@dataclass
class SymmetryInfo:
    has_vertical_symmetry: bool = False
    has_horizontal_symmetry: bool = False
    has_rotational_symmetry: bool = False
    rotation_angle: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_vertical_symmetry": self.has_vertical_symmetry,
            "has_horizontal_symmetry": self.has_horizontal_symmetry,
            "has_rotational_symmetry": self.has_rotational_symmetry,
            "rotation_angle": self.rotation_angle,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SymmetryInfo":
        angle = data.get("rotation_angle")
        return cls(
            has_vertical_symmetry=bool(data.get("has_vertical_symmetry", False)),
            has_horizontal_symmetry=bool(data.get("has_horizontal_symmetry", False)),
            has_rotational_symmetry=bool(data.get("has_rotational_symmetry", False)),
            rotation_angle=None if angle is None else float(angle),
        )


@dataclass
class BoundingInfo:
    aspect_ratio: float
    complexity: float
    area: float
    symmetry: SymmetryInfo = field(default_factory=SymmetryInfo)

    def to_dict(self) -> dict[str, Any]:
        return {
            "aspect_ratio": float(self.aspect_ratio),
            "complexity": float(self.complexity),
            "area": float(self.area),
            "symmetry": self.symmetry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BoundingInfo":
        return cls(
            aspect_ratio=float(data["aspect_ratio"]),
            complexity=float(data["complexity"]),
            area=float(data["area"]),
            symmetry=SymmetryInfo.from_dict(data.get("symmetry") or {}),
        )


@dataclass
class ShapeTopology:
    """形状の「記憶」本体（サイズ非依存）。"""

    nodes: list[TopologyNode]
    relationships: list[NodeRelationship]
    bounding_info: BoundingInfo
    version: str = TOPOLOGY_VERSION

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def copy(self) -> "ShapeTopology":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "relationships": [r.to_dict() for r in self.relationships],
            "bounding_info": self.bounding_info.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShapeTopology":
        return cls(
            nodes=[TopologyNode.from_dict(n) for n in data.get("nodes", [])],
            relationships=[NodeRelationship.from_dict(r) for r in data.get("relationships", [])],
            bounding_info=BoundingInfo.from_dict(data["bounding_info"]),
            version=str(data.get("version", TOPOLOGY_VERSION)),
        )


@dataclass
class CleanTopology:
    """適応直前の一時ビュー。永続化しない（適応ごとに新規生成）。"""

    nodes: list[TopologyNode]
    relationships: list[NodeRelationship]
    bounding_info: BoundingInfo
    original_memory_id: str

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    @classmethod
    def empty(cls, memory_id: str) -> "CleanTopology":
        return cls(
            nodes=[],
            relationships=[],
            bounding_info=BoundingInfo(aspect_ratio=1.0, complexity=0.0, area=0.0),
            original_memory_id=memory_id,
        )


__all__ = [
    "NodeType",
    "RelationshipType",
    "NODE_TYPES",
    "RELATIONSHIP_TYPES",
    "TOPOLOGY_VERSION",
    "RelativePosition",
    "NodeMetadata",
    "TopologyNode",
    "NodeRelationship",
    "SymmetryInfo",
    "BoundingInfo",
    "ShapeTopology",
    "CleanTopology",
]
