"""
どこで: `memory.models`
何を: 保存単位 `ShapeMemory` と、その状態/スナップショット/一括エクスポートのレコード型。
なぜ: 保存層・マネージャ・永続化ヘルパが同じ型で受け渡し、dict 直列化を 1 箇所で定義するため。

所有関係:
- `ShapeMemory` は `MemoryStorage` が排他的に所有する。生成後に変わるのは
  `metadata.last_modified` とアクセス記録（保存層側で保持）だけ。
- `MemorySnapshot` / `MemoryStatus` は観測用の値であり、保存層の状態を変更しない。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from adaptation.models import AdaptationHistory
from common.types import CanvasSize
from topology.models import ShapeTopology

ShapeCategory = Literal["polygon", "curve", "complex"]
ShapeSource = Literal["generated", "imported", "user_created"]

EXPORT_VERSION = "1.0.0"


@dataclass
class ShapeMetadata:
    category: ShapeCategory = "polygon"
    tags: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)
    source: ShapeSource = "user_created"
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "tags": list(self.tags),
            "created_at": self.created_at,
            "last_modified": self.last_modified,
            "source": self.source,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShapeMetadata":
        now = time.time()
        return cls(
            category=data.get("category", "polygon"),
            tags=[str(t) for t in data.get("tags", [])],
            created_at=float(data.get("created_at", now)),
            last_modified=float(data.get("last_modified", now)),
            source=data.get("source", "user_created"),
            name=data.get("name"),
        )


@dataclass
class ShapeMemory:
    id: str
    topology: ShapeTopology
    base_canvas_size: CanvasSize
    metadata: ShapeMetadata
    timestamp: float
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topology": self.topology.to_dict(),
            "base_canvas_size": self.base_canvas_size.to_dict(),
            "metadata": self.metadata.to_dict(),
            "timestamp": self.timestamp,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShapeMemory":
        return cls(
            id=str(data["id"]),
            topology=ShapeTopology.from_dict(data["topology"]),
            base_canvas_size=CanvasSize.coerce(data["base_canvas_size"]),
            metadata=ShapeMetadata.from_dict(data.get("metadata") or {}),
            timestamp=float(data["timestamp"]),
            checksum=str(data["checksum"]),
        )


@dataclass
class MemoryStatus:
    memory_id: str
    is_valid: bool
    last_accessed: float
    access_count: int
    integrity_score: float
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "is_valid": self.is_valid,
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
            "integrity_score": self.integrity_score,
            "errors": list(self.errors),
        }


@dataclass
class MemorySnapshot:
    memory: ShapeMemory
    status: MemoryStatus
    related_adaptations: list[AdaptationHistory] = field(default_factory=list)
    captured_at: float = field(default_factory=time.time)


@dataclass
class ExportMetadata:
    total_memories: int
    total_adaptations: int
    export_reason: str


@dataclass
class MemoryExport:
    """保存内容の一括交換形式（論理形のみ。JSON は `memory.persistence` の一実装）。"""

    version: str
    exported_at: float
    memories: list[ShapeMemory]
    adaptation_history: list[AdaptationHistory]
    metadata: ExportMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exported_at": self.exported_at,
            "memories": [m.to_dict() for m in self.memories],
            "adaptation_history": [h.to_dict() for h in self.adaptation_history],
            "metadata": {
                "total_memories": self.metadata.total_memories,
                "total_adaptations": self.metadata.total_adaptations,
                "export_reason": self.metadata.export_reason,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MemoryExport":
        meta = data.get("metadata") or {}
        memories = [ShapeMemory.from_dict(m) for m in data.get("memories", [])]
        history = [AdaptationHistory.from_dict(h) for h in data.get("adaptation_history", [])]
        return cls(
            version=str(data.get("version", EXPORT_VERSION)),
            exported_at=float(data.get("exported_at", time.time())),
            memories=memories,
            adaptation_history=history,
            metadata=ExportMetadata(
                total_memories=int(meta.get("total_memories", len(memories))),
                total_adaptations=int(meta.get("total_adaptations", len(history))),
                export_reason=str(meta.get("export_reason", "manual_export")),
            ),
        )


__all__ = [
    "ShapeCategory",
    "ShapeSource",
    "EXPORT_VERSION",
    "ShapeMetadata",
    "ShapeMemory",
    "MemoryStatus",
    "MemorySnapshot",
    "ExportMetadata",
    "MemoryExport",
]
