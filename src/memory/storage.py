"""
どこで: `memory.storage`
何を: 容量上限付きの `ShapeMemory` 保存層 `MemoryStorage`（アクセス統計・整合性検査・退避・入出力）。
なぜ: 形状の記憶を ID で引ける「ベストエフォートのキャッシュ」として扱い、破損は自己修復（破棄）するため。

方針:
- 容量超過時（新規 ID のみ）は「最終アクセスが最も古い」エントリを退避する（LRU-by-access）。
  作成直後で一度も読まれていないエントリも、他が最近読まれていれば先に退避され得る。
- `retrieve` はアクセス記録を更新してから再検証し、チェックサム不一致/構造不正なら削除して None を返す。
- マップ操作は `RLock` で直列化する（定期クリーンアップスレッドと並行アクセスするため）。

補足:
- マネージャ側の期限/作成時刻ベースの掃除は別ポリシー（`api.manager.MemoryManager.perform_cleanup`）。
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import replace
from threading import RLock
from typing import Iterable

from common import settings as settings_mod
from common.types import CanvasLike, CanvasSize
from topology.checksum import generate_checksum, verify_checksum
from topology.models import ShapeTopology
from topology.validation import collect_topology_issues

from .models import (
    EXPORT_VERSION,
    ExportMetadata,
    MemoryExport,
    MemorySnapshot,
    MemoryStatus,
    ShapeMemory,
    ShapeMetadata,
)

logger = logging.getLogger(__name__)


def validate_memory_integrity(memory: ShapeMemory, *, check_checksum: bool = True) -> list[str]:
    """メモリ 1 件の整合性問題を列挙する（空なら妥当）。"""
    issues: list[str] = []
    if not memory.id:
        issues.append("memory without id")
    if memory.base_canvas_size is None:
        issues.append("missing base canvas size")
    if memory.topology is None:
        return issues + ["missing topology"]
    issues.extend(collect_topology_issues(memory.topology))
    if check_checksum and not verify_checksum(memory.topology, memory.checksum):
        issues.append("checksum mismatch")
    return issues


class MemoryStorage:
    """容量上限付きのメモリ保存層。

    Parameters
    ----------
    max_memories : int, optional
        保存上限（既定は設定 `SHM_MAX_MEMORIES`）。
    enable_integrity_check : bool, optional
        チェックサム検証を行うか（既定は設定 `SHM_INTEGRITY_CHECK`）。
        無効時も `store` での構造検査は行う。
    """

    def __init__(
        self,
        max_memories: int | None = None,
        enable_integrity_check: bool | None = None,
    ) -> None:
        s = settings_mod.get()
        self.max_memories = max(1, int(max_memories if max_memories is not None else s.MAX_MEMORIES))
        self.enable_integrity_check = (
            bool(enable_integrity_check)
            if enable_integrity_check is not None
            else s.INTEGRITY_CHECK
        )
        self._memories: dict[str, ShapeMemory] = {}
        self._access_counts: dict[str, int] = {}
        self._last_accessed: dict[str, float] = {}
        # 退避順はアクセス順の単調カウンタで決める（`_last_accessed` は報告用）
        self._access_order: dict[str, int] = {}
        self._clock = itertools.count()
        self._lock = RLock()
        self.evictions = 0

    # ── 基本操作 ───────────────────
    def store(
        self,
        shape_id: str,
        topology: ShapeTopology,
        base_canvas: CanvasLike,
        metadata: ShapeMetadata | None = None,
    ) -> bool:
        """トポロジを保存する。妥当でなければ保存せず False。

        既存 ID は上書き（アクセス統計はリセット）。新規 ID で満杯なら LRU-by-access で 1 件退避。
        トポロジとメタデータはコピーして保持する（呼び出し側の後続変更は保存内容に影響しない）。
        """
        try:
            canvas = CanvasSize.coerce(base_canvas)
        except ValueError as e:
            logger.warning("store rejected %s: %s", shape_id, e)
            return False
        now = time.time()
        if metadata is None:
            meta = ShapeMetadata(created_at=now, last_modified=now)
        else:
            meta = replace(metadata, tags=list(metadata.tags), last_modified=now)
        topology = topology.copy()
        memory = ShapeMemory(
            id=shape_id,
            topology=topology,
            base_canvas_size=canvas,
            metadata=meta,
            timestamp=now,
            checksum=generate_checksum(topology),
        )
        issues = validate_memory_integrity(memory, check_checksum=self.enable_integrity_check)
        if issues:
            logger.warning("store rejected %s: %s", shape_id, "; ".join(issues))
            return False
        with self._lock:
            self._insert(memory)
        logger.debug("stored memory %s (nodes=%d)", shape_id, len(topology.nodes))
        return True

    def retrieve(self, shape_id: str) -> ShapeMemory | None:
        """取得してアクセス記録を更新する。検証に失敗したエントリは削除して None。"""
        with self._lock:
            memory = self._memories.get(shape_id)
            if memory is None:
                return None
            self._touch(shape_id)
            issues = validate_memory_integrity(memory, check_checksum=self.enable_integrity_check)
            if issues:
                logger.warning(
                    "memory %s failed integrity check, dropping: %s", shape_id, "; ".join(issues)
                )
                self._remove(shape_id)
                return None
            return memory

    def contains(self, shape_id: str) -> bool:
        with self._lock:
            return shape_id in self._memories

    __contains__ = contains

    def clear(self, shape_id: str) -> bool:
        """1 件削除。存在したかどうかを返す。"""
        with self._lock:
            return self._remove(shape_id)

    def list_all(self) -> list[ShapeMemory]:
        with self._lock:
            return list(self._memories.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._memories)

    def get_memory_status(self, shape_id: str) -> MemoryStatus | None:
        """アクセス記録を変えずに状態を返す（未保存は None）。"""
        with self._lock:
            memory = self._memories.get(shape_id)
            if memory is None:
                return None
            errors: list[str] = []
            score = 1.0
            if self.enable_integrity_check:
                issues = validate_memory_integrity(memory)
                if issues:
                    errors.extend(issues)
                    score = 0.0
            if not memory.topology.nodes:
                if "topology has no nodes" not in errors:
                    errors.append("topology has no nodes")
                score *= 0.5
            return MemoryStatus(
                memory_id=shape_id,
                is_valid=not errors,
                last_accessed=self._last_accessed.get(shape_id, 0.0),
                access_count=self._access_counts.get(shape_id, 0),
                integrity_score=score,
                errors=errors,
            )

    def create_snapshot(
        self, shape_id: str, related_adaptations: Iterable | None = None
    ) -> MemorySnapshot | None:
        with self._lock:
            memory = self._memories.get(shape_id)
            status = self.get_memory_status(shape_id)
        if memory is None or status is None:
            return None
        return MemorySnapshot(
            memory=memory,
            status=status,
            related_adaptations=list(related_adaptations or []),
            captured_at=time.time(),
        )

    # ── 入出力 ───────────────────
    def export_memories(self, reason: str = "manual_export") -> MemoryExport:
        memories = self.list_all()
        return MemoryExport(
            version=EXPORT_VERSION,
            exported_at=time.time(),
            memories=memories,
            adaptation_history=[],
            metadata=ExportMetadata(
                total_memories=len(memories), total_adaptations=0, export_reason=reason
            ),
        )

    def import_memories(self, export: MemoryExport) -> int:
        """エクスポートから取り込み、受理した件数を返す（不正/不一致は警告してスキップ）。"""
        imported = 0
        for memory in export.memories:
            issues = validate_memory_integrity(memory, check_checksum=self.enable_integrity_check)
            if issues:
                logger.warning("skipping import of %s: %s", memory.id, "; ".join(issues))
                continue
            with self._lock:
                self._insert(memory)
            imported += 1
        logger.info("imported %d/%d memories", imported, len(export.memories))
        return imported

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._memories)
            self._memories.clear()
            self._access_counts.clear()
            self._last_accessed.clear()
            self._access_order.clear()
        logger.info("cleared %d memories", count)
        return count

    def get_storage_stats(self) -> dict[str, float | int | None]:
        with self._lock:
            accessed = list(self._last_accessed.values())
            total = len(self._memories)
            return {
                "total_memories": total,
                "max_capacity": self.max_memories,
                "utilization_rate": total / self.max_memories,
                "oldest_access": min(accessed) if accessed else None,
                "newest_access": max(accessed) if accessed else None,
                "total_accesses": sum(self._access_counts.values()),
                "evictions": self.evictions,
            }

    # ── 内部 ───────────────────
    def _insert(self, memory: ShapeMemory) -> None:
        if memory.id not in self._memories and len(self._memories) >= self.max_memories:
            self._evict_least_recently_accessed()
        self._memories[memory.id] = memory
        self._access_counts[memory.id] = 0
        self._touch(memory.id, count=False)

    def _touch(self, shape_id: str, *, count: bool = True) -> None:
        if count:
            self._access_counts[shape_id] = self._access_counts.get(shape_id, 0) + 1
        self._last_accessed[shape_id] = time.time()
        self._access_order[shape_id] = next(self._clock)

    def _remove(self, shape_id: str) -> bool:
        existed = self._memories.pop(shape_id, None) is not None
        self._access_counts.pop(shape_id, None)
        self._last_accessed.pop(shape_id, None)
        self._access_order.pop(shape_id, None)
        return existed

    def _evict_least_recently_accessed(self) -> None:
        if not self._memories:
            return
        victim = min(self._memories, key=lambda k: self._access_order.get(k, -1))
        self._remove(victim)
        self.evictions += 1
        logger.info("capacity %d reached, evicted %s", self.max_memories, victim)


__all__ = ["MemoryStorage", "validate_memory_integrity"]
