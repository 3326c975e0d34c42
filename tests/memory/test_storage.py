from __future__ import annotations

import pytest

from memory.models import ShapeMetadata
from memory.storage import MemoryStorage, validate_memory_integrity
from topology.extractor import extract_topology
from topology.models import ShapeTopology

# What this tests
# - 保存/取得/削除とアクセス統計
# - 容量上限と LRU-by-access 退避（作成順ではない）
# - チェックサム改変の自己修復（取得時に削除して None）
# - 不正トポロジ/キャンバスの拒否、整合性検査オフ時の挙動
# - スナップショット/エクスポート/インポート/統計


def test_store_retrieve_and_access_counts(storage, square_pts) -> None:
    topo = extract_topology(square_pts)
    assert storage.store("sq", topo, (400, 400))
    assert "sq" in storage
    assert storage.get_memory_status("sq").access_count == 0

    memory = storage.retrieve("sq")
    assert memory is not None
    assert memory.base_canvas_size.width == 400
    assert memory.checksum
    storage.retrieve("sq")
    status = storage.get_memory_status("sq")
    assert status.access_count == 2
    assert status.is_valid and status.integrity_score == 1.0
    assert storage.retrieve("missing") is None


def test_status_does_not_touch_access(storage, square_pts) -> None:
    storage.store("sq", extract_topology(square_pts), (400, 400))
    storage.get_memory_status("sq")
    storage.get_memory_status("sq")
    assert storage.get_memory_status("sq").access_count == 0
    assert storage.get_memory_status("nope") is None


def test_capacity_invariant(square_pts) -> None:
    storage = MemoryStorage(max_memories=5)
    topo = extract_topology(square_pts)
    for i in range(8):
        assert storage.store(f"m{i}", topo, (100, 100))
    assert len(storage.list_all()) == 5
    assert storage.get_storage_stats()["evictions"] == 3


def test_eviction_is_by_last_access_not_creation(square_pts) -> None:
    storage = MemoryStorage(max_memories=3)
    topo = extract_topology(square_pts)
    for sid in ("a", "b", "c"):
        storage.store(sid, topo, (100, 100))
    # 最古の作成 "a" を読むと、未読の "b" が最も古いアクセスになる
    assert storage.retrieve("a") is not None
    storage.store("d", topo, (100, 100))
    assert "b" not in storage
    assert {m.id for m in storage.list_all()} == {"a", "c", "d"}


def test_overwrite_existing_id_does_not_evict(square_pts, triangle_pts) -> None:
    storage = MemoryStorage(max_memories=2)
    storage.store("a", extract_topology(square_pts), (100, 100))
    storage.store("b", extract_topology(square_pts), (100, 100))
    storage.retrieve("a")
    assert storage.store("a", extract_topology(triangle_pts), (100, 100))
    assert len(storage) == 2
    assert len(storage.retrieve("a").topology.nodes) == 3
    # 上書きでアクセス統計はリセット（今の retrieve で 1）
    assert storage.get_memory_status("a").access_count == 1


def test_tampered_topology_is_dropped_on_retrieve(storage, square_pts) -> None:
    storage.store("sq", extract_topology(square_pts), (400, 400))
    stored = storage.list_all()[0]
    stored.topology.nodes[0].relative_position.x_ratio = 0.42
    status = storage.get_memory_status("sq")
    assert not status.is_valid and "checksum mismatch" in status.errors
    assert storage.retrieve("sq") is None
    assert "sq" not in storage


def test_integrity_check_disabled_skips_checksum_only(square_pts) -> None:
    storage = MemoryStorage(max_memories=3, enable_integrity_check=False)
    storage.store("sq", extract_topology(square_pts), (400, 400))
    storage.list_all()[0].topology.nodes[0].relative_position.x_ratio = 0.42
    assert storage.retrieve("sq") is not None

    broken = extract_topology(square_pts)
    broken.nodes[0].relative_position.x_ratio = 2.0
    assert not storage.store("bad", broken, (400, 400))


def test_store_rejects_invalid_inputs(storage, square_pts) -> None:
    topo = extract_topology(square_pts)
    empty = ShapeTopology(nodes=[], relationships=[], bounding_info=topo.bounding_info)
    assert not storage.store("empty", empty, (100, 100))
    assert not storage.store("canvas", topo, ("wide", 100))
    assert len(storage) == 0


def test_validate_memory_integrity_reports_checksum(storage, square_pts) -> None:
    storage.store("sq", extract_topology(square_pts), (400, 400))
    memory = storage.list_all()[0]
    assert validate_memory_integrity(memory) == []
    memory.checksum = "deadbeef"
    assert validate_memory_integrity(memory) == ["checksum mismatch"]
    assert validate_memory_integrity(memory, check_checksum=False) == []


def test_clear_and_clear_all(storage, square_pts) -> None:
    topo = extract_topology(square_pts)
    storage.store("a", topo, (100, 100))
    storage.store("b", topo, (100, 100))
    assert storage.clear("a")
    assert not storage.clear("a")
    assert storage.clear_all() == 1
    assert storage.list_all() == []


def test_metadata_is_kept(storage, square_pts) -> None:
    meta = ShapeMetadata(category="curve", tags=["puzzle"], source="generated", name="sq")
    storage.store("sq", extract_topology(square_pts), (400, 400), meta)
    memory = storage.retrieve("sq")
    assert memory.metadata.tags == ["puzzle"]
    assert memory.metadata.last_modified >= memory.metadata.created_at


def test_store_keeps_its_own_copies(storage, square_pts) -> None:
    topo = extract_topology(square_pts)
    meta = ShapeMetadata(tags=["a"], created_at=1.0, last_modified=1.0)
    assert storage.store("sq", topo, (400, 400), meta)
    assert meta.last_modified == 1.0

    topo.nodes[0].relative_position.x_ratio = 0.42
    meta.tags.append("b")
    memory = storage.retrieve("sq")
    assert memory is not None
    assert memory.topology is not topo
    assert memory.topology.nodes[0].relative_position.x_ratio != 0.42
    assert memory.metadata.tags == ["a"]
    assert memory.metadata.created_at == 1.0


def test_snapshot(storage, square_pts) -> None:
    storage.store("sq", extract_topology(square_pts), (400, 400))
    snap = storage.create_snapshot("sq", ["h1"])
    assert snap.memory.id == "sq"
    assert snap.status.memory_id == "sq"
    assert snap.related_adaptations == ["h1"]
    assert storage.create_snapshot("nope") is None


def test_export_import_respects_capacity_and_skips_invalid(square_pts) -> None:
    src = MemoryStorage(max_memories=10)
    topo = extract_topology(square_pts)
    for i in range(4):
        src.store(f"m{i}", topo, (100, 100))
    export = src.export_memories("test")
    assert export.metadata.total_memories == 4
    assert export.metadata.export_reason == "test"

    export.memories[0].checksum = "bogus"
    dst = MemoryStorage(max_memories=2)
    assert dst.import_memories(export) == 3
    assert len(dst) == 2


def test_storage_stats(storage, square_pts) -> None:
    assert storage.get_storage_stats()["oldest_access"] is None
    storage.store("a", extract_topology(square_pts), (100, 100))
    storage.retrieve("a")
    stats = storage.get_storage_stats()
    assert stats["total_memories"] == 1
    assert stats["max_capacity"] == 10
    assert stats["utilization_rate"] == pytest.approx(0.1)
    assert stats["total_accesses"] == 1
