from __future__ import annotations

import threading
from collections import defaultdict

import numpy as np
import pytest

from api.events import MemoryEvent
from api.manager import MemoryManager, MemoryManagerConfig, new_memory_id
from common.errors import (
    AdaptationError,
    AdaptationErrorType,
    EmptyInputError,
    InputValidationError,
)

# What this tests
# - 作成/更新/削除/適応のイベントとペイロード
# - 入力エラーは error_occurred を出して元の例外を再送出
# - 性能指標（成功率/ヒット率/平均時間）
# - クリーンアップ（期限切れ→上限超過）と定期実行、破棄後の操作拒否
# - 構成ファイル/エクスポートの入出力


@pytest.fixture()
def recorder(manager):
    seen: dict[str, list] = defaultdict(list)
    for event in MemoryEvent:
        manager.subscribe(event, lambda p, e=event: seen[e.value].append(p))
    return seen


def test_create_emits_created_then_updated(manager, recorder, square_pts, triangle_pts) -> None:
    sid = manager.create_shape_memory(square_pts, (400, 400), shape_id="sq")
    assert sid == "sq"
    manager.create_shape_memory(triangle_pts, (400, 400), shape_id="sq")
    assert [p["memory_id"] for p in recorder["memory_created"]] == ["sq"]
    assert [p["memory_id"] for p in recorder["memory_updated"]] == ["sq"]
    payload = recorder["memory_created"][0]
    assert len(payload["topology"].nodes) == 4
    assert payload["canvas_size"].width == 400
    assert manager.get_performance_metrics().total_memories == 1
    assert manager.get_all_memory_ids() == ["sq"]


def test_generated_ids_are_unique(manager, square_pts) -> None:
    a = manager.create_shape_memory(square_pts, (400, 400))
    b = manager.create_shape_memory(square_pts, (400, 400))
    assert a != b and a.startswith("memory_")
    assert new_memory_id().count("_") == 2


def test_create_with_metadata_mapping(manager, square_pts) -> None:
    sid = manager.create_shape_memory(
        square_pts, (400, 400), metadata={"tags": ["piece"], "source": "generated"}
    )
    memory = manager.storage.retrieve(sid)
    assert memory.metadata.tags == ["piece"]
    assert memory.metadata.source == "generated"


def test_create_errors_are_reported_and_reraised(manager, recorder, square_pts) -> None:
    with pytest.raises(EmptyInputError):
        manager.create_shape_memory([], (400, 400))
    with pytest.raises(InputValidationError):
        manager.create_shape_memory(square_pts, (0, 100))
    ops = [p["operation"] for p in recorder["error_occurred"]]
    assert ops == ["create_shape_memory", "create_shape_memory"]
    assert manager.get_all_memory_ids() == []
    assert recorder["memory_created"] == []


def test_adapt_emits_started_and_completed(manager, recorder, square_pts) -> None:
    sid = manager.create_shape_memory(square_pts, (400, 400))
    adapted = manager.adapt_shape_to_canvas(sid, (800, 600))
    assert adapted.points.shape == (4, 2)
    assert recorder["adaptation_started"][0]["shape_id"] == sid
    done = recorder["adaptation_completed"][0]
    assert done["adapted_shape"] is adapted
    assert done["processing_time"] >= 0.0


def test_adapt_failure_emits_and_reraises(manager, recorder) -> None:
    with pytest.raises(AdaptationError) as exc:
        manager.adapt_shape_to_canvas("missing", (800, 600))
    assert exc.value.type is AdaptationErrorType.MEMORY_NOT_FOUND
    (failed,) = recorder["adaptation_failed"]
    assert failed["error"] is exc.value
    assert failed["shape_id"] == "missing"


def test_malformed_target_is_reported_and_reraised(manager, recorder, square_pts) -> None:
    sid = manager.create_shape_memory(square_pts, (400, 400))
    with pytest.raises(InputValidationError):
        manager.adapt_shape_to_canvas(sid, (float("nan"), 10))
    (err,) = recorder["error_occurred"]
    assert err["operation"] == "adapt_shape_to_canvas"
    assert err["shape_id"] == sid
    assert recorder["adaptation_started"] == []
    m = manager.get_performance_metrics()
    assert m.total_adaptations == 1
    assert m.success_rate == 0.0
    # メモリ参照前の失敗はヒット率に数えない
    assert m.memory_hit_rate == 1.0

    with pytest.raises(InputValidationError):
        manager.adapt_multiple_shapes([sid], "800x600")
    assert recorder["error_occurred"][-1]["operation"] == "adapt_multiple_shapes"


def test_performance_metrics(manager, square_pts) -> None:
    initial = manager.get_performance_metrics()
    assert initial.success_rate == 1.0 and initial.memory_hit_rate == 1.0

    sid = manager.create_shape_memory(square_pts, (400, 400))
    manager.adapt_shape_to_canvas(sid, (800, 600))
    with pytest.raises(AdaptationError):
        manager.adapt_shape_to_canvas("missing", (800, 600))
    with pytest.raises(AdaptationError):
        manager.adapt_shape_to_canvas(sid, (10, 1), {"strict": True})

    m = manager.get_performance_metrics()
    assert m.total_adaptations == 3
    assert m.success_rate == pytest.approx(1 / 3)
    assert m.memory_hit_rate == pytest.approx(2 / 3)
    assert m.average_adaptation_time > 0.0
    assert m.to_dict()["total_adaptations"] == 3
    # 返り値はコピー
    m.total_adaptations = 99
    assert manager.get_performance_metrics().total_adaptations == 3


def test_monitoring_disabled_keeps_metrics(square_pts) -> None:
    with MemoryManager({"auto_cleanup": False, "enable_performance_monitoring": False}) as mgr:
        sid = mgr.create_shape_memory(square_pts, (400, 400))
        mgr.adapt_shape_to_canvas(sid, (800, 600))
        m = mgr.get_performance_metrics()
        assert m.total_memories == 0 and m.total_adaptations == 0


def test_status_and_snapshot(manager, square_pts) -> None:
    sid = manager.create_shape_memory(square_pts, (400, 400))
    manager.adapt_shape_to_canvas(sid, (800, 600))
    status = manager.get_memory_status(sid)
    assert status.is_valid
    assert status.access_count == 2  # 適応時と状態取得時
    snap = manager.get_memory_snapshot(sid)
    assert [h.memory_id for h in snap.related_adaptations] == [sid]
    assert manager.get_memory_status("missing") is None
    assert manager.get_memory_snapshot("missing") is None


def test_delete_clears_history(manager, recorder, square_pts) -> None:
    sid = manager.create_shape_memory(square_pts, (400, 400))
    manager.adapt_shape_to_canvas(sid, (800, 600))
    assert manager.delete_shape_memory(sid)
    assert not manager.delete_shape_memory(sid)
    assert manager.get_adaptation_history(sid) == []
    assert recorder["memory_deleted"] == [{"memory_id": sid}]


def test_cleanup_expired_then_excess(square_pts, triangle_pts) -> None:
    cfg = MemoryManagerConfig(auto_cleanup=False, memory_expiration_time=50, max_memory_count=2)
    with MemoryManager(cfg) as mgr:
        seen: list = []
        mgr.on_cleanup_performed(seen.append)
        for i in range(4):
            mgr.create_shape_memory(square_pts, (400, 400), shape_id=f"m{i}")
        memories = {m.id: m for m in mgr.storage.list_all()}
        memories["m0"].timestamp -= 100  # 期限切れ
        memories["m1"].timestamp -= 10
        memories["m2"].timestamp -= 5

        assert mgr.perform_cleanup() == 2
        assert sorted(mgr.get_all_memory_ids()) == ["m2", "m3"]
        assert seen[0]["cleaned_count"] == 2
        assert mgr.perform_cleanup() == 0


def test_periodic_cleanup_runs_and_stops(square_pts) -> None:
    fired = threading.Event()
    mgr = MemoryManager(MemoryManagerConfig(auto_cleanup=True, cleanup_interval=0.05))
    try:
        mgr.on_cleanup_performed(lambda p: fired.set())
        assert fired.wait(5.0)
    finally:
        mgr.destroy()
    assert mgr._timer is None


def test_submit_and_batch(manager, recorder, square_pts, triangle_pts) -> None:
    a = manager.create_shape_memory(square_pts, (400, 400))
    b = manager.create_shape_memory(triangle_pts, (400, 400))
    future = manager.submit_adaptation(a, (500, 500))
    assert future.result(timeout=10).shape_id == a

    result = manager.adapt_multiple_shapes([b, "missing", a], (640, 480))
    assert [s.shape_id for s in result.success] == [b, a]
    assert [e.shape_id for e in result.failed] == ["missing"]
    assert len(recorder["adaptation_completed"]) == 3
    assert len(recorder["adaptation_failed"]) == 1


def test_destroy_is_idempotent_and_blocks_calls(square_pts) -> None:
    mgr = MemoryManager({"auto_cleanup": False})
    handle = mgr.on_memory_created(lambda p: None)
    mgr.destroy()
    mgr.destroy()
    assert mgr.destroyed
    assert mgr.events.count() == 0
    assert not mgr.unsubscribe(handle)
    with pytest.raises(RuntimeError):
        mgr.create_shape_memory(square_pts, (400, 400))
    with pytest.raises(RuntimeError):
        mgr.adapt_shape_to_canvas("x", (100, 100))
    with pytest.raises(RuntimeError):
        mgr.perform_cleanup()


def test_debug_mode_toggle(manager) -> None:
    manager.set_debug_mode(True)
    assert manager.config.debug_mode
    assert manager.engine.get_engine_status()["debug_mode"]


def test_config_from_mapping_coerces_values() -> None:
    cfg = MemoryManagerConfig.from_mapping(
        {
            "auto_cleanup": "off",
            "cleanup_interval": "2.5",
            "max_memories": "0",
            "history_maxsize": "bad",
            "unknown": 1,
        }
    )
    assert cfg.auto_cleanup is False
    assert cfg.cleanup_interval == 2.5
    assert cfg.max_memories == 1
    assert cfg.history_maxsize == MemoryManagerConfig().history_maxsize


def test_from_config_reads_yaml(tmp_path) -> None:
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "default.yaml").write_text(
        "memory_manager:\n  auto_cleanup: false\n  history_maxsize: 7\n  max_memories: 3\n",
        encoding="utf-8",
    )
    mgr = MemoryManager.from_config(tmp_path, batch_workers=2)
    try:
        assert mgr.config.history_maxsize == 7
        assert mgr.config.batch_workers == 2
        assert mgr.storage.max_memories == 3
        assert mgr._timer is None
    finally:
        mgr.destroy()


def test_export_import_through_files(tmp_path, manager, square_pts, star_pts) -> None:
    a = manager.create_shape_memory(square_pts, (400, 400))
    b = manager.create_shape_memory(star_pts, (400, 400))
    manager.adapt_shape_to_canvas(b, (800, 600))
    path = manager.save_export(tmp_path / "export.json", reason="backup")

    with MemoryManager({"auto_cleanup": False}) as other:
        assert other.load_export(path) == 2
        assert sorted(other.get_all_memory_ids()) == sorted([a, b])
        assert len(other.get_adaptation_history(b)) == 1
        np.testing.assert_allclose(
            other.adapt_shape_to_canvas(b, (800, 600)).points,
            manager.adapt_shape_to_canvas(b, (800, 600)).points,
        )

    export = manager.export_memories()
    assert export.metadata.total_memories == 2
    assert export.metadata.total_adaptations == 2
