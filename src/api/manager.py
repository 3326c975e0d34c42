"""
どこで: `api.manager`
何を: 抽出・保存・適応を束ねる公開ファサード `MemoryManager` と、その構成 `MemoryManagerConfig`。
なぜ: 呼び出し側が「点列を覚えさせる→別キャンバスで再現する」を 1 つのオブジェクトで完結できるようにするため。

責務:
- `create_shape_memory` … `TopologyExtractor` で抽出し `MemoryStorage` に保存（既存 ID は更新扱い）。
- `adapt_shape_to_canvas` … `AdaptationEngine` へ委譲し、指標更新とイベント発行を行う。
  失敗は記録/通知したうえで、そのままの `AdaptationError` を再送出する。
- `perform_cleanup` … 期限切れ（作成時刻基準）を削除し、なお `max_memory_count` を超えていれば
  作成時刻の古い順に削除する。保存層自身の容量退避（最終アクセス基準）とは別ポリシー。
- 定期クリーンアップはデーモンの `threading.Timer` を連鎖させて実行し、`destroy()` で停止する。

スレッド:
- 保存層/履歴/指標はそれぞれロックで保護される。`submit_adaptation` と一括適応は
  スレッドプールで実行されるが、各適応は自分の出力以外の共有状態を変更しない。
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

from adaptation.engine import AdaptationEngine, BatchAdaptationResult
from adaptation.models import AdaptationHistory, AdaptationOptions, AdaptedShape
from adaptation.rule_engine import AdaptationRuleEngine
from common import settings as settings_mod
from common.errors import AdaptationError, AdaptationErrorType, InvalidTopologyError
from common.logging import stage_level
from common.types import CanvasLike, CanvasSize, PointsLike
from memory.cleaner import CoordinateCleaner
from memory.models import (
    EXPORT_VERSION,
    ExportMetadata,
    MemoryExport,
    MemorySnapshot,
    MemoryStatus,
    ShapeMetadata,
)
from memory.persistence import load_export, save_export
from memory.storage import MemoryStorage
from topology.extractor import ExtractionOptions, TopologyExtractor
from util.config import load_section

from .events import MemoryEvent, MemoryEvents, Observer, Subscription

logger = logging.getLogger(__name__)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "t", "yes", "y", "on"}:
            return True
        if s in {"0", "false", "f", "no", "n", "off"}:
            return False
        return default
    return bool(value)


@dataclass
class MemoryManagerConfig:
    """`MemoryManager` の構成。既定値は `common.settings`（環境変数 `SHM_*`）から取る。

    時間はすべて秒。
    """

    debug_mode: bool = field(default_factory=lambda: settings_mod.get().DEBUG)
    auto_cleanup: bool = True
    memory_expiration_time: float = field(
        default_factory=lambda: settings_mod.get().MEMORY_EXPIRATION_S
    )
    max_memory_count: int = field(default_factory=lambda: settings_mod.get().MAX_MEMORIES)
    enable_performance_monitoring: bool = True
    cleanup_interval: float = field(default_factory=lambda: settings_mod.get().CLEANUP_INTERVAL_S)
    max_memories: int = field(default_factory=lambda: settings_mod.get().MAX_MEMORIES)
    enable_integrity_check: bool = field(
        default_factory=lambda: settings_mod.get().INTEGRITY_CHECK
    )
    history_maxsize: int = field(default_factory=lambda: settings_mod.get().HISTORY_MAXSIZE)
    batch_workers: int = field(default_factory=lambda: settings_mod.get().BATCH_WORKERS)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MemoryManagerConfig":
        """辞書（YAML の `memory_manager:` セクション等）から生成する。

        未知キーは無視し、型が合わない値は既定値に戻す。
        """
        cfg = cls()
        if not data:
            return cfg
        for key in ("debug_mode", "auto_cleanup", "enable_performance_monitoring",
                    "enable_integrity_check"):
            if key in data:
                setattr(cfg, key, _as_bool(data[key], getattr(cfg, key)))
        for key in ("memory_expiration_time", "cleanup_interval"):
            if key in data:
                try:
                    setattr(cfg, key, max(0.0, float(data[key])))
                except (TypeError, ValueError):
                    logger.warning("ignoring invalid %s: %r", key, data[key])
        for key in ("max_memory_count", "max_memories", "history_maxsize", "batch_workers"):
            if key in data:
                try:
                    setattr(cfg, key, max(1, int(data[key])))
                except (TypeError, ValueError):
                    logger.warning("ignoring invalid %s: %r", key, data[key])
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            logger.debug("ignoring unknown manager config keys: %s", sorted(unknown))
        return cfg


@dataclass
class PerformanceMetrics:
    total_memories: int = 0
    total_adaptations: int = 0
    average_adaptation_time: float = 0.0
    success_rate: float = 1.0
    memory_hit_rate: float = 1.0
    last_cleanup_time: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def new_memory_id() -> str:
    return f"memory_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class MemoryManager:
    """形状メモリの公開ファサード。

    Parameters
    ----------
    config : MemoryManagerConfig | Mapping, optional
        構成。辞書は `MemoryManagerConfig.from_mapping` で解釈する。
    storage, extractor, cleaner, rule_engine :
        差し替え用（省略時は構成から生成）。

    Examples
    --------
    >>> with MemoryManager({"auto_cleanup": False}) as manager:
    ...     sid = manager.create_shape_memory([(0, 0), (100, 0), (100, 100), (0, 100)], (400, 400))
    ...     adapted = manager.adapt_shape_to_canvas(sid, (800, 600))
    """

    def __init__(
        self,
        config: MemoryManagerConfig | Mapping[str, Any] | None = None,
        *,
        storage: MemoryStorage | None = None,
        extractor: TopologyExtractor | None = None,
        cleaner: CoordinateCleaner | None = None,
        rule_engine: AdaptationRuleEngine | None = None,
    ) -> None:
        if isinstance(config, MemoryManagerConfig):
            self.config = config
        else:
            self.config = MemoryManagerConfig.from_mapping(config)
        cfg = self.config
        if storage is None:
            storage = MemoryStorage(
                max_memories=cfg.max_memories, enable_integrity_check=cfg.enable_integrity_check
            )
        self.storage = storage
        self.extractor = extractor or TopologyExtractor()
        self.engine = AdaptationEngine(
            self.storage,
            cleaner or CoordinateCleaner(),
            rule_engine or AdaptationRuleEngine(debug_mode=cfg.debug_mode),
            history_maxsize=cfg.history_maxsize,
            debug_mode=cfg.debug_mode,
            batch_workers=cfg.batch_workers,
        )
        self.events = MemoryEvents()
        self._metrics = PerformanceMetrics()
        self._metrics_lock = threading.Lock()
        self._success_count = 0
        self._lookups = 0
        self._hits = 0
        self._state_lock = threading.RLock()
        self._destroyed = False
        self._timer: threading.Timer | None = None
        self._executor: ThreadPoolExecutor | None = None

        if cfg.auto_cleanup:
            self._schedule_cleanup()
        logger.log(
            stage_level(cfg.debug_mode),
            "MemoryManager initialized (auto_cleanup=%s, debug=%s)",
            cfg.auto_cleanup,
            cfg.debug_mode,
        )

    @classmethod
    def from_config(cls, root: Path | None = None, **overrides: Any) -> "MemoryManager":
        """YAML 構成（`memory_manager:` セクション）から生成する。キーワードで個別に上書き可。"""
        section = load_section("memory_manager", root)
        section.update(overrides)
        return cls(MemoryManagerConfig.from_mapping(section))

    # ── 生成/適応 ───────────────────
    def create_shape_memory(
        self,
        points: PointsLike,
        canvas_size: CanvasLike,
        shape_id: str | None = None,
        metadata: ShapeMetadata | Mapping[str, Any] | None = None,
        options: ExtractionOptions | None = None,
    ) -> str:
        """点列からトポロジを抽出して保存し、メモリ ID を返す。

        Raises
        ------
        EmptyInputError
            点列が空。
        InputValidationError
            非有限座標、または非正のキャンバス寸法。
        InvalidTopologyError
            保存層が受理しなかった場合。
        """
        self._ensure_alive()
        t0 = time.perf_counter()
        memory_id = shape_id or new_memory_id()
        try:
            canvas = CanvasSize.coerce(canvas_size, require_positive=True)
            topology = self.extractor.extract_topology(points, canvas, options)
            existed = self.storage.contains(memory_id)
            meta = (
                ShapeMetadata.from_dict(metadata) if isinstance(metadata, Mapping) else metadata
            )
            if not self.storage.store(memory_id, topology, canvas, meta):
                raise InvalidTopologyError(f"storage rejected memory {memory_id}")
        except Exception as e:
            self.events.emit(
                MemoryEvent.ERROR_OCCURRED,
                {
                    "operation": "create_shape_memory",
                    "memory_id": memory_id,
                    "error": str(e),
                    "processing_time": time.perf_counter() - t0,
                },
            )
            raise

        if self.config.enable_performance_monitoring and not existed:
            with self._metrics_lock:
                self._metrics.total_memories += 1
        event = MemoryEvent.MEMORY_UPDATED if existed else MemoryEvent.MEMORY_CREATED
        elapsed = time.perf_counter() - t0
        self.events.emit(
            event,
            {
                "memory_id": memory_id,
                "topology": topology,
                "canvas_size": canvas,
                "processing_time": elapsed,
            },
        )
        logger.log(
            stage_level(self.config.debug_mode),
            "%s memory %s (%d nodes) in %.2f ms",
            "updated" if existed else "created",
            memory_id,
            len(topology.nodes),
            elapsed * 1000.0,
        )
        return memory_id

    def adapt_shape_to_canvas(
        self,
        shape_id: str,
        target_canvas: CanvasLike,
        options: AdaptationOptions | Mapping[str, Any] | None = None,
    ) -> AdaptedShape:
        """保存済みメモリを目標キャンバスへ適応させる。

        Raises
        ------
        AdaptationError
            段階失敗（未保存 ID は `MEMORY_NOT_FOUND`）。記録/通知後に再送出する。
        InputValidationError
            `target_canvas`/`options` の形式が不正。`error_occurred` を通知して再送出する。
        """
        self._ensure_alive()
        t0 = time.perf_counter()
        try:
            target = CanvasSize.coerce(target_canvas)
            opts = AdaptationOptions.coerce(options)
        except Exception as e:
            elapsed = time.perf_counter() - t0
            self._record_adaptation(elapsed, success=False, hit=None)
            self.events.emit(
                MemoryEvent.ERROR_OCCURRED,
                {
                    "operation": "adapt_shape_to_canvas",
                    "shape_id": shape_id,
                    "error": str(e),
                    "processing_time": elapsed,
                },
            )
            raise
        if opts.debug_mode is None and self.config.debug_mode:
            opts = AdaptationOptions(**{**asdict(opts), "debug_mode": True})
        self.events.emit(
            MemoryEvent.ADAPTATION_STARTED,
            {"shape_id": shape_id, "target_canvas": target, "options": opts},
        )
        try:
            adapted = self.engine.adapt_shape(shape_id, target, opts)
        except AdaptationError as e:
            elapsed = time.perf_counter() - t0
            self._record_adaptation(
                elapsed, success=False, hit=e.type is not AdaptationErrorType.MEMORY_NOT_FOUND
            )
            self.events.emit(
                MemoryEvent.ADAPTATION_FAILED,
                {
                    "shape_id": shape_id,
                    "target_canvas": target,
                    "error": e,
                    "processing_time": elapsed,
                },
            )
            raise

        elapsed = time.perf_counter() - t0
        self._record_adaptation(elapsed, success=True, hit=True)
        self.events.emit(
            MemoryEvent.ADAPTATION_COMPLETED,
            {"shape_id": shape_id, "adapted_shape": adapted, "processing_time": elapsed},
        )
        return adapted

    def submit_adaptation(
        self,
        shape_id: str,
        target_canvas: CanvasLike,
        options: AdaptationOptions | Mapping[str, Any] | None = None,
    ) -> "Future[AdaptedShape]":
        """`adapt_shape_to_canvas` を共有ワーカーで実行し、`Future` を返す。"""
        return self._get_executor().submit(
            self.adapt_shape_to_canvas, shape_id, target_canvas, options
        )

    def adapt_multiple_shapes(
        self,
        shape_ids: list[str],
        target_canvas: CanvasLike,
        options: AdaptationOptions | Mapping[str, Any] | None = None,
    ) -> BatchAdaptationResult:
        """複数 ID を並列に適応させる。1 件ごとにイベントと指標が更新される。"""
        self._ensure_alive()
        try:
            target = CanvasSize.coerce(target_canvas)
        except Exception as e:
            self.events.emit(
                MemoryEvent.ERROR_OCCURRED,
                {
                    "operation": "adapt_multiple_shapes",
                    "shape_ids": list(shape_ids),
                    "error": str(e),
                },
            )
            raise
        futures = [self.submit_adaptation(sid, target, options) for sid in shape_ids]
        result = BatchAdaptationResult()
        for future in futures:
            try:
                result.success.append(future.result())
            except AdaptationError as e:
                result.failed.append(e)
        return result

    # ── 参照/削除 ───────────────────
    def get_memory_status(self, shape_id: str) -> MemoryStatus | None:
        """状態を返す。取得（アクセス記録の更新と再検証）を先に行う。"""
        if self.storage.retrieve(shape_id) is None:
            return None
        return self.storage.get_memory_status(shape_id)

    def get_memory_snapshot(self, shape_id: str) -> MemorySnapshot | None:
        if self.storage.retrieve(shape_id) is None:
            return None
        return self.storage.create_snapshot(
            shape_id, self.engine.get_adaptation_history(shape_id)
        )

    def delete_shape_memory(self, shape_id: str) -> bool:
        """削除し、関連する適応履歴も消す。存在しなければ False。"""
        self._ensure_alive()
        if not self.storage.clear(shape_id):
            return False
        self.engine.clear_adaptation_history(shape_id)
        self.events.emit(MemoryEvent.MEMORY_DELETED, {"memory_id": shape_id})
        logger.log(stage_level(self.config.debug_mode), "deleted memory %s", shape_id)
        return True

    def get_all_memory_ids(self) -> list[str]:
        return [m.id for m in self.storage.list_all()]

    def get_performance_metrics(self) -> PerformanceMetrics:
        with self._metrics_lock:
            m = self._metrics
            return PerformanceMetrics(
                total_memories=m.total_memories,
                total_adaptations=m.total_adaptations,
                average_adaptation_time=m.average_adaptation_time,
                success_rate=m.success_rate,
                memory_hit_rate=m.memory_hit_rate,
                last_cleanup_time=m.last_cleanup_time,
            )

    def get_adaptation_history(self, shape_id: str | None = None) -> list[AdaptationHistory]:
        return self.engine.get_adaptation_history(shape_id)

    # ── クリーンアップ ───────────────────
    def perform_cleanup(self) -> int:
        """期限切れ → 上限超過（作成時刻の古い順）の順に削除し、削除件数を返す。"""
        self._ensure_alive()
        t0 = time.perf_counter()
        now = time.time()
        cleaned = 0
        for memory in self.storage.list_all():
            if now - memory.timestamp > self.config.memory_expiration_time:
                if self.delete_shape_memory(memory.id):
                    cleaned += 1

        remaining = self.storage.list_all()
        excess = len(remaining) - self.config.max_memory_count
        if excess > 0:
            for memory in sorted(remaining, key=lambda m: m.timestamp)[:excess]:
                if self.delete_shape_memory(memory.id):
                    cleaned += 1

        with self._metrics_lock:
            self._metrics.last_cleanup_time = time.time()
        elapsed = time.perf_counter() - t0
        self.events.emit(
            MemoryEvent.CLEANUP_PERFORMED, {"cleaned_count": cleaned, "processing_time": elapsed}
        )
        if cleaned:
            logger.info("cleanup removed %d memories", cleaned)
        return cleaned

    def _schedule_cleanup(self) -> None:
        with self._state_lock:
            if self._destroyed:
                return
            timer = threading.Timer(self.config.cleanup_interval, self._cleanup_tick)
            timer.daemon = True
            timer.name = "MemoryCleanupTimer"
            self._timer = timer
            timer.start()

    def _cleanup_tick(self) -> None:
        if self._destroyed:
            return
        try:
            self.perform_cleanup()
        except Exception as e:
            logger.exception("periodic cleanup failed")
            self.events.emit(
                MemoryEvent.ERROR_OCCURRED, {"operation": "perform_cleanup", "error": str(e)}
            )
        finally:
            self._schedule_cleanup()

    # ── 入出力 ───────────────────
    def export_memories(self, reason: str = "manual_export") -> MemoryExport:
        """保存内容と適応履歴をまとめた `MemoryExport` を返す。"""
        memories = self.storage.list_all()
        history = self.engine.get_adaptation_history()
        return MemoryExport(
            version=EXPORT_VERSION,
            exported_at=time.time(),
            memories=memories,
            adaptation_history=history,
            metadata=ExportMetadata(
                total_memories=len(memories),
                total_adaptations=len(history),
                export_reason=reason,
            ),
        )

    def import_memories(self, export: MemoryExport, *, include_history: bool = True) -> int:
        """エクスポートを取り込み、受理したメモリ件数を返す。"""
        self._ensure_alive()
        imported = self.storage.import_memories(export)
        if include_history and export.adaptation_history:
            self.engine.import_history(export.adaptation_history)
        return imported

    def save_export(self, path: str | Path | None = None, reason: str = "manual_export") -> Path:
        return save_export(self.export_memories(reason), path)

    def load_export(self, path: str | Path, *, include_history: bool = True) -> int:
        return self.import_memories(load_export(path), include_history=include_history)

    # ── イベント ───────────────────
    def subscribe(self, event: MemoryEvent | str, observer: Observer) -> Subscription:
        return self.events.subscribe(event, observer)

    def unsubscribe(self, handle: Subscription) -> bool:
        return self.events.unsubscribe(handle)

    def on_memory_created(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.MEMORY_CREATED, observer)

    def on_memory_updated(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.MEMORY_UPDATED, observer)

    def on_memory_deleted(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.MEMORY_DELETED, observer)

    def on_adaptation_started(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.ADAPTATION_STARTED, observer)

    def on_adaptation_completed(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.ADAPTATION_COMPLETED, observer)

    def on_adaptation_failed(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.ADAPTATION_FAILED, observer)

    def on_cleanup_performed(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.CLEANUP_PERFORMED, observer)

    def on_error_occurred(self, observer: Observer) -> Subscription:
        return self.subscribe(MemoryEvent.ERROR_OCCURRED, observer)

    # ── 状態/終了 ───────────────────
    def set_debug_mode(self, enabled: bool) -> None:
        self.config.debug_mode = bool(enabled)
        self.engine.set_debug_mode(enabled)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        """タイマー/ワーカーを停止し、オブザーバを解除する（冪等）。"""
        with self._state_lock:
            if self._destroyed:
                return
            self._destroyed = True
            timer, self._timer = self._timer, None
            executor, self._executor = self._executor, None
        if timer is not None:
            timer.cancel()
        if executor is not None:
            executor.shutdown(wait=True)
        self.events.clear()
        logger.log(stage_level(self.config.debug_mode), "MemoryManager destroyed")

    def __enter__(self) -> "MemoryManager":
        return self

    def __exit__(self, *exc: object) -> None:
        self.destroy()

    # ── 内部 ───────────────────
    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("MemoryManager has been destroyed")

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._state_lock:
            self._ensure_alive()
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.batch_workers, thread_name_prefix="memory-adapt"
                )
            return self._executor

    def _record_adaptation(self, elapsed: float, *, success: bool, hit: bool | None) -> None:
        """適応 1 件を指標に反映する。`hit=None` はメモリ参照前の失敗（ヒット率に含めない）。"""
        if not self.config.enable_performance_monitoring:
            return
        with self._metrics_lock:
            m = self._metrics
            m.total_adaptations += 1
            n = m.total_adaptations
            if success:
                self._success_count += 1
                # 成功した適応のみで平均を更新する
                m.average_adaptation_time += (
                    elapsed - m.average_adaptation_time
                ) / self._success_count
            m.success_rate = self._success_count / n
            if hit is None:
                return
            self._lookups += 1
            if hit:
                self._hits += 1
            m.memory_hit_rate = self._hits / self._lookups


__all__ = [
    "MemoryManager",
    "MemoryManagerConfig",
    "PerformanceMetrics",
    "new_memory_id",
]
