"""
どこで: `adaptation.engine`
何を: 読込→清掃→ルール適用→検証を順に実行し、段階失敗を `AdaptationError` に変換する `AdaptationEngine`。
なぜ: 各段階が「完了するか型付き例外を投げるか」のどちらかになるよう一本化し、履歴を必ず残すため。

段階と失敗分類:
1) read      … 保存層から取得。未保存は `MEMORY_NOT_FOUND`、ノード 0 件は `INVALID_TOPOLOGY`。
2) clean     … `CoordinateCleaner.clean_from_topology`。例外は `COORDINATE_CLEANING_FAILED`。
3) apply     … `AdaptationRuleEngine.apply_rules`。例外/非正の目標寸法は `ADAPTATION_FAILED`。
4) validate  … `validate_result` 有効時のみ。検証 False は `VALIDATION_FAILED`。

履歴:
- 成功/失敗を問わず 1 呼び出しにつき 1 件、リングバッファ（既定 1000 件）へ追記する。
- 失敗時の指標はゼロ埋め、`source_canvas` は取得できていればメモリの基準キャンバス、無ければ 0x0。

補足:
- `memory` パッケージに依存するため、`adaptation/__init__` からは読み込まない。
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Iterable, Mapping

from common import settings as settings_mod
from common.errors import AdaptationError, AdaptationErrorType
from common.logging import stage_level
from common.types import CanvasLike, CanvasSize
from memory.cleaner import CoordinateCleaner
from memory.models import ShapeMemory
from memory.storage import MemoryStorage
from topology.models import CleanTopology

from .models import (
    AdaptationContext,
    AdaptationHistory,
    AdaptationMetrics,
    AdaptationOptions,
    AdaptedShape,
)
from .rule_engine import AdaptationRuleEngine

logger = logging.getLogger(__name__)

_UNKNOWN_CANVAS = CanvasSize(0.0, 0.0)


def new_adaptation_id() -> str:
    return f"adaptation_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class BatchAdaptationResult:
    """一括適応の結果。入力順を保ったまま成功と失敗に分ける。"""

    success: list[AdaptedShape] = field(default_factory=list)
    failed: list[AdaptationError] = field(default_factory=list)


class AdaptationEngine:
    """保存済みメモリを目標キャンバスへ適応させるオーケストレータ。

    Parameters
    ----------
    storage : MemoryStorage
        読込元（共有される。本クラスは書き込まない）。
    cleaner : CoordinateCleaner, optional
        省略時は既定オプションで生成。
    rule_engine : AdaptationRuleEngine, optional
        省略時はレジストリの既定ルールで生成。
    history_maxsize : int, optional
        履歴リングバッファの上限（既定は設定 `SHM_HISTORY_MAXSIZE`）。
    debug_mode : bool, default False
        段階ログを INFO へ引き上げる（呼び出しオプションで上書き可）。
    batch_workers : int, optional
        `adapt_multiple_shapes` の既定ワーカー数（既定は設定 `SHM_BATCH_WORKERS`）。
    """

    def __init__(
        self,
        storage: MemoryStorage,
        cleaner: CoordinateCleaner | None = None,
        rule_engine: AdaptationRuleEngine | None = None,
        *,
        history_maxsize: int | None = None,
        debug_mode: bool = False,
        batch_workers: int | None = None,
    ) -> None:
        s = settings_mod.get()
        self.storage = storage
        self.cleaner = cleaner or CoordinateCleaner()
        self.rule_engine = rule_engine or AdaptationRuleEngine(debug_mode=debug_mode)
        self.debug_mode = bool(debug_mode)
        self.batch_workers = max(1, int(batch_workers or s.BATCH_WORKERS))
        maxsize = max(1, int(history_maxsize or s.HISTORY_MAXSIZE))
        self._history: deque[AdaptationHistory] = deque(maxlen=maxsize)
        self._history_lock = threading.Lock()

    # ── 適応 ───────────────────
    def adapt_shape(
        self,
        shape_id: str,
        target_canvas: CanvasLike,
        options: AdaptationOptions | Mapping[str, Any] | None = None,
    ) -> AdaptedShape:
        """1 件のメモリを目標キャンバスへ適応させる。

        Raises
        ------
        AdaptationError
            いずれかの段階が失敗した場合（`type` で段階を判別できる）。
        InputValidationError
            `target_canvas` の形式自体が不正な場合（履歴には残らない）。
        """
        target = CanvasSize.coerce(target_canvas)
        opts = AdaptationOptions.coerce(options)
        debug = self.debug_mode if opts.debug_mode is None else bool(opts.debug_mode)
        t0 = time.perf_counter()
        memory: ShapeMemory | None = None
        context_info: dict[str, Any] = {
            "target_canvas": target.to_dict(),
            "options": asdict(opts),
        }
        try:
            memory = self._read_memory(shape_id, context_info)
            self._require_nodes(memory, context_info)
            context = AdaptationContext(
                source_canvas=memory.base_canvas_size,
                target_canvas=target,
                debug_mode=debug,
                preserve_aspect_ratio=opts.preserve_aspect_ratio,
                center_shape=opts.center_shape,
                strict=opts.strict,
            )
            context_info = context.to_dict()
            clean = self._clean(memory, context_info, debug)
            adapted = self._apply_rules(shape_id, clean, context, context_info)
            if opts.validate_result:
                self._validate(shape_id, adapted, clean, opts.strict, context_info)
        except AdaptationError as e:
            elapsed = time.perf_counter() - t0
            self._record(
                shape_id,
                memory.base_canvas_size if memory is not None else _UNKNOWN_CANVAS,
                target,
                AdaptationMetrics.zero(processing_time=elapsed),
                success=False,
                error=e,
            )
            logger.info("adaptation of %s failed (%s): %s", shape_id, e.type.value, e.message)
            raise

        elapsed = time.perf_counter() - t0
        metrics = replace(adapted.adaptation_metrics, processing_time=elapsed)
        adapted = replace(
            adapted, adaptation_metrics=metrics, source_memory_checksum=memory.checksum
        )
        self._record(shape_id, memory.base_canvas_size, target, metrics, success=True)
        logger.log(
            stage_level(debug),
            "adapted %s to %gx%g (scale=%.4f fit=%.3f fidelity=%.3f) in %.2f ms",
            shape_id,
            target.width,
            target.height,
            metrics.scale_factor,
            metrics.boundary_fit,
            metrics.fidelity,
            elapsed * 1000.0,
        )
        return adapted

    def adapt_multiple_shapes(
        self,
        shape_ids: Iterable[str],
        target_canvas: CanvasLike,
        options: AdaptationOptions | Mapping[str, Any] | None = None,
        *,
        max_workers: int | None = None,
    ) -> BatchAdaptationResult:
        """独立した適応を並列に実行し、成功/失敗に分けて返す（1 件の失敗で中断しない）。"""
        ids = list(shape_ids)
        target = CanvasSize.coerce(target_canvas)
        opts = AdaptationOptions.coerce(options)
        result = BatchAdaptationResult()
        if not ids:
            return result
        workers = max(1, min(len(ids), int(max_workers or self.batch_workers)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="adapt") as pool:
            futures = [pool.submit(self.adapt_shape, sid, target, opts) for sid in ids]
            for future in futures:
                try:
                    result.success.append(future.result())
                except AdaptationError as e:
                    result.failed.append(e)
        logger.debug(
            "batch adaptation: %d succeeded, %d failed", len(result.success), len(result.failed)
        )
        return result

    # ── 段階 ───────────────────
    def _read_memory(self, shape_id: str, context_info: dict[str, Any]) -> ShapeMemory:
        memory = self.storage.retrieve(shape_id)
        if memory is None:
            raise AdaptationError(
                AdaptationErrorType.MEMORY_NOT_FOUND,
                shape_id,
                "memory not found",
                context_info,
            )
        return memory

    def _require_nodes(self, memory: ShapeMemory, context_info: dict[str, Any]) -> None:
        if not memory.topology.nodes:
            raise AdaptationError(
                AdaptationErrorType.INVALID_TOPOLOGY,
                memory.id,
                "stored topology has no nodes",
                context_info,
            )

    def _clean(
        self, memory: ShapeMemory, context_info: dict[str, Any], debug: bool
    ) -> CleanTopology:
        try:
            clean = self.cleaner.clean_from_topology(memory.topology, memory.id)
        except Exception as e:
            raise AdaptationError(
                AdaptationErrorType.COORDINATE_CLEANING_FAILED,
                memory.id,
                f"coordinate cleaning failed: {e}",
                context_info,
            ) from e
        logger.log(stage_level(debug), "cleaned %s: %d nodes", memory.id, len(clean.nodes))
        return clean

    def _apply_rules(
        self,
        shape_id: str,
        clean: CleanTopology,
        context: AdaptationContext,
        context_info: dict[str, Any],
    ) -> AdaptedShape:
        if not context.target_canvas.is_positive():
            raise AdaptationError(
                AdaptationErrorType.ADAPTATION_FAILED,
                shape_id,
                "target canvas must have positive dimensions: "
                f"{context.target_canvas.width}x{context.target_canvas.height}",
                context_info,
            )
        try:
            return self.rule_engine.apply_rules(clean, context)
        except Exception as e:
            raise AdaptationError(
                AdaptationErrorType.ADAPTATION_FAILED,
                shape_id,
                f"rule application failed: {e}",
                context_info,
            ) from e

    def _validate(
        self,
        shape_id: str,
        adapted: AdaptedShape,
        clean: CleanTopology,
        strict: bool,
        context_info: dict[str, Any],
    ) -> None:
        if not self.rule_engine.validate_adaptation(adapted, clean, strict=strict):
            raise AdaptationError(
                AdaptationErrorType.VALIDATION_FAILED,
                shape_id,
                "adapted shape failed validation" + (" (strict)" if strict else ""),
                {**context_info, "metrics": adapted.adaptation_metrics.to_dict()},
            )

    # ── 履歴 ───────────────────
    def _record(
        self,
        shape_id: str,
        source: CanvasSize,
        target: CanvasSize,
        metrics: AdaptationMetrics,
        *,
        success: bool,
        error: AdaptationError | None = None,
    ) -> None:
        entry = AdaptationHistory(
            adaptation_id=new_adaptation_id(),
            memory_id=shape_id,
            source_canvas=source,
            target_canvas=target,
            metrics=metrics,
            success=success,
            timestamp=time.time(),
            error=error.message if error is not None else None,
            error_type=error.type.value if error is not None else None,
        )
        with self._history_lock:
            self._history.append(entry)

    def get_adaptation_history(self, shape_id: str | None = None) -> list[AdaptationHistory]:
        """履歴のコピー（古い順）。`shape_id` 指定時はそのメモリの分だけ。"""
        with self._history_lock:
            entries = list(self._history)
        if shape_id is None:
            return entries
        return [h for h in entries if h.memory_id == shape_id]

    def clear_adaptation_history(self, shape_id: str | None = None) -> int:
        """履歴を削除し、削除件数を返す。`shape_id` 指定時はそのメモリの分だけ。"""
        with self._history_lock:
            before = len(self._history)
            if shape_id is None:
                self._history.clear()
            else:
                kept = [h for h in self._history if h.memory_id != shape_id]
                self._history.clear()
                self._history.extend(kept)
            return before - len(self._history)

    def import_history(self, entries: Iterable[AdaptationHistory]) -> int:
        """外部（エクスポート）から履歴を追記する。上限を超えた分は古い順に落ちる。"""
        added = 0
        with self._history_lock:
            for entry in entries:
                self._history.append(entry)
                added += 1
        return added

    # ── 状態 ───────────────────
    def set_debug_mode(self, enabled: bool) -> None:
        self.debug_mode = bool(enabled)
        self.rule_engine.set_debug_mode(enabled)

    def get_engine_status(self) -> dict[str, Any]:
        with self._history_lock:
            entries = list(self._history)
            maxsize = self._history.maxlen
        succeeded = sum(1 for h in entries if h.success)
        return {
            "debug_mode": self.debug_mode,
            "history_size": len(entries),
            "history_maxsize": maxsize,
            "successful_adaptations": succeeded,
            "failed_adaptations": len(entries) - succeeded,
            "batch_workers": self.batch_workers,
            "rule_engine": self.rule_engine.get_engine_info(),
        }


__all__ = ["AdaptationEngine", "BatchAdaptationResult", "new_adaptation_id"]
