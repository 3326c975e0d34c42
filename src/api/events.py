"""
どこで: `api.events`
何を: `MemoryManager` のライフサイクル通知を担う型付きオブザーバ登録簿 `MemoryEvents`。
なぜ: 汎用エミッタではなく、8 種のイベント種別ごとのコールバック一覧として明示的に管理するため。

イベントとペイロード（dict）:
- memory_created       … {memory_id, topology, canvas_size, processing_time}
- memory_updated       … {memory_id, topology, canvas_size, processing_time}（既存 ID への再作成）
- memory_deleted       … {memory_id}
- adaptation_started   … {shape_id, target_canvas}
- adaptation_completed … {shape_id, adapted_shape, processing_time}
- adaptation_failed    … {shape_id, target_canvas, error, processing_time}
- cleanup_performed    … {cleaned_count, processing_time}
- error_occurred       … {operation, error, ...}

配信:
- 登録順に同期呼び出し。オブザーバ側の例外はログに残して握りつぶす（処理本体を止めない）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

EventPayload = Mapping[str, Any]
Observer = Callable[[EventPayload], None]


class MemoryEvent(str, Enum):
    MEMORY_CREATED = "memory_created"
    MEMORY_UPDATED = "memory_updated"
    MEMORY_DELETED = "memory_deleted"
    ADAPTATION_STARTED = "adaptation_started"
    ADAPTATION_COMPLETED = "adaptation_completed"
    ADAPTATION_FAILED = "adaptation_failed"
    CLEANUP_PERFORMED = "cleanup_performed"
    ERROR_OCCURRED = "error_occurred"


@dataclass(frozen=True)
class Subscription:
    """`subscribe` の戻り値。`unsubscribe` に渡して解除する。"""

    event: MemoryEvent
    observer: Observer


class MemoryEvents:
    """イベント種別ごとのオブザーバ一覧。"""

    def __init__(self) -> None:
        self._observers: dict[MemoryEvent, list[Observer]] = {e: [] for e in MemoryEvent}
        self._lock = RLock()

    def subscribe(self, event: MemoryEvent | str, observer: Observer) -> Subscription:
        """登録し、解除用ハンドルを返す。

        Raises
        ------
        ValueError
            未知のイベント名。
        """
        kind = MemoryEvent(event)
        if not callable(observer):
            raise TypeError(f"observer must be callable: {observer!r}")
        with self._lock:
            self._observers[kind].append(observer)
        return Subscription(kind, observer)

    def unsubscribe(self, handle: Subscription) -> bool:
        with self._lock:
            try:
                self._observers[handle.event].remove(handle.observer)
            except ValueError:
                return False
        return True

    def emit(self, event: MemoryEvent | str, payload: EventPayload) -> None:
        kind = MemoryEvent(event)
        with self._lock:
            observers = list(self._observers[kind])
        for observer in observers:
            try:
                observer(payload)
            except Exception:
                logger.exception("observer for %s raised", kind.value)

    def count(self, event: MemoryEvent | str | None = None) -> int:
        with self._lock:
            if event is None:
                return sum(len(v) for v in self._observers.values())
            return len(self._observers[MemoryEvent(event)])

    def clear(self) -> None:
        with self._lock:
            for observers in self._observers.values():
                observers.clear()


__all__ = ["EventPayload", "MemoryEvent", "MemoryEvents", "Observer", "Subscription"]
