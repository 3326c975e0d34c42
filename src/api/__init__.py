"""
どこで: `api` 入口（高レベル公開 API）。
何を: `MemoryManager`/構成/イベント種別と、よく使う入出力型を再輸出。
なぜ: 利用者が単一名前空間から「記憶の作成→別キャンバスへの適応→監視」まで完結できるようにするため。

Usage:
    from api import MemoryManager

    with MemoryManager({"auto_cleanup": False}) as manager:
        sid = manager.create_shape_memory([(0, 0), (100, 0), (100, 100), (0, 100)], (400, 400))
        adapted = manager.adapt_shape_to_canvas(sid, (800, 600))
        adapted.points  # (N, 2) float64
"""

from adaptation.engine import BatchAdaptationResult
from adaptation.models import AdaptationHistory, AdaptationOptions, AdaptedShape
from common.errors import AdaptationError, AdaptationErrorType
from common.types import CanvasSize

from .events import MemoryEvent, MemoryEvents, Subscription
from .manager import MemoryManager, MemoryManagerConfig, PerformanceMetrics

__all__ = [
    # メインAPI
    "MemoryManager",
    "MemoryManagerConfig",
    "PerformanceMetrics",
    # イベント
    "MemoryEvent",
    "MemoryEvents",
    "Subscription",
    # 入出力型
    "AdaptationError",
    "AdaptationErrorType",
    "AdaptationHistory",
    "AdaptationOptions",
    "AdaptedShape",
    "BatchAdaptationResult",
    "CanvasSize",
]
