"""
どこで: `memory` パッケージ。
何を: 形状メモリの保存単位/保存層/座標クリーナ/JSON 入出力。
なぜ: 「記憶の保持と健全性」を適応処理から切り離して扱うため。
"""

from .cleaner import (
    CleaningOptions,
    CleaningResult,
    CleaningStats,
    CoordinateCleaner,
    IntegrityReport,
)
from .models import (
    EXPORT_VERSION,
    ExportMetadata,
    MemoryExport,
    MemorySnapshot,
    MemoryStatus,
    ShapeMemory,
    ShapeMetadata,
)
from .persistence import load_export, save_export
from .storage import MemoryStorage, validate_memory_integrity

__all__ = [
    "CleaningOptions",
    "CleaningResult",
    "CleaningStats",
    "CoordinateCleaner",
    "EXPORT_VERSION",
    "ExportMetadata",
    "IntegrityReport",
    "MemoryExport",
    "MemorySnapshot",
    "MemoryStatus",
    "MemoryStorage",
    "ShapeMemory",
    "ShapeMetadata",
    "load_export",
    "save_export",
    "validate_memory_integrity",
]
