"""
どこで: `adaptation.models`
何を: 適応の入力（コンテキスト/オプション）と出力（適応形状/指標/履歴）のデータ型。
なぜ: ルール・ルールエンジン・適応エンジン・マネージャ・エクスポートの間で同一の型を受け渡すため。

補足:
- `AdaptedShape.points` は `(N, 2) float64` の ndarray。呼び出し側が 1 回消費する出力であり保存しない。
- `AdaptationHistory` は監査用の追記専用レコード（リングバッファで保持）。
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

import numpy as np

from common.types import CanvasSize


@dataclass(frozen=True)
class AdaptationOptions:
    """`adapt_shape` の呼び出しオプション。

    - `debug_mode=None` はエンジン既定に従う。
    - `strict=True` で、境界マージン内に収まらない/キャンバス外の点がある結果を `VALIDATION_FAILED` とする。
    """

    debug_mode: bool | None = None
    preserve_aspect_ratio: bool = True
    center_shape: bool = True
    validate_result: bool = True
    strict: bool = False

    @classmethod
    def coerce(cls, value: "AdaptationOptions | Mapping[str, Any] | None") -> "AdaptationOptions":
        if value is None:
            return cls()
        if isinstance(value, AdaptationOptions):
            return value
        known = {k: v for k, v in dict(value).items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class AdaptationContext:
    source_canvas: CanvasSize
    target_canvas: CanvasSize
    debug_mode: bool = False
    preserve_aspect_ratio: bool = True
    center_shape: bool = True
    strict: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_canvas": self.source_canvas.to_dict(),
            "target_canvas": self.target_canvas.to_dict(),
            "debug_mode": self.debug_mode,
            "preserve_aspect_ratio": self.preserve_aspect_ratio,
            "center_shape": self.center_shape,
            "strict": self.strict,
        }


@dataclass
class AdaptationMetrics:
    scale_factor: float = 1.0
    center_offset: tuple[float, float] = (0.0, 0.0)
    boundary_fit: float = 1.0
    fidelity: float = 1.0
    processing_time: float = 0.0

    @classmethod
    def zero(cls, processing_time: float = 0.0) -> "AdaptationMetrics":
        return cls(
            scale_factor=0.0,
            center_offset=(0.0, 0.0),
            boundary_fit=0.0,
            fidelity=0.0,
            processing_time=processing_time,
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["center_offset"] = {"x": float(self.center_offset[0]), "y": float(self.center_offset[1])}
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdaptationMetrics":
        off = data.get("center_offset") or {}
        if isinstance(off, Mapping):
            offset = (float(off.get("x", 0.0)), float(off.get("y", 0.0)))
        else:
            offset = (float(off[0]), float(off[1]))
        return cls(
            scale_factor=float(data.get("scale_factor", 1.0)),
            center_offset=offset,
            boundary_fit=float(data.get("boundary_fit", 1.0)),
            fidelity=float(data.get("fidelity", 1.0)),
            processing_time=float(data.get("processing_time", 0.0)),
        )


@dataclass
class AdaptedShape:
    shape_id: str
    points: np.ndarray
    canvas_size: CanvasSize
    adaptation_metrics: AdaptationMetrics
    timestamp: float = field(default_factory=time.time)
    source_memory_checksum: str = ""

    def to_points(self) -> list[tuple[float, float]]:
        return [(float(x), float(y)) for x, y in np.asarray(self.points)]


@dataclass
class AdaptationHistory:
    adaptation_id: str
    memory_id: str
    source_canvas: CanvasSize
    target_canvas: CanvasSize
    metrics: AdaptationMetrics
    success: bool
    timestamp: float = field(default_factory=time.time)
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "adaptation_id": self.adaptation_id,
            "memory_id": self.memory_id,
            "source_canvas": self.source_canvas.to_dict(),
            "target_canvas": self.target_canvas.to_dict(),
            "metrics": self.metrics.to_dict(),
            "success": self.success,
            "timestamp": self.timestamp,
            "error": self.error,
            "error_type": self.error_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdaptationHistory":
        return cls(
            adaptation_id=str(data["adaptation_id"]),
            memory_id=str(data["memory_id"]),
            source_canvas=CanvasSize.coerce(data["source_canvas"]),
            target_canvas=CanvasSize.coerce(data["target_canvas"]),
            metrics=AdaptationMetrics.from_dict(data.get("metrics") or {}),
            success=bool(data["success"]),
            timestamp=float(data.get("timestamp", 0.0)),
            error=data.get("error"),
            error_type=data.get("error_type"),
        )


__all__ = [
    "AdaptationOptions",
    "AdaptationContext",
    "AdaptationMetrics",
    "AdaptedShape",
    "AdaptationHistory",
]
