"""
どこで: `topology.checksum`
何を: トポロジの正規化 JSON に対する 32bit ローリングハッシュ（非暗号）を生成する。
なぜ: 保存済みメモリの偶発的破損/改変を検出する「ヒント」として使うため（衝突耐性は保証しない）。

正規化規則:
- ノード: id 昇順。`{id, type, x_ratio, y_ratio(小数 4 桁), connections(昇順)}`。
- 関係: `"from-to"` 昇順。`{from, to, type, strength(小数 3 桁)}`。
- 境界: `{aspect_ratio, complexity, area}`（小数 3 桁）。対称性はハッシュ対象外。
- 丸めは half-up（`floor(v * 10^d + 0.5) / 10^d`）。整数値になった数は整数として出力する。
- JSON は区切り空白なしのコンパクト表記。
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from .models import CleanTopology, ShapeTopology

logger = logging.getLogger(__name__)

INVALID_CHECKSUM = "invalid"


def _round_half_up(value: float, digits: int) -> float | int:
    scale = 10.0**digits
    r = math.floor(float(value) * scale + 0.5) / scale
    return int(r) if r.is_integer() else r


def normalized_payload(topology: ShapeTopology | CleanTopology) -> dict[str, Any]:
    """ハッシュ対象の正規化表現（dict）を返す。"""
    nodes = sorted(
        (
            {
                "id": n.id,
                "type": n.type,
                "x_ratio": _round_half_up(n.relative_position.x_ratio, 4),
                "y_ratio": _round_half_up(n.relative_position.y_ratio, 4),
                "connections": sorted(n.connections),
            }
            for n in topology.nodes
        ),
        key=lambda d: d["id"],
    )
    rels = sorted(
        (
            {
                "from": r.from_node_id,
                "to": r.to_node_id,
                "type": r.type,
                "strength": _round_half_up(r.strength, 3),
            }
            for r in topology.relationships
        ),
        key=lambda d: f"{d['from']}-{d['to']}",
    )
    info = topology.bounding_info
    return {
        "nodes": nodes,
        "relationships": rels,
        "bounding_info": {
            "aspect_ratio": _round_half_up(info.aspect_ratio, 3),
            "complexity": _round_half_up(info.complexity, 3),
            "area": _round_half_up(info.area, 3),
        },
    }


def rolling_hash(text: str) -> str:
    """`h = h * 31 + code` を符号付き 32bit に畳み込み、絶対値を小文字 16 進で返す。"""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return format(abs(h), "x")


def generate_checksum(topology: ShapeTopology | CleanTopology) -> str:
    """トポロジのチェックサム。生成できない場合は `"invalid"`（一致判定で必ず失敗させる）。"""
    try:
        text = json.dumps(
            normalized_payload(topology), separators=(",", ":"), ensure_ascii=False, allow_nan=False
        )
    except (TypeError, ValueError, AttributeError, OverflowError) as e:
        logger.warning("checksum generation failed: %s", e)
        return INVALID_CHECKSUM
    return rolling_hash(text)


def verify_checksum(topology: ShapeTopology, checksum: str) -> bool:
    if not checksum or checksum == INVALID_CHECKSUM:
        return False
    return generate_checksum(topology) == checksum


__all__ = [
    "INVALID_CHECKSUM",
    "normalized_payload",
    "rolling_hash",
    "generate_checksum",
    "verify_checksum",
]
