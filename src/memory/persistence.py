"""
どこで: `memory.persistence`
何を: `MemoryExport` を JSON ファイルへ保存/復元するヘルパ。
なぜ: 保存層はプロセス内キャッシュのため、セッションを跨いで記憶を持ち越す手段を別途用意するため。

仕様（要点）:
- 保存先: 引数 `path` があればそれを使う。省略時は `data/exports/memories_<UTC時刻>.json`。
  ディレクトリは設定 `persistence.export_dir` で上書き可。
- 形式: `MemoryExport.to_dict()` をそのまま JSON 化（インデント 2, UTF-8）。
- 読込は構造を `MemoryExport.from_dict` で復元するだけで、整合性検査は取り込み側
  （`MemoryStorage.import_memories`）が行う。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from common.errors import InputValidationError
from util.config import load_section

from .models import MemoryExport

logger = logging.getLogger(__name__)


def _resolve_export_dir() -> Path:
    export_dir = load_section("persistence").get("export_dir")
    if isinstance(export_dir, str) and export_dir.strip():
        return Path(export_dir)
    return Path.cwd() / "data" / "exports"


def default_export_path() -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return _resolve_export_dir() / f"memories_{stamp}.json"


def save_export(export: MemoryExport, path: str | Path | None = None) -> Path:
    """エクスポートを JSON に保存し、書き込んだパスを返す。

    Raises
    ------
    OSError
        書き込みに失敗した場合（呼び出し側が明示的に要求した保存のため握りつぶさない）。
    """
    target = Path(path) if path is not None else default_export_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as f:
        json.dump(export.to_dict(), f, ensure_ascii=False, indent=2)
    logger.info(
        "saved %d memories / %d history entries to %s",
        len(export.memories),
        len(export.adaptation_history),
        target,
    )
    return target


def load_export(path: str | Path) -> MemoryExport:
    """JSON からエクスポートを復元する。

    Raises
    ------
    OSError
        ファイルが読めない場合。
    InputValidationError
        JSON として不正、または必須フィールドが欠けている場合。
    """
    source = Path(path)
    with source.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InputValidationError(f"export file is not valid JSON: {source}") from e
    if not isinstance(data, dict):
        raise InputValidationError(f"export file must contain an object: {source}")
    try:
        export = MemoryExport.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise InputValidationError(f"malformed export file {source}: {e}") from e
    logger.debug("loaded export %s (version=%s)", source, export.version)
    return export


__all__ = ["default_export_path", "save_export", "load_export"]
