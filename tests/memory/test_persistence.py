from __future__ import annotations

import json

import pytest

from common.errors import InputValidationError
from memory.persistence import default_export_path, load_export, save_export
from memory.storage import MemoryStorage
from topology.checksum import verify_checksum
from topology.extractor import extract_topology

# What this tests
# - JSON 保存→読込でメモリとチェックサムが保たれる（再取り込み可能）
# - 不正 JSON/構造欠損は InputValidationError
# - 既定保存先のファイル名規約


def test_save_and_load_roundtrip(tmp_path, square_pts, star_pts) -> None:
    storage = MemoryStorage(max_memories=5)
    storage.store("sq", extract_topology(square_pts), (400, 400))
    storage.store("star", extract_topology(star_pts), (400, 400))

    path = save_export(storage.export_memories("backup"), tmp_path / "nested" / "out.json")
    assert path.exists()
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["metadata"]["export_reason"] == "backup"

    loaded = load_export(path)
    assert {m.id for m in loaded.memories} == {"sq", "star"}
    for memory in loaded.memories:
        assert verify_checksum(memory.topology, memory.checksum)

    fresh = MemoryStorage(max_memories=5)
    assert fresh.import_memories(loaded) == 2
    assert fresh.retrieve("star") is not None


def test_load_rejects_invalid_json(tmp_path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(InputValidationError):
        load_export(broken)

    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(InputValidationError):
        load_export(listing)

    partial = tmp_path / "partial.json"
    partial.write_text(json.dumps({"memories": [{"id": "x"}]}), encoding="utf-8")
    with pytest.raises(InputValidationError):
        load_export(partial)


def test_load_missing_file_raises_oserror(tmp_path) -> None:
    with pytest.raises(OSError):
        load_export(tmp_path / "nope.json")


def test_default_export_path_naming() -> None:
    path = default_export_path()
    assert path.name.startswith("memories_")
    assert path.suffix == ".json"
