"""共通フィクスチャ。

- 乱数シード固定
- 代表的な形状試料（正方形/長方形/三角形/星形）
- 自動クリーンアップを無効にしたマネージャ
"""

from __future__ import annotations

import math
from typing import Iterator

import numpy as np
import pytest

from api.manager import MemoryManager, MemoryManagerConfig
from common import settings as settings_mod
from memory.storage import MemoryStorage


@pytest.fixture(scope="session", autouse=True)
def np_seed() -> None:
    """NumPy の乱数を固定。"""
    np.random.seed(12345)


@pytest.fixture()
def square_pts() -> np.ndarray:
    return np.array([[0.0, 0.0], [100.0, 0.0], [100.0, 100.0], [0.0, 100.0]])


@pytest.fixture()
def rect_pts() -> np.ndarray:
    # 幅 200, 高さ 100（縦横比 2）
    return np.array([[0.0, 0.0], [200.0, 0.0], [200.0, 100.0], [0.0, 100.0]])


@pytest.fixture()
def triangle_pts() -> np.ndarray:
    return np.array([[0.0, 0.0], [100.0, 0.0], [50.0, 80.0]])


@pytest.fixture()
def star_pts() -> np.ndarray:
    pts = []
    for k in range(10):
        r = 100.0 if k % 2 == 0 else 40.0
        a = -math.pi / 2 + k * math.pi / 5
        pts.append([200.0 + r * math.cos(a), 200.0 + r * math.sin(a)])
    return np.array(pts)


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage(max_memories=10, enable_integrity_check=True)


@pytest.fixture()
def manager() -> Iterator[MemoryManager]:
    m = MemoryManager(MemoryManagerConfig(auto_cleanup=False))
    yield m
    m.destroy()


@pytest.fixture()
def env_reset(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """`SHM_*` を変更するテスト用。終了時に設定を既定へ戻す。"""
    yield monkeypatch
    monkeypatch.undo()
    settings_mod.reload_from_env()
