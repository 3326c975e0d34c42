import numpy as np
import pytest

hypothesis = pytest.importorskip("hypothesis", reason="hypothesis is a dev optional dependency")
from hypothesis import given, settings, strategies as st  # type: ignore

from adaptation.engine import AdaptationEngine
from memory.storage import MemoryStorage
from topology.extractor import extract_topology

_STAR = np.array(
    [
        [200.0 + (100.0 if k % 2 == 0 else 40.0) * np.cos(-np.pi / 2 + k * np.pi / 5),
         200.0 + (100.0 if k % 2 == 0 else 40.0) * np.sin(-np.pi / 2 + k * np.pi / 5)]
        for k in range(10)
    ]
)


def _engine():
    storage = MemoryStorage(max_memories=2)
    storage.store("star", extract_topology(_STAR), (400, 400))
    return AdaptationEngine(storage)


_ENGINE = _engine()


@settings(max_examples=50, deadline=None)
@given(w=st.floats(20, 4000), h=st.floats(20, 4000))
def test_adapted_shape_is_centered_and_sized(w, h):
    adapted = _ENGINE.adapt_shape("star", (w, h))
    pts = adapted.points
    center = (pts.max(axis=0) + pts.min(axis=0)) / 2
    np.testing.assert_allclose(center, [w / 2, h / 2], rtol=1e-9, atol=1e-6)
    diameter = (pts.max(axis=0) - pts.min(axis=0)).max()
    assert diameter == pytest.approx(0.3 * min(w, h), rel=1e-9)


@settings(max_examples=30, deadline=None)
@given(scale=st.floats(0.01, 1000), dx=st.floats(-1e3, 1e3), dy=st.floats(-1e3, 1e3))
def test_extraction_ignores_scale_and_translation(scale, dx, dy):
    base = extract_topology(_STAR)
    moved = extract_topology(_STAR * scale + np.array([dx, dy]))
    a = np.array([[n.relative_position.x_ratio, n.relative_position.y_ratio] for n in base.nodes])
    b = np.array([[n.relative_position.x_ratio, n.relative_position.y_ratio] for n in moved.nodes])
    np.testing.assert_allclose(a, b, atol=1e-7)
