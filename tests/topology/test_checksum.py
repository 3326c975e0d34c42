from __future__ import annotations

from topology.checksum import (
    INVALID_CHECKSUM,
    generate_checksum,
    normalized_payload,
    rolling_hash,
    verify_checksum,
)
from topology.extractor import extract_topology

# What this tests
# - ローリングハッシュの既知値と符号付き 32bit 畳み込み
# - 正規化（丸め/整列）による決定性
# - 改変検出と "invalid" の扱い


def test_rolling_hash_known_values() -> None:
    assert rolling_hash("") == "0"
    # "a" = 97
    assert rolling_hash("a") == "61"
    # "ab" = 97 * 31 + 98 = 3105
    assert rolling_hash("ab") == format(3105, "x")


def test_rolling_hash_wraps_to_signed_32bit() -> None:
    h = rolling_hash("x" * 200)
    assert int(h, 16) <= 2**31


def test_checksum_is_deterministic_and_order_insensitive(square_pts) -> None:
    a = extract_topology(square_pts)
    b = extract_topology(square_pts)
    b.nodes.reverse()
    b.relationships.reverse()
    assert generate_checksum(a) == generate_checksum(b)


def test_rounding_absorbs_tiny_noise(square_pts) -> None:
    a = extract_topology(square_pts)
    b = a.copy()
    b.nodes[1].relative_position.x_ratio -= 1e-7
    assert generate_checksum(a) == generate_checksum(b)


def test_normalized_payload_writes_integral_values_as_int(square_pts) -> None:
    payload = normalized_payload(extract_topology(square_pts))
    node = payload["nodes"][1]
    assert node["x_ratio"] == 1 and isinstance(node["x_ratio"], int)
    assert payload["bounding_info"]["area"] == 1


def test_verify_detects_tampering(square_pts) -> None:
    topo = extract_topology(square_pts)
    checksum = generate_checksum(topo)
    assert verify_checksum(topo, checksum)
    topo.nodes[0].relative_position.x_ratio = 0.5
    assert not verify_checksum(topo, checksum)


def test_invalid_checksum_never_verifies(square_pts) -> None:
    topo = extract_topology(square_pts)
    topo.bounding_info.complexity = float("nan")
    assert generate_checksum(topo) == INVALID_CHECKSUM
    assert not verify_checksum(topo, INVALID_CHECKSUM)
    assert not verify_checksum(topo, "")
