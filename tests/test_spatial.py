from __future__ import annotations

import pytest

from elevation.connector import Connector
from elevation.errors import CellBoundsError
from elevation.spatial import CellBounds, SpatialIndex, build_index


def test_bucket_keys_are_floored_grid_coordinates() -> None:
    index = SpatialIndex(100.0, margin=1.0)
    index.build([Connector(150.0, 250.0)])

    assert [key for key, _ in index.buckets()] == [(1, 2)]
    assert index.cell_bounds((1, 2)) == CellBounds(100.0, 200.0, 200.0, 300.0)


def test_negative_coordinates_floor_downwards() -> None:
    index = SpatialIndex(100.0, margin=0.0).build([Connector(-0.5, -150.0)])

    assert [key for key, _ in index.buckets()] == [(-1, -2)]


def test_margin_duplicates_connectors_straddling_a_cell_edge() -> None:
    a = Connector(99.5, 50.0)
    b = Connector(100.5, 50.0)
    index = build_index([a, b], cell_size=100.0, margin=1.0)

    keys_a = {key for key, bucket in index.buckets() if a in bucket}
    keys_b = {key for key, bucket in index.buckets() if b in bucket}
    assert keys_a == {(0, 0), (1, 0)}
    assert keys_b == {(0, 0), (1, 0)}

    # Shared by two buckets but reported once.
    assert list(index.candidate_pairs()) == [(a, b)]
    assert index.query(a) == [b]
    assert index.query(b) == [a]


def test_distant_connectors_are_never_candidates() -> None:
    a = Connector(50.0, 50.0)
    b = Connector(550.0, 50.0)
    index = build_index([a, b])

    assert list(index.candidate_pairs()) == []
    assert index.query(a) == []


def test_empty_and_single_connector_buckets() -> None:
    index = SpatialIndex(100.0).build([])
    assert len(index) == 0
    assert list(index.candidate_pairs()) == []

    lone = Connector(10.0, 10.0)
    index.build([lone])
    assert len(index) == 1
    assert list(index.candidate_pairs()) == []
    assert index.query(lone) == []


def test_degenerate_cell_bounds_are_fatal() -> None:
    with pytest.raises(CellBoundsError):
        CellBounds(10.0, 0.0, 0.0, 10.0)
    with pytest.raises(CellBoundsError):
        CellBounds(0.0, 10.0, 10.0, 0.0)
    with pytest.raises(CellBoundsError):
        SpatialIndex(0.0)
    with pytest.raises(CellBoundsError):
        SpatialIndex(-100.0)
    with pytest.raises(ValueError):
        SpatialIndex(100.0, margin=-1.0)


def test_cell_bounds_contains_with_margin() -> None:
    cell = CellBounds(0.0, 0.0, 100.0, 100.0)

    assert cell.contains(50.0, 50.0)
    assert not cell.contains(100.5, 50.0)
    assert cell.contains(100.5, 50.0, margin=1.0)
