from __future__ import annotations

import numpy as np
import pytest

from elevation.connector import Connector, ConnectorRegistry
from elevation.lanes import (
    copy_lane,
    fill_centerline,
    full_centerline,
    interpolate_path,
    propagate_lane_heights,
    resample_indices,
)
from elevation.network import MapNode, Road


def test_ratio_resampling_duplicates_each_source_value() -> None:
    assert resample_indices(3, 6).tolist() == [0, 0, 1, 1, 2, 2]

    heights = np.array([1.0, 2.0, 3.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    written = copy_lane(heights, [0, 1, 2], [3, 4, 5, 6, 7, 8])

    assert written == 6
    assert heights[3:].tolist() == [1.0, 1.0, 2.0, 2.0, 3.0, 3.0]


def test_equal_lengths_copy_index_for_index() -> None:
    assert resample_indices(4, 4).tolist() == [0, 1, 2, 3]

    heights = np.array([1.0, 2.0, 0.0, 0.0])
    copy_lane(heights, [0, 1], [2, 3])
    assert heights.tolist() == [1.0, 2.0, 1.0, 2.0]


def test_resampling_is_clamped_to_last_source_index() -> None:
    assert resample_indices(6, 3).tolist() == [0, 2, 4]
    assert resample_indices(4, 2).tolist() == [0, 2]
    assert resample_indices(3, 2).tolist() == [0, 2]
    for source_len in range(1, 9):
        for dest_len in range(1, 9):
            idx = resample_indices(source_len, dest_len)
            assert idx.shape == (dest_len,)
            assert idx.min() >= 0
            assert idx.max() <= source_len - 1
            assert np.all(np.diff(idx) >= 0)


def test_empty_lanes_are_a_no_op() -> None:
    heights = np.array([1.0, 2.0])

    assert copy_lane(heights, [0, 1], []) == 0
    assert copy_lane(heights, [], [0, 1]) == 0
    assert heights.tolist() == [1.0, 2.0]
    assert resample_indices(0, 3).size == 0


def test_interpolate_path_blends_by_horizontal_distance() -> None:
    xz = np.array([[0.0, 0.0], [1.0, 0.0], [4.0, 0.0]])

    assert interpolate_path(xz, 2.0, 6.0) == pytest.approx([2.0, 3.0, 6.0])

    diagonal = np.array([[0.0, 0.0], [3.0, 4.0], [6.0, 8.0]])
    assert interpolate_path(diagonal, 0.0, 10.0) == pytest.approx([0.0, 5.0, 10.0])


def test_interpolate_zero_length_path_uses_mean() -> None:
    xz = np.array([[1.0, 1.0], [1.0, 1.0]])

    assert interpolate_path(xz, 2.0, 4.0).tolist() == [3.0, 3.0]
    assert interpolate_path(np.zeros((0, 2)), 1.0, 2.0).size == 0


def _straight_road() -> tuple[ConnectorRegistry, Road, list[Connector]]:
    a = MapNode(1, 0.0, 0.0)
    b = MapNode(2, 10.0, 0.0)
    ca = Connector(0.0, 0.0, reference=a)
    cb = Connector(10.0, 0.0, reference=b)
    mid = Connector(4.0, 0.0)
    left = [Connector(0.0, 1.0), Connector(4.0, 1.0), Connector(10.0, 1.0)]
    right = [Connector(0.0, -1.0), Connector(10.0, -1.0)]
    registry = ConnectorRegistry()
    registry.add([ca, cb, mid, *left, *right])
    return registry, Road(a, b, centerline=[mid], left=left, right=right), [ca, mid, cb]


def test_full_centerline_includes_road_ends() -> None:
    registry, road, expected = _straight_road()

    assert full_centerline(registry, road) == expected


def test_fill_centerline_only_touches_unsolved_points() -> None:
    registry, road, centerline = _straight_road()
    heights = np.zeros(len(registry))
    heights[0] = 0.0
    heights[1] = 5.0

    assert fill_centerline(heights, registry, centerline, solved=[0, 1, 2]) == 0
    assert heights[2] == 0.0

    assert fill_centerline(heights, registry, centerline, solved=[0, 1]) == 1
    assert heights[2] == pytest.approx(2.0)


def test_propagation_copies_centerline_onto_both_lanes() -> None:
    registry, road, centerline = _straight_road()
    heights = np.zeros(len(registry))
    heights[registry.ids_of(centerline)] = [1.0, 2.0, 3.0]

    metrics = propagate_lane_heights(heights, registry, [road], graph_nodes=[0, 1, 2])

    assert metrics.roads_processed == 1
    assert metrics.lane_connectors_written == 5
    assert heights[registry.ids_of(road.left)].tolist() == [1.0, 2.0, 3.0]
    assert heights[registry.ids_of(road.right)].tolist() == [1.0, 3.0]


def test_road_with_unregistered_end_is_ignored() -> None:
    registry, road, _ = _straight_road()
    stray = Road(MapNode(9, 0.0, 0.0), road.end, left=list(road.left))
    heights = np.zeros(len(registry))

    metrics = propagate_lane_heights(heights, registry, [stray])

    assert metrics.roads_processed == 0
    assert not heights.any()
