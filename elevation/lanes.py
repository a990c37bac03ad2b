"""Propagation of solved heights onto lane-edge connectors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from elevation.connector import Connector, ConnectorRegistry
from elevation.network import Road


@dataclass(frozen=True)
class LaneMetrics:
    roads_processed: int
    lane_connectors_written: int
    centerline_connectors_interpolated: int


def resample_indices(source_len: int, dest_len: int) -> np.ndarray:
    """Nearest-neighbor source index for every destination index.

    Equal lengths map index for index. A shorter destination takes source
    index `round(i * source_len / dest_len)`, rounding halves up. A longer
    destination floors the same position instead, so a 3 element source
    spread over 6 destinations repeats each value twice. Either way the first
    destination takes the first source and indices are clamped to the last
    source index.
    """

    if source_len < 0 or dest_len < 0:
        raise ValueError("sequence lengths must be non-negative")
    if dest_len == 0 or source_len == 0:
        return np.zeros(0, dtype=np.int64)
    if source_len == dest_len:
        return np.arange(dest_len, dtype=np.int64)
    ratio = source_len / dest_len
    pos = np.arange(dest_len, dtype=np.float64) * ratio
    if ratio > 1.0:
        pos += 0.5
    idx = np.floor(pos).astype(np.int64)
    return np.minimum(idx, source_len - 1)


def copy_lane(heights: np.ndarray, source_ids: Sequence[int], dest_ids: Sequence[int]) -> int:
    """Copy heights from a source id sequence onto a destination id sequence."""

    if len(dest_ids) == 0 or len(source_ids) == 0:
        return 0
    src = np.asarray(source_ids, dtype=np.int64)
    dst = np.asarray(dest_ids, dtype=np.int64)
    heights[dst] = heights[src[resample_indices(src.shape[0], dst.shape[0])]]
    return int(dst.shape[0])


def cumulative_distance(xz: np.ndarray) -> np.ndarray:
    xz = np.asarray(xz, dtype=np.float64).reshape(-1, 2)
    if xz.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    steps = np.hypot(np.diff(xz[:, 0]), np.diff(xz[:, 1]))
    return np.concatenate(([0.0], np.cumsum(steps)))


def interpolate_path(xz: np.ndarray, start_height: float, end_height: float) -> np.ndarray:
    """Heights blended linearly by horizontal distance along a polyline.

    The first point gets `start_height`, the last `end_height`. A path of zero
    length gets the mean of both.
    """

    pos = cumulative_distance(xz)
    if pos.shape[0] == 0:
        return pos
    length = float(pos[-1])
    if length <= 0.0:
        return np.full(pos.shape, 0.5 * (start_height + end_height), dtype=np.float64)
    t = pos / length
    return end_height * t + start_height * (1.0 - t)


def _xz(connectors: Iterable[Connector]) -> np.ndarray:
    return np.asarray([c.pos_xz for c in connectors], dtype=np.float64).reshape(-1, 2)


def full_centerline(registry: ConnectorRegistry, road: Road) -> list[Connector] | None:
    """Road end connectors with the registered subdivision points between them."""

    start = registry.connector_for(road.start)
    end = registry.connector_for(road.end)
    if start is None or end is None:
        return None
    inner = [c for c in road.centerline if c in registry and c is not start and c is not end]
    return [start, *inner, end]


def fill_centerline(
    heights: np.ndarray,
    registry: ConnectorRegistry,
    centerline: Sequence[Connector],
    solved: Iterable[int] | None = None,
) -> int:
    """Interpolate inner centerline points that have no solved height.

    With `solved=None` every inner point is treated as unsolved.
    """

    if len(centerline) < 3:
        return 0
    ids = registry.ids_of(centerline)
    solved_set = None if solved is None else set(solved)
    targets = [k for k in range(1, len(ids) - 1) if solved_set is None or ids[k] not in solved_set]
    if not targets:
        return 0
    values = interpolate_path(_xz(centerline), heights[ids[0]], heights[ids[-1]])
    for k in targets:
        heights[ids[k]] = values[k]
    return len(targets)


def interpolate_lane(heights: np.ndarray, registry: ConnectorRegistry, lane: Sequence[Connector], start: Connector, end: Connector) -> int:
    """Blend a lane edge between the heights of the road's end connectors."""

    lane = [c for c in lane if c in registry]
    if not lane:
        return 0
    values = interpolate_path(_xz(lane), heights[registry.index_of(start)], heights[registry.index_of(end)])
    heights[registry.ids_of(lane)] = values
    return len(lane)


def propagate_lane_heights(
    heights: np.ndarray,
    registry: ConnectorRegistry,
    roads: Iterable[Road],
    *,
    graph_nodes: Iterable[int] | None = None,
    interpolate_missing_centerline: bool = True,
) -> LaneMetrics:
    """Fan solved centerline heights out to left and right lane connectors."""

    solved = None if graph_nodes is None else set(graph_nodes)
    processed = 0
    written = 0
    interpolated = 0
    for road in roads:
        centerline = full_centerline(registry, road)
        if centerline is None:
            continue
        processed += 1
        if interpolate_missing_centerline and solved is not None:
            interpolated += fill_centerline(heights, registry, centerline, solved)
        source = registry.ids_of(centerline)
        for lane in (road.left, road.right):
            written += copy_lane(heights, source, [registry.index_of(c) for c in lane if c in registry])

    return LaneMetrics(
        roads_processed=processed,
        lane_connectors_written=written,
        centerline_connectors_interpolated=interpolated,
    )
