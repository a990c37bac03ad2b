"""Minimal road topology consumed by the graph builder and lane propagation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

from elevation.connector import Connector


@dataclass(frozen=True)
class MapNode:
    node_id: int
    x: float
    z: float


@dataclass(eq=False)
class Road:
    """A road between two map nodes with its subdivision and lane connectors."""

    start: MapNode
    end: MapNode
    centerline: list[Connector] = field(default_factory=list)
    left: list[Connector] = field(default_factory=list)
    right: list[Connector] = field(default_factory=list)


class RoadTopology(Protocol):
    def connected_roads(self, node: MapNode) -> list[Road]:
        ...


class RoadNetwork:
    """In-memory road topology keyed by map node."""

    def __init__(self, roads: Iterable[Road] = ()) -> None:
        self._by_node: dict[MapNode, list[Road]] = {}
        for road in roads:
            self.add_road(road)

    def add_road(self, road: Road) -> None:
        self._by_node.setdefault(road.start, []).append(road)
        if road.end != road.start:
            self._by_node.setdefault(road.end, []).append(road)

    def connected_roads(self, node: MapNode) -> list[Road]:
        return list(self._by_node.get(node, ()))
