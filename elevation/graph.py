"""Distance-weighted connectivity graph over registered connectors."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np
from scipy import sparse

from elevation.connector import Connector, ConnectorRegistry
from elevation.network import MapNode, Road, RoadTopology


@dataclass(frozen=True)
class GraphReport:
    node_count: int
    edge_count: int
    roads_visited: int
    roads_skipped: int


class ConnectivityGraph:
    """Undirected weighted graph keyed by connector id.

    Each edge is stored once per endpoint, so a traversal reaches the other
    end from either side. Re-adding an existing pair is a no-op.
    """

    def __init__(self) -> None:
        self._adjacency: dict[int, dict[int, float]] = {}
        self._edge_count = 0

    def __len__(self) -> int:
        return len(self._adjacency)

    def __contains__(self, node: int) -> bool:
        return node in self._adjacency

    @property
    def edge_count(self) -> int:
        return self._edge_count

    @property
    def nodes(self) -> list[int]:
        return list(self._adjacency)

    def add_edge(self, a: int, b: int, weight: float) -> bool:
        """Insert edge a-b and return whether it was new."""

        if a == b:
            return False
        if weight < 0 or not np.isfinite(weight):
            raise ValueError(f"edge weight must be a finite non-negative distance, got {weight}")
        neighbors_a = self._adjacency.setdefault(a, {})
        if b in neighbors_a:
            return False
        neighbors_a[b] = float(weight)
        self._adjacency.setdefault(b, {})[a] = float(weight)
        self._edge_count += 1
        return True

    def has_edge(self, a: int, b: int) -> bool:
        return b in self._adjacency.get(a, {})

    def weight(self, a: int, b: int) -> float:
        return self._adjacency[a][b]

    def neighbors(self, node: int) -> dict[int, float]:
        return dict(self._adjacency.get(node, {}))

    def edges(self) -> Iterator[tuple[int, int, float]]:
        for a, neighbors in self._adjacency.items():
            for b, weight in neighbors.items():
                if a < b:
                    yield a, b, weight

    def reachable(self, source: int, target: int) -> bool:
        if source not in self._adjacency:
            return False
        seen = {source}
        queue = deque([source])
        while queue:
            node = queue.popleft()
            if node == target:
                return True
            for other in self._adjacency[node]:
                if other not in seen:
                    seen.add(other)
                    queue.append(other)
        return False

    def coupling_matrix(
        self,
        node_count: int,
        *,
        conductance: float = 1.0,
        min_distance_sq: float = 5.0,
    ) -> sparse.csr_matrix:
        """Symmetric matrix of `conductance / max(d^2, min_distance_sq)` per edge."""

        if min_distance_sq <= 0:
            raise ValueError("min_distance_sq must be positive")
        rows: list[int] = []
        cols: list[int] = []
        data: list[float] = []
        for a, b, distance in self.edges():
            coupling = conductance / max(distance * distance, min_distance_sq)
            rows.extend((a, b))
            cols.extend((b, a))
            data.extend((coupling, coupling))
        return sparse.csr_matrix(
            (np.asarray(data, dtype=np.float64), (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
            shape=(node_count, node_count),
        )


def connect(graph: ConnectivityGraph, registry: ConnectorRegistry, a: Connector, b: Connector) -> bool:
    """Link two registered connectors by their horizontal distance."""

    return graph.add_edge(registry.index_of(a), registry.index_of(b), a.distance_xz(b))


def connect_chain(graph: ConnectivityGraph, registry: ConnectorRegistry, chain: Iterable[Connector]) -> int:
    added = 0
    previous: Connector | None = None
    for connector in chain:
        if previous is not None and connect(graph, registry, previous, connector):
            added += 1
        previous = connector
    return added


def _connect_road(
    graph: ConnectivityGraph,
    registry: ConnectorRegistry,
    node_connector: Connector,
    road: Road,
) -> bool:
    start = registry.connector_for(road.start)
    end = registry.connector_for(road.end)
    if start is None or end is None:
        return False

    centerline = [c for c in road.centerline if c in registry]
    if not centerline:
        connect(graph, registry, node_connector, end)
        connect(graph, registry, node_connector, start)
        return True

    # Node connectors coincide with one of the road ends; linking to the closer
    # end avoids a long edge past the subdivision chain.
    if node_connector.distance_xz(end) > node_connector.distance_xz(start):
        connect(graph, registry, node_connector, start)
    else:
        connect(graph, registry, node_connector, end)
    connect_chain(graph, registry, [start, *centerline, end])
    return True


def build_connectivity_graph(
    registry: ConnectorRegistry,
    topology: RoadTopology | None,
    links: Iterable[tuple[Connector, Connector]] = (),
) -> tuple[ConnectivityGraph, GraphReport]:
    """Build the relaxation graph from road topology and declared links."""

    graph = ConnectivityGraph()
    visited = 0
    skipped = 0
    if topology is not None:
        for connector in registry:
            node = connector.reference
            if not isinstance(node, MapNode):
                continue
            if registry.connector_for(node) is not connector:
                continue
            for road in topology.connected_roads(node):
                visited += 1
                if not _connect_road(graph, registry, connector, road):
                    skipped += 1

    for a, b in links:
        if a in registry and b in registry:
            connect(graph, registry, a, b)

    report = GraphReport(
        node_count=len(graph),
        edge_count=graph.edge_count,
        roads_visited=visited,
        roads_skipped=skipped,
    )
    return graph, report
