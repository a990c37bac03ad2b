"""Elevation constraint enforcers.

Upstream feature code registers connectors and declares constraints between
them, then calls `enforce_constraints()` once. All strategies share the
registration surface and lifecycle; they differ only in how the final
vertical coordinates are derived.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
import math
import time
from typing import Iterable, Sequence

import numpy as np

from elevation.config import EnforcerConfig, STRATEGIES
from elevation.connector import Connector, ConnectorRegistry
from elevation.diffusion import StepObserver, initial_heights, run_diffusion
from elevation.errors import InvalidStateError
from elevation.graph import ConnectivityGraph, GraphReport, build_connectivity_graph
from elevation.lanes import fill_centerline, full_centerline, interpolate_lane, propagate_lane_heights
from elevation.network import MapNode, Road, RoadTopology
from elevation.spatial import SpatialIndex
from elevation.stiff import StiffGroups


class ConstraintType(Enum):
    MIN = "min"
    MAX = "max"
    EXACT = "exact"


@dataclass(frozen=True)
class VerticalDistanceConstraint:
    type: ConstraintType
    distance: float
    upper: Connector
    bases: tuple[Connector, ...]


@dataclass(frozen=True)
class InclineConstraint:
    type: ConstraintType
    incline: float
    connectors: tuple[Connector, ...]


@dataclass(frozen=True)
class SmoothnessConstraint:
    source: Connector
    via: Connector
    target: Connector


@dataclass(frozen=True)
class EnforcementMetrics:
    strategy: str
    connector_count: int
    stiff_group_count: int
    constraint_count: int
    graph_node_count: int = 0
    graph_edge_count: int = 0
    roads_skipped: int = 0
    diffusion_steps: int = 0
    simulated_time: float = 0.0
    max_delta: float = 0.0
    converged: bool = False
    lane_connectors_written: int = 0
    centerline_connectors_interpolated: int = 0
    enforce_seconds: float = 0.0


@dataclass
class SolveContext:
    """Per-pass state handed from one pipeline phase to the next."""

    registry: ConnectorRegistry
    groups: StiffGroups
    ground: np.ndarray
    roads: list[Road] = field(default_factory=list)
    graph: ConnectivityGraph | None = None
    graph_report: GraphReport | None = None
    heights: np.ndarray | None = None


class EleConstraintEnforcer(ABC):
    """Shared registration surface and single-use lifecycle."""

    strategy = ""

    def __init__(self, config: EnforcerConfig | None = None, topology: RoadTopology | None = None) -> None:
        self.config = config or EnforcerConfig(strategy=self.strategy)
        self.topology = topology
        self.metrics: EnforcementMetrics | None = None
        self._registry = ConnectorRegistry()
        self._groups = StiffGroups()
        self._constraints: list[object] = []
        self._links: list[tuple[Connector, Connector]] = []
        self._enforced = False
        self._index = SpatialIndex(self.config.spatial.cell_size, margin=self.config.spatial.margin)

    @property
    def connectors(self) -> list[Connector]:
        return list(self._registry)

    @property
    def constraints(self) -> list[object]:
        return list(self._constraints)

    @property
    def registry(self) -> ConnectorRegistry:
        return self._registry

    @property
    def groups(self) -> StiffGroups:
        return self._groups

    def _check_open(self) -> None:
        if self._enforced:
            raise InvalidStateError("enforce_constraints() has already run; no further declarations are accepted")

    def _ids(self, connectors: Iterable[Connector]) -> list[int]:
        ids = []
        for c in connectors:
            if c not in self._registry:
                raise ValueError(f"constraint references an unregistered connector: {c!r}")
            ids.append(self._registry.index_of(c))
        return ids

    def add_connectors(self, connectors: Iterable[Connector]) -> None:
        """Register connectors and tie coincident ones together."""

        self._check_open()
        tolerance = self.config.spatial.coincidence_tolerance
        registry = self._registry
        for connector_id in registry.add(connectors):
            connector = registry[connector_id]
            for other in self._index.query(connector):
                if connector.connects_to(other, tolerance=tolerance):
                    self._groups.require_same_elevation((registry.index_of(other), connector_id))
            self._index.insert(connector)

    def require_same_elevation(self, connectors: Iterable[Connector]) -> None:
        self._check_open()
        self._groups.require_same_elevation(self._ids(connectors))

    def require_vertical_distance(
        self,
        type: ConstraintType,
        distance: float,
        upper: Connector,
        base1: Connector,
        base2: Connector | None = None,
    ) -> None:
        """Declare `upper` to sit `distance` above one base or the line between two."""

        self._check_open()
        if not math.isfinite(distance):
            raise ValueError("distance must be finite")
        bases = (base1,) if base2 is None else (base1, base2)
        self._ids((upper, *bases))
        self._constraints.append(VerticalDistanceConstraint(type, float(distance), upper, bases))
        for base in bases:
            self._links.append((upper, base))

    def require_incline(self, type: ConstraintType, incline: float, connectors: Sequence[Connector]) -> None:
        self._check_open()
        if not math.isfinite(incline):
            raise ValueError("incline must be finite")
        chain = tuple(connectors)
        self._ids(chain)
        self._constraints.append(InclineConstraint(type, float(incline), chain))
        self._links.extend(zip(chain, chain[1:]))

    def require_smoothness(self, source: Connector, via: Connector, target: Connector) -> None:
        self._check_open()
        self._ids((source, via, target))
        self._constraints.append(SmoothnessConstraint(source, via, target))
        self._links.extend(((source, via), (via, target)))

    def enforce_constraints(self) -> None:
        """Solve once and write the resulting elevations into every connector."""

        self._check_open()
        self._enforced = True
        t0 = time.perf_counter()
        metrics = self._enforce()
        self.metrics = replace(metrics, enforce_seconds=time.perf_counter() - t0)

    def _base_metrics(self, **kwargs) -> EnforcementMetrics:
        return EnforcementMetrics(
            strategy=self.strategy,
            connector_count=len(self._registry),
            stiff_group_count=len(self._groups),
            constraint_count=len(self._constraints),
            **kwargs,
        )

    def _context(self) -> SolveContext:
        ground = self._groups.group_mean(self._registry.heights())
        return SolveContext(
            registry=self._registry,
            groups=self._groups,
            ground=ground,
            roads=self._roads(),
        )

    def _roads(self) -> list[Road]:
        if self.topology is None:
            return []
        seen: set[int] = set()
        roads: list[Road] = []
        for connector in self._registry:
            if not isinstance(connector.reference, MapNode):
                continue
            for road in self.topology.connected_roads(connector.reference):
                if id(road) not in seen:
                    seen.add(id(road))
                    roads.append(road)
        return roads

    def _write_back(self, ctx: SolveContext) -> None:
        offsets = ctx.heights if ctx.heights is not None else np.zeros_like(ctx.ground)
        for i, connector in enumerate(ctx.registry):
            connector.y = float(ctx.ground[i] + offsets[i])

    @abstractmethod
    def _enforce(self) -> EnforcementMetrics:
        ...


class NoneEnforcer(EleConstraintEnforcer):
    """Leaves every connector at its incoming elevation."""

    strategy = "none"

    def _enforce(self) -> EnforcementMetrics:
        return self._base_metrics()


class InterpolatedEnforcer(EleConstraintEnforcer):
    """Blends shelf heights linearly along each road without relaxation."""

    strategy = "interpolated"

    def _enforce(self) -> EnforcementMetrics:
        ctx = self._context()
        ctx.heights = initial_heights(ctx.registry.ground_states(), self.config.diffusion)
        interpolated = 0
        written = 0
        for road in ctx.roads:
            centerline = full_centerline(ctx.registry, road)
            if centerline is None:
                continue
            interpolated += fill_centerline(ctx.heights, ctx.registry, centerline)
            for lane in (road.left, road.right):
                written += interpolate_lane(ctx.heights, ctx.registry, lane, centerline[0], centerline[-1])
        self._write_back(ctx)
        return self._base_metrics(
            lane_connectors_written=written,
            centerline_connectors_interpolated=interpolated,
        )


class DiffusionEnforcer(EleConstraintEnforcer):
    """Solves offsets from local ground by diffusion over the road graph.

    Pipeline: stiff groups take the mean of their members' ground elevation,
    the road graph is relaxed with ABOVE/BELOW connectors clamped, lanes copy
    the centerline result, then stiff groups take the mean of their members'
    offsets before offsets are added to ground.
    """

    strategy = "diffusion"

    def __init__(
        self,
        config: EnforcerConfig | None = None,
        topology: RoadTopology | None = None,
        *,
        observer: StepObserver | None = None,
    ) -> None:
        super().__init__(config, topology)
        self.observer = observer

    def _enforce(self) -> EnforcementMetrics:
        cfg = self.config
        ctx = self._context()
        count = len(ctx.registry)

        ctx.graph, ctx.graph_report = build_connectivity_graph(ctx.registry, self.topology, self._links)
        coupling = ctx.graph.coupling_matrix(
            count,
            conductance=cfg.diffusion.conductance,
            min_distance_sq=cfg.diffusion.min_distance_sq,
        )
        result = run_diffusion(coupling, ctx.registry.ground_states(), cfg.diffusion, observer=self.observer)
        ctx.heights = result.heights

        lane_metrics = propagate_lane_heights(
            ctx.heights,
            ctx.registry,
            ctx.roads,
            graph_nodes=ctx.graph.nodes,
            interpolate_missing_centerline=cfg.lanes.interpolate_missing_centerline,
        )
        ctx.heights = ctx.groups.group_mean(ctx.heights)
        self._write_back(ctx)

        return self._base_metrics(
            graph_node_count=ctx.graph_report.node_count,
            graph_edge_count=ctx.graph_report.edge_count,
            roads_skipped=ctx.graph_report.roads_skipped,
            diffusion_steps=result.steps,
            simulated_time=result.simulated_time,
            max_delta=result.max_delta,
            converged=result.converged,
            lane_connectors_written=lane_metrics.lane_connectors_written,
            centerline_connectors_interpolated=lane_metrics.centerline_connectors_interpolated,
        )


_ENFORCERS: dict[str, type[EleConstraintEnforcer]] = {
    "none": NoneEnforcer,
    "interpolated": InterpolatedEnforcer,
    "diffusion": DiffusionEnforcer,
}


def create_enforcer(
    config: EnforcerConfig | None = None,
    topology: RoadTopology | None = None,
    *,
    observer: StepObserver | None = None,
) -> EleConstraintEnforcer:
    """Instantiate the enforcer selected by `config.strategy`."""

    cfg = config or EnforcerConfig()
    if cfg.strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy {cfg.strategy!r}; expected one of {', '.join(STRATEGIES)}")
    if cfg.strategy == "diffusion":
        return DiffusionEnforcer(cfg, topology, observer=observer)
    return _ENFORCERS[cfg.strategy](cfg, topology)
