"""Uniform grid broad phase for connector adjacency tests."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterable, Iterator

from elevation.connector import Connector
from elevation.errors import CellBoundsError


CellKey = tuple[int, int]


@dataclass(frozen=True)
class CellBounds:
    """Axis-aligned cell on the ground plane."""

    x_min: float
    z_min: float
    x_max: float
    z_max: float

    def __post_init__(self) -> None:
        if self.x_min > self.x_max:
            raise CellBoundsError(f"cell x_min {self.x_min} exceeds x_max {self.x_max}")
        if self.z_min > self.z_max:
            raise CellBoundsError(f"cell z_min {self.z_min} exceeds z_max {self.z_max}")

    def contains(self, x: float, z: float, *, margin: float = 0.0) -> bool:
        return (
            self.x_min - margin <= x <= self.x_max + margin
            and self.z_min - margin <= z <= self.z_max + margin
        )


class SpatialIndex:
    """Buckets connectors into fixed-size grid cells.

    A connector lying within `margin` of a cell edge is stored in the
    neighboring cell too, so coincident pairs straddling the edge still share
    at least one bucket.
    """

    def __init__(self, cell_size: float = 100.0, *, margin: float = 1.0) -> None:
        if not cell_size > 0:
            raise CellBoundsError(f"cell_size must be positive, got {cell_size}")
        if margin < 0:
            raise CellBoundsError(f"margin must be non-negative, got {margin}")
        if margin * 2.0 >= cell_size:
            raise CellBoundsError("margin must be smaller than half the cell size")
        self.cell_size = float(cell_size)
        self.margin = float(margin)
        self._buckets: dict[CellKey, list[Connector]] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def cell_key(self, x: float, z: float) -> CellKey:
        return (math.floor(x / self.cell_size), math.floor(z / self.cell_size))

    def cell_bounds(self, key: CellKey) -> CellBounds:
        x_min = key[0] * self.cell_size
        z_min = key[1] * self.cell_size
        return CellBounds(x_min, z_min, x_min + self.cell_size, z_min + self.cell_size)

    def covering_keys(self, x: float, z: float) -> list[CellKey]:
        """Keys of every cell whose margin-expanded bounds contain the point."""

        size = self.cell_size
        kx0 = math.floor((x - self.margin) / size)
        kx1 = math.floor((x + self.margin) / size)
        kz0 = math.floor((z - self.margin) / size)
        kz1 = math.floor((z + self.margin) / size)
        return [(kx, kz) for kx in range(kx0, kx1 + 1) for kz in range(kz0, kz1 + 1)]

    def build(self, connectors: Iterable[Connector]) -> "SpatialIndex":
        self._buckets = {}
        for connector in connectors:
            self.insert(connector)
        return self

    def insert(self, connector: Connector) -> None:
        for key in self.covering_keys(connector.x, connector.z):
            bucket = self._buckets.get(key)
            if bucket is None:
                # Validates the cell before anything is stored in it.
                self.cell_bounds(key)
                bucket = []
                self._buckets[key] = bucket
            bucket.append(connector)

    def buckets(self) -> Iterator[tuple[CellKey, list[Connector]]]:
        return iter(self._buckets.items())

    def query(self, connector: Connector) -> list[Connector]:
        """Candidate neighbors sharing at least one bucket with the connector."""

        seen: set[int] = set()
        out: list[Connector] = []
        for key in self.covering_keys(connector.x, connector.z):
            for other in self._buckets.get(key, ()):
                if other is connector or id(other) in seen:
                    continue
                seen.add(id(other))
                out.append(other)
        return out

    def candidate_pairs(self) -> Iterator[tuple[Connector, Connector]]:
        """Yield each pair of connectors sharing a bucket exactly once."""

        emitted: set[tuple[int, int]] = set()
        for bucket in self._buckets.values():
            count = len(bucket)
            for i in range(count):
                a = bucket[i]
                for j in range(i + 1, count):
                    b = bucket[j]
                    if a is b:
                        continue
                    pair = (id(a), id(b)) if id(a) < id(b) else (id(b), id(a))
                    if pair in emitted:
                        continue
                    emitted.add(pair)
                    yield a, b


def build_index(connectors: Iterable[Connector], *, cell_size: float = 100.0, margin: float = 1.0) -> SpatialIndex:
    return SpatialIndex(cell_size, margin=margin).build(connectors)
