"""Connectors and the per-pass connector registry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
from typing import Any, Hashable, Iterable, Iterator

import numpy as np


class GroundState(Enum):
    ON = "on"
    ABOVE = "above"
    BELOW = "below"


@dataclass(eq=False)
class Connector:
    """A horizontally anchored point whose vertical coordinate gets solved.

    Connectors compare by identity. Only `y` is changed by enforcement; `x`
    and `z` belong to the upstream geometry. `reference` points at the map
    entity the connector was created for and is only used for topology
    lookups.
    """

    x: float
    z: float
    y: float = 0.0
    ground_state: GroundState = GroundState.ON
    reference: Hashable | None = None

    @property
    def pos_xz(self) -> tuple[float, float]:
        return (self.x, self.z)

    def distance_xz(self, other: "Connector") -> float:
        return math.hypot(self.x - other.x, self.z - other.z)

    def connects_to(self, other: "Connector", *, tolerance: float = 1e-9) -> bool:
        """Whether both connectors describe the same physical point."""

        return (
            self.reference == other.reference
            and self.ground_state is other.ground_state
            and abs(self.x - other.x) <= tolerance
            and abs(self.z - other.z) <= tolerance
        )


class ConnectorRegistry:
    """Working set of connectors for one enforcement pass.

    Ids are dense integers in registration order, so per-connector state can
    live in numpy arrays indexed by id.
    """

    def __init__(self) -> None:
        self._connectors: list[Connector] = []
        self._ids: dict[Connector, int] = {}
        self._by_reference: dict[Any, int] = {}

    def __len__(self) -> int:
        return len(self._connectors)

    def __iter__(self) -> Iterator[Connector]:
        return iter(self._connectors)

    def __contains__(self, connector: object) -> bool:
        return connector in self._ids

    def __getitem__(self, connector_id: int) -> Connector:
        return self._connectors[connector_id]

    def add(self, connectors: Iterable[Connector]) -> list[int]:
        """Register connectors and return the ids of the ones that were new."""

        added: list[int] = []
        for connector in connectors:
            if connector in self._ids:
                continue
            connector_id = len(self._connectors)
            self._connectors.append(connector)
            self._ids[connector] = connector_id
            if connector.reference is not None:
                self._by_reference.setdefault(connector.reference, connector_id)
            added.append(connector_id)
        return added

    def index_of(self, connector: Connector) -> int:
        try:
            return self._ids[connector]
        except KeyError:
            raise KeyError(f"connector is not registered: {connector!r}") from None

    def ids_of(self, connectors: Iterable[Connector]) -> list[int]:
        return [self.index_of(c) for c in connectors]

    def connector_for(self, reference: Hashable) -> Connector | None:
        """Return the first connector registered for a map entity, if any."""

        connector_id = self._by_reference.get(reference)
        if connector_id is None:
            return None
        return self._connectors[connector_id]

    def heights(self) -> np.ndarray:
        return np.fromiter((c.y for c in self._connectors), dtype=np.float64, count=len(self._connectors))

    def ground_states(self) -> list[GroundState]:
        return [c.ground_state for c in self._connectors]
