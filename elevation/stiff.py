"""Union-find over connector ids for "same elevation" requirements."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from elevation.errors import InvalidStateError


class StiffGroup:
    """Handle to one equivalence class of a `StiffGroups` structure.

    The handle stays valid only while its root survives. Once the group has
    been merged into another one, every access raises `InvalidStateError`.
    """

    __slots__ = ("_owner", "_root")

    def __init__(self, owner: "StiffGroups", root: int) -> None:
        self._owner = owner
        self._root = root

    def __repr__(self) -> str:
        state = "live" if self.is_live else "merged"
        return f"StiffGroup(root={self._root}, {state})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StiffGroup):
            return NotImplemented
        return self._owner is other._owner and self._root == other._root

    def __hash__(self) -> int:
        return hash((id(self._owner), self._root))

    @property
    def root(self) -> int:
        return self._root

    @property
    def is_live(self) -> bool:
        return self._root in self._owner._members

    def members(self) -> list[int]:
        return list(self._live_members())

    @property
    def size(self) -> int:
        return len(self._live_members())

    def __contains__(self, connector_id: int) -> bool:
        self._live_members()
        return self._owner.find(connector_id) == self._root

    def _live_members(self) -> list[int]:
        members = self._owner._members.get(self._root)
        if members is None:
            raise InvalidStateError(f"stiff group {self._root} was merged into another group")
        return members


class StiffGroups:
    """Disjoint groups of connector ids with path compression and union by size."""

    def __init__(self) -> None:
        self._parent: list[int] = []
        self._members: dict[int, list[int]] = {}

    def __len__(self) -> int:
        return len(self._members)

    def _ensure(self, connector_id: int) -> None:
        if connector_id < 0:
            raise ValueError(f"connector id must be non-negative, got {connector_id}")
        missing = connector_id + 1 - len(self._parent)
        if missing > 0:
            self._parent.extend([-1] * missing)

    def is_grouped(self, connector_id: int) -> bool:
        return connector_id < len(self._parent) and self._parent[connector_id] >= 0

    def find(self, connector_id: int) -> int:
        """Root id of the connector's group, or -1 when ungrouped."""

        if not self.is_grouped(connector_id):
            return -1
        parent = self._parent
        node = connector_id
        while parent[node] != node:
            parent[node] = parent[parent[node]]
            node = parent[node]
        return node

    def group_of(self, connector_id: int) -> StiffGroup | None:
        root = self.find(connector_id)
        if root < 0:
            return None
        return StiffGroup(self, root)

    def groups(self) -> list[StiffGroup]:
        return [StiffGroup(self, root) for root in self._members]

    def same_group(self, a: int, b: int) -> bool:
        root = self.find(a)
        return root >= 0 and root == self.find(b)

    def require_same_elevation(self, connector_ids: Iterable[int]) -> StiffGroup | None:
        """Merge every given connector and all of their groups into one group."""

        roots: list[int] = []
        loose: list[int] = []
        for connector_id in connector_ids:
            self._ensure(connector_id)
            root = self.find(connector_id)
            if root < 0:
                if connector_id not in loose:
                    loose.append(connector_id)
            elif root not in roots:
                roots.append(root)

        if not roots and not loose:
            return None
        if len(roots) == 1 and not loose:
            return StiffGroup(self, roots[0])

        if roots:
            survivor = max(roots, key=lambda r: len(self._members[r]))
        else:
            survivor = loose.pop(0)
            self._parent[survivor] = survivor
            self._members[survivor] = [survivor]

        survivor_members = self._members[survivor]
        for root in roots:
            if root == survivor:
                continue
            absorbed = self._members.pop(root)
            self._parent[root] = survivor
            survivor_members.extend(absorbed)

        for connector_id in loose:
            self._parent[connector_id] = survivor
            survivor_members.append(connector_id)

        return StiffGroup(self, survivor)

    def labels(self, count: int) -> np.ndarray:
        """Root id for each of `count` connector ids (-1 when ungrouped)."""

        out = np.full(count, -1, dtype=np.int64)
        for root, members in self._members.items():
            ids = np.asarray(members, dtype=np.int64)
            out[ids[ids < count]] = root
        return out

    def group_mean(self, values: np.ndarray) -> np.ndarray:
        """Replace the values of grouped ids by the arithmetic mean of their group."""

        values = np.asarray(values, dtype=np.float64)
        labels = self.labels(values.shape[0])
        grouped = labels >= 0
        out = values.copy()
        if not np.any(grouped):
            return out
        sums = np.bincount(labels[grouped], weights=values[grouped], minlength=values.shape[0])
        counts = np.bincount(labels[grouped], minlength=values.shape[0])
        out[grouped] = sums[labels[grouped]] / counts[labels[grouped]]
        return out
