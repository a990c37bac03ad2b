"""Configuration models for elevation constraint enforcement."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


DEFAULT_CELL_SIZE = 100.0
DEFAULT_ABOVE_HEIGHT = 5.0
DEFAULT_BELOW_HEIGHT = -5.0

STRATEGIES = ("none", "interpolated", "diffusion")


@dataclass(frozen=True)
class SpatialIndexConfig:
    """Controls the broad-phase grid used to find coincident connectors."""

    cell_size: float = DEFAULT_CELL_SIZE
    margin: float = 1.0
    coincidence_tolerance: float = 1e-9


@dataclass(frozen=True)
class DiffusionConfig:
    """Controls the explicit heat-equation relaxation of connector offsets."""

    dt: float = 0.01
    total_time: float = 100.0
    max_steps: int | None = None
    conductance: float = 1.0
    min_distance_sq: float = 5.0
    above_height: float = DEFAULT_ABOVE_HEIGHT
    below_height: float = DEFAULT_BELOW_HEIGHT
    tolerance: float | None = 1e-9


@dataclass(frozen=True)
class LaneConfig:
    """Controls how solved heights reach lane-edge connectors."""

    interpolate_missing_centerline: bool = True


@dataclass(frozen=True)
class EnforcerConfig:
    """Primary enforcement configuration."""

    strategy: str = "diffusion"
    spatial: SpatialIndexConfig = field(default_factory=SpatialIndexConfig)
    diffusion: DiffusionConfig = field(default_factory=DiffusionConfig)
    lanes: LaneConfig = field(default_factory=LaneConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
