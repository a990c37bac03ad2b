"""Elevation constraint enforcement for road and bridge connectors."""

from .config import DEFAULT_ABOVE_HEIGHT, DEFAULT_BELOW_HEIGHT, DEFAULT_CELL_SIZE, EnforcerConfig
from .connector import Connector, GroundState
from .enforcer import ConstraintType, create_enforcer

__all__ = [
    "DEFAULT_ABOVE_HEIGHT",
    "DEFAULT_BELOW_HEIGHT",
    "DEFAULT_CELL_SIZE",
    "EnforcerConfig",
    "Connector",
    "GroundState",
    "ConstraintType",
    "create_enforcer",
]
