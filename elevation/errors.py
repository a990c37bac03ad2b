"""Exception types shared across the enforcement pipeline."""

from __future__ import annotations


class InvalidStateError(RuntimeError):
    """Raised when an object is used after its lifecycle allows it."""


class CellBoundsError(ValueError):
    """Raised when spatial index cell bounds are degenerate."""


class SceneFormatError(ValueError):
    """Raised when a scene file cannot be turned into connectors and roads."""
