"""Derived raster products from solved connector elevations."""

from __future__ import annotations

import numpy as np
from scipy.spatial import cKDTree


def elevation_raster(
    xz: np.ndarray,
    values: np.ndarray,
    *,
    size_px: int = 256,
    padding: float = 0.05,
) -> np.ndarray:
    """Nearest-connector elevation sampled on a square-pixel grid over the extent."""

    if size_px <= 0:
        raise ValueError("size_px must be positive")
    xz = np.asarray(xz, dtype=np.float64).reshape(-1, 2)
    values = np.asarray(values, dtype=np.float64)
    if xz.shape[0] != values.shape[0]:
        raise ValueError("xz and values must have the same length")
    if xz.shape[0] == 0:
        return np.zeros((size_px, size_px), dtype=np.float32)

    lo = xz.min(axis=0)
    hi = xz.max(axis=0)
    extent = max(float(np.max(hi - lo)), 1e-6) * (1.0 + 2.0 * padding)
    center = 0.5 * (lo + hi)
    pixel = extent / size_px
    coords = center[None, :] - 0.5 * extent + (np.arange(size_px, dtype=np.float64)[:, None] + 0.5) * pixel
    gx, gz = np.meshgrid(coords[:, 0], coords[:, 1])

    tree = cKDTree(xz)
    _, nearest = tree.query(np.column_stack((gx.ravel(), gz.ravel())))
    # Row 0 is the northern edge.
    return values[nearest].reshape(size_px, size_px)[::-1].astype(np.float32)


def elevation_preview_u8(
    xz: np.ndarray,
    values: np.ndarray,
    *,
    size_px: int = 256,
    robust_percentiles: tuple[float, float] = (1.0, 99.0),
) -> np.ndarray:
    """Map connector elevations to an 8-bit grayscale preview."""

    raster = elevation_raster(xz, values, size_px=size_px)
    lo, hi = np.percentile(raster, robust_percentiles)
    scale = max(hi - lo, 1e-6)
    norm = np.clip((raster - lo) / scale, 0.0, 1.0)
    return np.round(norm * 255.0).astype(np.uint8)
