"""Explicit heat-equation relaxation of connector height offsets."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Callable, Sequence

import numpy as np
from scipy import sparse

from elevation.config import DiffusionConfig
from elevation.connector import GroundState


StepObserver = Callable[[int, np.ndarray], None]


@dataclass(frozen=True)
class DiffusionResult:
    heights: np.ndarray
    steps: int
    simulated_time: float
    max_delta: float
    converged: bool


class HeightField:
    """Double-buffered scalar field; updates write `next` while reading `current`."""

    def __init__(self, initial: np.ndarray) -> None:
        self.current = np.asarray(initial, dtype=np.float64).copy()
        self.next = self.current.copy()

    def __len__(self) -> int:
        return self.current.shape[0]

    def swap(self) -> None:
        self.current, self.next = self.next, self.current


def pinned_values(ground_states: Sequence[GroundState], config: DiffusionConfig) -> tuple[np.ndarray, np.ndarray]:
    """Mask of clamped connectors and the value each one is clamped to."""

    count = len(ground_states)
    mask = np.zeros(count, dtype=bool)
    values = np.zeros(count, dtype=np.float64)
    for i, state in enumerate(ground_states):
        if state is GroundState.ABOVE:
            mask[i] = True
            values[i] = config.above_height
        elif state is GroundState.BELOW:
            mask[i] = True
            values[i] = config.below_height
    return mask, values


def initial_heights(ground_states: Sequence[GroundState], config: DiffusionConfig) -> np.ndarray:
    _, values = pinned_values(ground_states, config)
    return values


def step_budget(config: DiffusionConfig) -> int:
    if config.dt <= 0:
        raise ValueError("dt must be positive")
    if config.total_time < 0:
        raise ValueError("total_time must be non-negative")
    steps = int(math.ceil(config.total_time / config.dt - 1e-9))
    if config.max_steps is not None:
        if config.max_steps < 0:
            raise ValueError("max_steps must be non-negative")
        steps = min(steps, config.max_steps)
    return steps


def run_diffusion(
    coupling: sparse.spmatrix,
    ground_states: Sequence[GroundState],
    config: DiffusionConfig,
    *,
    initial: np.ndarray | None = None,
    observer: StepObserver | None = None,
) -> DiffusionResult:
    """Relax heights over the coupling matrix with clamped ABOVE/BELOW connectors.

    Each step computes `dh/dt = -sum_b C_ab * (h_a - h_b)` for every node from
    the previous field and advances by `dt`. Clamped connectors are reset to
    their shelf height after every step. The loop ends after the fixed step
    budget, or earlier once the largest change of a step drops below
    `config.tolerance`.
    """

    count = len(ground_states)
    if coupling.shape != (count, count):
        raise ValueError(f"coupling matrix shape {coupling.shape} does not match {count} connectors")

    mask, clamp = pinned_values(ground_states, config)
    start = clamp if initial is None else np.asarray(initial, dtype=np.float64)
    if start.shape != (count,):
        raise ValueError("initial heights must have one value per connector")

    field = HeightField(start)
    field.current[mask] = clamp[mask]

    matrix = sparse.csr_matrix(coupling, dtype=np.float64)
    degree = np.asarray(matrix.sum(axis=1), dtype=np.float64).ravel()
    budget = step_budget(config)
    dt = float(config.dt)

    steps = 0
    max_delta = 0.0
    converged = False
    while steps < budget:
        h = field.current
        dhdt = matrix @ h - degree * h
        np.multiply(dhdt, dt, out=field.next)
        field.next += h
        field.next[mask] = clamp[mask]

        max_delta = float(np.max(np.abs(field.next - h))) if count else 0.0
        field.swap()
        steps += 1
        if observer is not None:
            observer(steps, field.current)
        if config.tolerance is not None and max_delta < config.tolerance:
            converged = True
            break

    return DiffusionResult(
        heights=field.current.copy(),
        steps=steps,
        simulated_time=steps * dt,
        max_delta=max_delta,
        converged=converged,
    )
