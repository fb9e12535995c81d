"""Pure control-grid operators.

Every function here takes full control grids (periodic columns included),
never modifies its inputs, and returns a freshly allocated candidate grid.
:meth:`evoplanets.planet.Planet.try_operator` normalises a candidate and
decides whether to commit it.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import cos, pi, sin
from typing import Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class PlateauBlock:
    """Consecutive control rows near a pole that only move as a rigid unit."""

    name: str
    rows: Tuple[int, ...]

    @property
    def rows_slice(self) -> slice:
        return slice(self.rows[0], self.rows[-1] + 1)

    def contains(self, row: int) -> bool:
        return self.rows[0] <= row <= self.rows[-1]

    def translate(self, grid: np.ndarray, offset) -> None:
        """Shift every point of the block in ``grid`` by ``offset`` (in place)."""

        grid[self.rows_slice] += np.asarray(offset, dtype=float)

    def centroid(self, grid: np.ndarray, columns: int | None = None) -> np.ndarray:
        block = grid[self.rows_slice]
        if columns is not None:
            block = block[:, :columns]
        return block.reshape(-1, 3).mean(axis=0)

    def copy(self, dst: np.ndarray, src: np.ndarray) -> None:
        dst[self.rows_slice] = src[self.rows_slice]


def plateau_blocks(parallel_count: int, size: int = 3) -> Tuple[PlateauBlock, PlateauBlock]:
    """Return the ``(north, south)`` plateau blocks for a grid."""

    if parallel_count < 2 * size + 1:
        raise ValueError(
            f'{parallel_count} parallels cannot hold two {size}-row plateaus '
            'and an interior row'
        )
    north = PlateauBlock('north', tuple(range(size)))
    south = PlateauBlock('south', tuple(range(parallel_count - size, parallel_count)))
    return north, south


def interior_rows(plateaus: Sequence[PlateauBlock]) -> slice:
    """Rows strictly between the two plateaus."""

    return slice(plateaus[0].rows[-1] + 1, plateaus[1].rows[0])


def reset_periodicity(grid: np.ndarray, degree_u: int) -> np.ndarray:
    """Copy the first ``degree_u`` columns over the wrapped ones."""

    out = np.array(grid, dtype=float, copy=True)
    columns = out.shape[1] - degree_u
    out[:, columns:] = out[:, :degree_u]
    return out


def poles_smoothing(grid: np.ndarray, degree_u: int, plateau_size: int = 3) -> np.ndarray:
    """Cross-stencil average on the first row outside each plateau.

    Both rows read the pre-smoothing values.  Grids too short to hold the two
    plateaus and their neighbouring rows come back unchanged.
    """

    out = reset_periodicity(grid, degree_u)
    parallels = grid.shape[0]
    if parallels <= 2 * plateau_size + 1:
        return out
    columns = grid.shape[1] - degree_u
    source = out.copy()
    for row in (plateau_size, parallels - 1 - plateau_size):
        line = source[row, :columns]
        out[row, :columns] = (
            line
            + np.roll(line, 1, axis=0)
            + np.roll(line, -1, axis=0)
            + source[row - 1, :columns]
            + source[row + 1, :columns]
        ) / 5.0
    return reset_periodicity(out, degree_u)


def random_direction(rng: np.random.Generator) -> np.ndarray:
    theta = rng.uniform(0.0, 2.0 * pi)
    phi = rng.uniform(0.0, pi)
    return np.array([sin(phi) * cos(theta), sin(phi) * sin(theta), cos(phi)])


def gaussian_displacement(grid: np.ndarray,
                          degree_u: int,
                          plateaus: Sequence[PlateauBlock],
                          row: int,
                          column: int,
                          offset,
                          sigma: float = 1.0) -> np.ndarray:
    """Move one control point (or its plateau) and spread the move around it.

    Interior points receive ``offset * exp(-d**2 / (2 sigma**2))`` where ``d``
    is their distance to the picked point.  A plateau that was not picked is
    translated rigidly with the weight of its centroid.
    """

    offset = np.asarray(offset, dtype=float)
    out = np.array(grid, dtype=float, copy=True)
    columns = grid.shape[1] - degree_u
    selected = grid[row, column].copy()
    two_sigma2 = 2.0 * sigma * sigma

    moved = [block for block in plateaus if block.contains(row)]
    for block in moved:
        block.translate(out, offset)

    inner = interior_rows(plateaus)
    points = grid[inner, :columns]
    weights = np.exp(-np.sum((points - selected) ** 2, axis=-1) / two_sigma2)
    if not moved:
        # the picked point takes the full offset exactly once
        weights[row - inner.start, column] = 1.0
    out[inner, :columns] += weights[..., None] * offset

    for block in plateaus:
        if block in moved:
            continue
        d2 = float(np.sum((block.centroid(grid, columns) - selected) ** 2))
        block.translate(out, np.exp(-d2 / two_sigma2) * offset)
    return out


def differential(base: np.ndarray,
                 first: np.ndarray,
                 second: np.ndarray,
                 scale: float,
                 plateaus: Sequence[PlateauBlock],
                 columns: int) -> np.ndarray:
    """``base + scale * (first - second)``, plateaus shifted by their mean difference."""

    diff = scale * (np.asarray(first, dtype=float) - np.asarray(second, dtype=float))
    out = np.asarray(base, dtype=float) + diff
    for block in plateaus:
        block.copy(out, base)
        shift = diff[block.rows_slice, :columns].reshape(-1, 3).mean(axis=0)
        block.translate(out, shift)
    return out


def blend(a: np.ndarray, b: np.ndarray, alpha: float,
          plateaus: Sequence[PlateauBlock], columns: int) -> np.ndarray:
    """Linear blend ``(1 - alpha) a + alpha b`` with rigid plateaus."""

    out = (1.0 - alpha) * np.asarray(a, dtype=float) + alpha * np.asarray(b, dtype=float)
    for block in plateaus:
        block.copy(out, a)
        block.translate(out, alpha * (block.centroid(b, columns) - block.centroid(a, columns)))
    return out


def uniform_mix(a: np.ndarray, b: np.ndarray, rate: float, rng: np.random.Generator,
                plateaus: Sequence[PlateauBlock], columns: int) -> np.ndarray:
    """Point-wise Bernoulli mix; each plateau is inherited whole."""

    out = np.array(b, dtype=float, copy=True)
    for block in plateaus:
        if rng.random() < rate:
            block.copy(out, a)
    inner = interior_rows(plateaus)
    rows = inner.stop - inner.start
    take = rng.random((rows, columns)) < rate
    out[inner, :columns] = np.where(take[..., None], a[inner, :columns], b[inner, :columns])
    return out


def parallel_mix(a: np.ndarray, b: np.ndarray, rate: float, rng: np.random.Generator,
                 plateaus: Sequence[PlateauBlock]) -> np.ndarray:
    """Row-wise Bernoulli mix; each plateau is inherited whole."""

    out = np.array(b, dtype=float, copy=True)
    for block in plateaus:
        if rng.random() < rate:
            block.copy(out, a)
    inner = interior_rows(plateaus)
    for row in range(inner.start, inner.stop):
        if rng.random() < rate:
            out[row] = a[row]
    return out


__all__ = [
    'PlateauBlock',
    'plateau_blocks',
    'interior_rows',
    'reset_periodicity',
    'poles_smoothing',
    'random_direction',
    'gaussian_displacement',
    'differential',
    'blend',
    'uniform_mix',
    'parallel_mix',
]
