"""Closed B-spline planets.

A :class:`Planet` is a tensor-product B-spline surface over a control grid of
``parallels x meridians`` points.  Rows run from the north pole (row 0) to
the south pole (last row) and use a clamped knot vector.  Columns wrap around
the polar axis; the first ``degree_u`` columns are duplicated at the end of
every row so evaluation never needs modular indexing.

The three outer rows at each pole form a :class:`PlateauBlock`.  The rows of
a plateau are only ever translated together, which keeps the surface C1 at
the poles.

Surface parameters ``u`` (around the axis) and ``v`` (pole to pole) are both
normalised to ``[0, 1]``; derivatives are taken with respect to these
normalised parameters.

Genetic operators build a candidate grid with the pure functions of
:mod:`evoplanets.operators` and hand it to :meth:`Planet.try_operator`, which
applies pole smoothing and periodicity and only commits the candidate when
the tessellated surface does not intersect itself.  A rejected candidate
leaves the planet exactly as it was.
"""

from __future__ import annotations

from enum import IntEnum
from math import cos, pi, sin
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from evoplanets import operators
from evoplanets.errors import InsufficientControlPointsError, InvalidTopologyError
from evoplanets.geometry_checks import is_self_intersecting
from evoplanets.operators import PlateauBlock
from evoplanets.spline import (
    BSpline,
    basis,
    basis_matrix,
    d1_basis,
    d2_basis,
    generate_knots,
    parameter_scale,
    span,
)

_CURVATURE_EPS = 1e-7
_BASIS_FUNCS = (basis, d1_basis, d2_basis)


class CrossoverType(IntEnum):
    CONTINUOUS = 0
    UNIFORM = 1
    PARALLEL_WISE = 2


def _steps(step: float) -> np.ndarray:
    if step <= 0.0:
        raise ValueError('step must be positive')
    return np.arange(0.0, 1.0 - 1e-9, step)


def _smoothstep(edge0: float, edge1: float, x: float) -> float:
    t = min(max((x - edge0) / (edge1 - edge0), 0.0), 1.0)
    return t * t * (3.0 - 2.0 * t)


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=-1, keepdims=True)
    out = np.full(vectors.shape, np.nan)
    ok = lengths[..., 0] > 1e-12
    out[ok] = vectors[ok] / lengths[ok]
    return out


class Planet:
    """B-spline planet surface with rigid polar plateaus."""

    PLATEAU_ROWS = 3

    def __init__(self, grid, degree_u: int = 3, degree_v: int = 3):
        rows = list(grid)
        if not rows or len(rows[0]) == 0:
            raise InvalidTopologyError('control grid cannot be empty')
        if degree_u < 2 or degree_v < 2:
            raise ValueError('degrees must be at least 2')
        width = len(rows[0])
        for index, row in enumerate(rows):
            if len(row) != width:
                raise InvalidTopologyError(
                    f'parallel {index} has {len(row)} control points, expected {width}'
                )
        # both plateaus plus one free row between them
        min_rows = max(degree_v + 1, 2 * self.PLATEAU_ROWS + 1)
        if len(rows) < min_rows:
            raise InsufficientControlPointsError(len(rows), degree_v, 'parallels', min_rows)
        if width < degree_u + 1:
            raise InsufficientControlPointsError(width, degree_u, 'meridians')
        try:
            points = np.asarray(rows, dtype=float)
        except ValueError as exc:
            raise InvalidTopologyError(f'control points must be 3D: {exc}') from exc
        if points.ndim != 3 or points.shape[2] != 3:
            raise InvalidTopologyError('control points must be 3D')
        full = np.concatenate([points, points[:, :degree_u]], axis=1)
        self._setup(full, degree_u, degree_v)

    def _setup(self, full_grid: np.ndarray, degree_u: int, degree_v: int) -> None:
        self._grid = full_grid
        self._degree_u = degree_u
        self._degree_v = degree_v
        self._knots_u = generate_knots(full_grid.shape[1], degree_u, 0)
        self._knots_v = generate_knots(full_grid.shape[0], degree_v, degree_v)

    @classmethod
    def _from_full_grid(cls, full_grid: np.ndarray, degree_u: int, degree_v: int) -> "Planet":
        planet = cls.__new__(cls)
        planet._setup(np.array(full_grid, dtype=float, copy=True), degree_u, degree_v)
        return planet

    # ------------------------------------------------------------------
    # factories

    @classmethod
    def sphere(cls, n_parallels: int, n_meridians: int, radius: float = 1.0) -> "Planet":
        """Sphere-like planet with flat plateaus capping both poles.

        Interior parallels sit at colatitudes ``(i - 2) * pi / (n_parallels - 5)``.
        """

        if n_parallels < 2 * cls.PLATEAU_ROWS + 1:
            raise ValueError(f'a sphere needs at least {2 * cls.PLATEAU_ROWS + 1} parallels')
        delta = pi / (n_parallels - 5)
        height = 0.98 * radius
        phis = [2.0 * pi * j / n_meridians for j in range(n_meridians)]

        def ring(r: float, y: float) -> List[Tuple[float, float, float]]:
            return [(r * cos(phi), y, r * sin(phi)) for phi in phis]

        rows = []
        for i in range(n_parallels):
            if i == 0:
                rows.append([(0.0, height, 0.0)] * n_meridians)
            elif i == 1:
                rows.append(ring(0.1 * radius * sin(delta), height - 0.01 * radius))
            elif i == 2:
                rows.append(ring(0.2 * radius * sin(delta), height - 0.02 * radius))
            elif i == n_parallels - 3:
                rows.append(ring(0.2 * radius * sin(delta), -(height - 0.02 * radius)))
            elif i == n_parallels - 2:
                rows.append(ring(0.1 * radius * sin(delta), -(height - 0.01 * radius)))
            elif i == n_parallels - 1:
                rows.append([(0.0, -height, 0.0)] * n_meridians)
            else:
                theta = (i - 2) * delta
                rows.append([
                    (radius * sin(theta) * cos(phi),
                     0.99 * radius * cos(theta),
                     radius * sin(theta) * sin(phi))
                    for phi in phis
                ])
        return cls(rows, 3, 3)

    @classmethod
    def asteroid(cls, n_parallels: int, n_meridians: int, radius: float = 1.0,
                 rng: Optional[np.random.Generator] = None) -> "Planet":
        """Rough random body; no validity check is applied."""

        rng = rng if rng is not None else np.random.default_rng()
        north_height = 0.7 + 0.6 * rng.random()
        south_height = 0.7 + 0.6 * rng.random()
        rows = []
        for i in range(n_parallels):
            theta = i / n_parallels * pi
            row = []
            for j in range(n_meridians):
                phi = j / n_meridians * 2.0 * pi
                if i == 0:
                    row.append((0.0, radius * north_height, 0.0))
                elif i in (1, 2):
                    r = radius * 0.1 * i * sin(theta)
                    row.append((r * cos(phi), radius * north_height, r * sin(phi)))
                elif i in (n_parallels - 3, n_parallels - 2):
                    r = radius * 0.1 * (n_parallels - i - 1) * sin(theta)
                    row.append((r * cos(phi), -radius * south_height, r * sin(phi)))
                elif i == n_parallels - 1:
                    row.append((0.0, -radius * south_height, 0.0))
                else:
                    random_radius = radius * (0.3 + rng.random())
                    from_pole = min(abs(theta), abs(theta - pi))
                    vertical = _smoothstep(0.0, pi * 0.3, from_pole)
                    cap = radius * 0.95 if theta < pi / 2.0 else -radius * 0.95
                    y = random_radius * cos(theta) * vertical + (1.0 - vertical) * cap
                    row.append((random_radius * sin(theta) * cos(phi), y,
                                random_radius * sin(theta) * sin(phi)))
            rows.append(row)
        return cls(rows, 3, 3)

    @classmethod
    def empty(cls, n_parallels: int, n_meridians: int) -> "Planet":
        return cls(np.zeros((n_parallels, n_meridians, 3)), 3, 3)

    # ------------------------------------------------------------------
    # structure

    @property
    def degree_u(self) -> int:
        return self._degree_u

    @property
    def degree_v(self) -> int:
        return self._degree_v

    @property
    def knots_u(self) -> List[int]:
        return list(self._knots_u)

    @property
    def knots_v(self) -> List[int]:
        return list(self._knots_v)

    @property
    def parallel_count(self) -> int:
        return self._grid.shape[0]

    @property
    def meridian_count(self) -> int:
        """Number of distinct meridians (wrapped columns excluded)."""

        return self._grid.shape[1] - self._degree_u

    @property
    def grid(self) -> np.ndarray:
        """Read-only view of the full grid, wrapped columns included."""

        view = self._grid.view()
        view.setflags(write=False)
        return view

    def control_grid(self) -> np.ndarray:
        """Copy of the distinct control points, shape ``(parallels, meridians, 3)``."""

        return self._grid[:, :self.meridian_count].copy()

    def control_points(self) -> np.ndarray:
        return self.control_grid().reshape(-1, 3)

    @property
    def plateaus(self) -> Tuple[PlateauBlock, PlateauBlock]:
        return operators.plateau_blocks(self.parallel_count, self.PLATEAU_ROWS)

    def copy(self) -> "Planet":
        return Planet._from_full_grid(self._grid, self._degree_u, self._degree_v)

    def is_periodic(self) -> bool:
        columns = self.meridian_count
        return bool(np.array_equal(self._grid[:, columns:], self._grid[:, :self._degree_u]))

    def __repr__(self) -> str:
        return (f'Planet(parallels={self.parallel_count}, meridians={self.meridian_count}, '
                f'degree=({self._degree_u}, {self._degree_v}))')

    # ------------------------------------------------------------------
    # evaluation

    def _patch(self, u: float, v: float, order_u: int, order_v: int) -> np.ndarray:
        u = float(u)
        if u < 0.0 or u > 1.0:
            u = u % 1.0
        v = min(max(float(v), 0.0), 1.0)
        su = span(u, self._knots_u, self._degree_u)
        sv = span(v, self._knots_v, self._degree_v)
        bu = np.asarray(_BASIS_FUNCS[order_u](su, u, self._knots_u, self._degree_u))
        bv = np.asarray(_BASIS_FUNCS[order_v](sv, v, self._knots_v, self._degree_v))
        if order_u:
            bu = bu * parameter_scale(self._knots_u, self._degree_u) ** order_u
        if order_v:
            bv = bv * parameter_scale(self._knots_v, self._degree_v) ** order_v
        block = self._grid[sv - self._degree_v + 1:sv + 2, su - self._degree_u + 1:su + 2]
        return np.einsum('i,j,ijk->k', bv, bu, block)

    def evaluate(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 0, 0)

    def u_derivative(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 1, 0)

    def v_derivative(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 0, 1)

    def u_second_derivative(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 2, 0)

    def v_second_derivative(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 0, 2)

    def uv_mixed_derivative(self, u: float, v: float) -> np.ndarray:
        return self._patch(u, v, 1, 1)

    def normal(self, u: float, v: float) -> np.ndarray:
        """Unit normal ``cross(Su, Sv)``; NaN where the surface is degenerate."""

        n = np.cross(self.u_derivative(u, v), self.v_derivative(u, v))
        length = float(np.linalg.norm(n))
        if length <= 1e-12:
            return np.full(3, np.nan)
        return n / length

    def evaluate_grid(self, us: Sequence[float], vs: Sequence[float],
                      order_u: int = 0, order_v: int = 0) -> np.ndarray:
        """Evaluate on the tensor grid ``vs x us``; returns ``(len(vs), len(us), 3)``."""

        bu = basis_matrix(us, self._knots_u, self._degree_u, order_u)
        bv = basis_matrix(vs, self._knots_v, self._degree_v, order_v)
        return np.einsum('vi,uj,ijk->vuk', bv, bu, self._grid)

    def normal_grid(self, us: Sequence[float], vs: Sequence[float]) -> np.ndarray:
        du = self.evaluate_grid(us, vs, 1, 0)
        dv = self.evaluate_grid(us, vs, 0, 1)
        return _normalize_rows(np.cross(du, dv))

    def _evaluate_pairs(self, pairs, order_u: int = 0, order_v: int = 0) -> np.ndarray:
        pairs = np.asarray(pairs, dtype=float).reshape(-1, 2)
        bu = basis_matrix(pairs[:, 0], self._knots_u, self._degree_u, order_u)
        bv = basis_matrix(pairs[:, 1], self._knots_v, self._degree_v, order_v)
        return np.einsum('ni,nj,ijk->nk', bv, bu, self._grid)

    @staticmethod
    def sample_pairs(u_step: float, v_step: float) -> np.ndarray:
        """``(u, v)`` pairs on ``[0, 1)^2`` with ``u`` varying slowest."""

        us = _steps(u_step)
        vs = _steps(v_step)
        uu, vv = np.meshgrid(us, vs, indexing='ij')
        return np.stack([uu.ravel(), vv.ravel()], axis=1)

    def positions(self, pairs) -> np.ndarray:
        return self._evaluate_pairs(pairs)

    def normals(self, pairs) -> np.ndarray:
        du = self._evaluate_pairs(pairs, 1, 0)
        dv = self._evaluate_pairs(pairs, 0, 1)
        return _normalize_rows(np.cross(du, dv))

    # ------------------------------------------------------------------
    # differential geometry

    def _forms(self, u: float, v: float):
        su = self.u_derivative(u, v)
        sv = self.v_derivative(u, v)
        E = float(su @ su)
        F = float(su @ sv)
        G = float(sv @ sv)
        n = np.cross(su, sv)
        length = float(np.linalg.norm(n))
        if length <= 1e-12:
            e = f = g = float('nan')
        else:
            n = n / length
            e = float(n @ self.u_second_derivative(u, v))
            f = float(n @ self.uv_mixed_derivative(u, v))
            g = float(n @ self.v_second_derivative(u, v))
        return E, F, G, e, f, g

    def first_fundamental_form(self, u: float, v: float) -> float:
        """Determinant ``EG - F^2`` of the first fundamental form."""

        E, F, G, _, _, _ = self._forms(u, v)
        return E * G - F * F

    def second_fundamental_form(self, u: float, v: float) -> float:
        """Determinant ``eg - f^2`` of the second fundamental form."""

        _, _, _, e, f, g = self._forms(u, v)
        return e * g - f * f

    def gaussian_curvature(self, u: float, v: float) -> float:
        E, F, G, e, f, g = self._forms(u, v)
        first = E * G - F * F
        if abs(first) < _CURVATURE_EPS:
            return 0.0
        return (e * g - f * f) / first

    def mean_curvature(self, u: float, v: float) -> float:
        """Mean curvature; negative on convex regions (outward normals)."""

        E, F, G, e, f, g = self._forms(u, v)
        first = E * G - F * F
        if abs(first) < _CURVATURE_EPS:
            return 0.0
        return (e * G - 2.0 * f * F + g * E) / (2.0 * first)

    # ------------------------------------------------------------------
    # curves and presentation helpers

    def parallels(self) -> List[BSpline]:
        """Control rows as closed curves."""

        return [BSpline(row, self._knots_u, self._degree_u) for row in self._grid]

    def meridians(self) -> List[BSpline]:
        """Control columns as pole-to-pole curves."""

        return [BSpline(self._grid[:, j], self._knots_v, self._degree_v)
                for j in range(self.meridian_count)]

    def true_parallels(self, u_step: float, n_parallels: int) -> List[np.ndarray]:
        us = _steps(u_step)
        vs = np.linspace(0.0, 1.0, n_parallels)
        return list(self.evaluate_grid(us, vs))

    def true_meridians(self, v_step: float, n_meridians: int) -> List[np.ndarray]:
        us = np.linspace(0.0, 1.0, n_meridians)
        vs = _steps(v_step)
        return list(np.swapaxes(self.evaluate_grid(us, vs), 0, 1))

    def normal_sticks(self, length: float, step: float) -> np.ndarray:
        """Line segments ``(tip, base)`` along the surface normals."""

        us = _steps(step)
        vs = np.arange(1e-4, 1.0 - 1e-4, step)
        base = self.evaluate_grid(us, vs).reshape(-1, 3)
        tips = base + length * self.normal_grid(us, vs).reshape(-1, 3)
        return np.stack([tips, base], axis=1)

    def surface_centroid(self, resolution: int = 32) -> np.ndarray:
        """Mean of a ``resolution x resolution`` surface sample."""

        ts = np.arange(resolution) / resolution
        return self.evaluate_grid(ts, ts).reshape(-1, 3).mean(axis=0)

    def recenter(self, resolution: int = 32) -> None:
        self._grid = self._grid - self.surface_centroid(resolution)

    # ------------------------------------------------------------------
    # maintenance

    def reset_periodicity(self) -> None:
        self._grid = operators.reset_periodicity(self._grid, self._degree_u)

    def poles_smoothing(self) -> None:
        self._grid = operators.poles_smoothing(self._grid, self._degree_u, self.PLATEAU_ROWS)

    def laplacian_smoothing(self, step: float = 0.1, threshold: float = 0.0) -> None:
        """Relax interior control points where the surface Laplacian is large.

        A point moves a fraction ``step`` of the way toward the average of
        itself and its four grid neighbours when the sampled surface
        Laplacian at the matching parameter exceeds ``threshold``.
        """

        columns = self.meridian_count
        inner = operators.interior_rows(self.plateaus)
        source = self._grid
        out = source.copy()
        h = 0.1
        for i in range(inner.start, inner.stop):
            v = i / (self.parallel_count - 1)
            for j in range(columns):
                u = j / columns
                centre = self.evaluate(u, v)
                around = (self.evaluate(u - h, v) + self.evaluate(u + h, v)
                          + self.evaluate(u, v - h) + self.evaluate(u, v + h)) / 4.0
                if float(np.linalg.norm(around - centre)) <= threshold:
                    continue
                average = (source[i, j] + source[i, (j - 1) % columns] + source[i, (j + 1) % columns]
                           + source[i - 1, j] + source[i + 1, j]) / 5.0
                out[i, j] = (1.0 - step) * source[i, j] + step * average
        self._grid = operators.reset_periodicity(out, self._degree_u)

    def curvature_smoothing(self, step: float = 0.1, rate: float = 0.01) -> None:
        """Move control points along the normal against the mean curvature.

        Every sample ``(u, v)`` on a ``step`` lattice pushes the control
        points of its active patch by ``-rate * Nu * Nv * H * n``.  Samples
        with a degenerate ``u`` derivative or normal are skipped, plateau
        rows never move and the displacements of wrapped columns are folded
        back onto the meridians they copy.
        """

        deltas = np.zeros_like(self._grid)
        du_, dv_ = self._degree_u, self._degree_v
        for u in _steps(step):
            for v in _steps(step):
                if np.linalg.norm(self.u_derivative(u, v)) <= 1e-12:
                    continue
                n = self.normal(u, v)
                if np.isnan(n).any():
                    continue
                h = self.mean_curvature(u, v)
                su = span(u, self._knots_u, du_)
                sv = span(v, self._knots_v, dv_)
                bu = np.asarray(basis(su, u, self._knots_u, du_))
                bv = np.asarray(basis(sv, v, self._knots_v, dv_))
                weights = -rate * h * np.outer(bv, bu)
                deltas[sv - dv_ + 1:sv + 2, su - du_ + 1:su + 2] += weights[..., None] * n
        columns = self.meridian_count
        deltas[:, :du_] += deltas[:, columns:]
        inner = operators.interior_rows(self.plateaus)
        out = self._grid.copy()
        out[inner, :columns] += deltas[inner, :columns]
        self._grid = operators.reset_periodicity(out, du_)

    # ------------------------------------------------------------------
    # genetic operators

    def try_operator(self, candidate: np.ndarray, step: float) -> bool:
        """Commit ``candidate`` if its smoothed, periodic surface is valid.

        Returns ``False`` and keeps the current grid when the candidate's
        tessellation at ``step`` intersects itself.
        """

        trial = operators.poles_smoothing(candidate, self._degree_u, self.PLATEAU_ROWS)
        checked = Planet._from_full_grid(trial, self._degree_u, self._degree_v)
        if is_self_intersecting(checked, step):
            return False
        self._grid = checked._grid
        return True

    def _check_compatible(self, other: "Planet") -> None:
        if other._grid.shape != self._grid.shape or other._degree_u != self._degree_u \
                or other._degree_v != self._degree_v:
            raise ValueError(f'incompatible planets: {self!r} and {other!r}')

    def mutate(self, min_distance: float, max_distance: float, step: float,
               rng: Optional[np.random.Generator] = None) -> bool:
        """Random local displacement; ``True`` if the result was committed."""

        rng = rng if rng is not None else np.random.default_rng()
        direction = operators.random_direction(rng)
        distance = rng.uniform(min_distance, max_distance)
        if distance == 0.0:
            return True
        row = int(rng.integers(self._degree_v - 1, self.parallel_count - self._degree_v, endpoint=True))
        column = int(rng.integers(0, self.meridian_count))
        candidate = operators.gaussian_displacement(
            self._grid, self._degree_u, self.plateaus, row, column, direction * distance
        )
        committed = self.try_operator(candidate, step)
        if not committed:
            logger.debug(f"[Planet] mutation at ({row}, {column}) rejected: self-intersection")
        return committed

    def differential_mutate(self, first: "Planet", second: "Planet", scale: float, step: float) -> bool:
        """``self + scale * (first - second)``; ``True`` if committed."""

        self._check_compatible(first)
        self._check_compatible(second)
        candidate = operators.differential(
            self._grid, first._grid, second._grid, scale, self.plateaus, self.meridian_count
        )
        committed = self.try_operator(candidate, step)
        if not committed:
            logger.debug("[Planet] differential mutation rejected: self-intersection")
        return committed

    def _child(self, candidate: np.ndarray, step: float, kind: str) -> Optional["Planet"]:
        child = self.copy()
        if child.try_operator(candidate, step):
            return child
        logger.debug(f"[Planet] {kind} crossover rejected: self-intersection")
        return None

    def continuous_crossover(self, other: "Planet", rate: float, step: float) -> Optional["Planet"]:
        self._check_compatible(other)
        candidate = operators.blend(self._grid, other._grid, rate, self.plateaus, self.meridian_count)
        return self._child(candidate, step, 'continuous')

    def uniform_crossover(self, other: "Planet", rate: float, step: float,
                          rng: Optional[np.random.Generator] = None) -> Optional["Planet"]:
        self._check_compatible(other)
        rng = rng if rng is not None else np.random.default_rng()
        candidate = operators.uniform_mix(
            self._grid, other._grid, rate, rng, self.plateaus, self.meridian_count
        )
        return self._child(candidate, step, 'uniform')

    def parallel_wise_crossover(self, other: "Planet", rate: float, step: float,
                                rng: Optional[np.random.Generator] = None) -> Optional["Planet"]:
        self._check_compatible(other)
        rng = rng if rng is not None else np.random.default_rng()
        candidate = operators.parallel_mix(self._grid, other._grid, rate, rng, self.plateaus)
        return self._child(candidate, step, 'parallel-wise')

    def crossover(self, other: "Planet", kind: CrossoverType, rate: float, step: float,
                  rng: Optional[np.random.Generator] = None) -> Optional["Planet"]:
        """Child of ``self`` and ``other`` or ``None``; parents are never modified."""

        kind = CrossoverType(kind)
        if kind is CrossoverType.CONTINUOUS:
            return self.continuous_crossover(other, rate, step)
        if kind is CrossoverType.UNIFORM:
            return self.uniform_crossover(other, rate, step, rng)
        return self.parallel_wise_crossover(other, rate, step, rng)

    # ------------------------------------------------------------------
    # diversity

    def diversity(self, other: "Planet") -> float:
        """Mean distance between corresponding distinct control points."""

        self._check_compatible(other)
        columns = self.meridian_count
        diff = self._grid[:, :columns] - other._grid[:, :columns]
        return float(np.linalg.norm(diff, axis=-1).mean())

    @staticmethod
    def diversity_grid(planets: Sequence["Planet"]) -> np.ndarray:
        n = len(planets)
        grid = np.zeros((n, n))
        for i in range(n):
            for j in range(i + 1, n):
                grid[i, j] = grid[j, i] = planets[i].diversity(planets[j])
        return grid

    @staticmethod
    def min_diversities(planets: Sequence["Planet"]) -> List[float]:
        """Distance of every planet to its nearest neighbour, pairs counted once.

        When ``j < i`` already took ``i`` as its nearest neighbour, ``i`` is
        credited with its next-nearest one instead.  If no other candidate is
        left (two planets), the shared distance is used.
        """

        n = len(planets)
        if n < 2:
            return [0.0] * n
        grid = Planet.diversity_grid(planets)
        partners: List[int] = []
        result: List[float] = []
        for i in range(n):
            best = float('inf')
            best_index = -1
            for j in range(n):
                if j == i or (j < i and partners[j] == i):
                    continue
                if grid[i, j] < best:
                    best = grid[i, j]
                    best_index = j
            if best_index < 0:
                others = [j for j in range(n) if j != i]
                best_index = min(others, key=lambda j: grid[i, j])
                best = grid[i, best_index]
            partners.append(best_index)
            result.append(float(best))
        return result


__all__ = ['Planet', 'PlateauBlock', 'CrossoverType']
