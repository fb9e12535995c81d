"""B-spline basis helpers for evoplanets.

Knot vectors here omit the outermost knot at each end, so a spline with ``n``
control points and degree ``p`` carries ``n + p - 1`` integer knots.  The
global basis index of local entry ``j`` at span ``s`` is ``j + s - p + 1``.
Curves are evaluated through a normalised parameter ``t`` in ``[0, 1]`` that
maps linearly onto the knot domain ``[knots[p-1], knots[len-p]]``.
"""

from __future__ import annotations

from math import cos, pi, sin
from typing import List, Sequence

import numpy as np

from evoplanets.errors import InsufficientControlPointsError


def generate_knots(n: int, degree: int, boundary_repetition: int = 0) -> List[int]:
    """Return a knot vector for ``n`` control points.

    With ``boundary_repetition == 0`` the knots are ``0, 1, 2, ...`` (uniform,
    used for the periodic direction).  Otherwise the first and last
    ``boundary_repetition`` knots are repeated, pinning the curve to its end
    control points.
    """

    if n < degree + 1:
        raise InsufficientControlPointsError(n, degree)
    length = n + degree - 1
    if boundary_repetition <= 0:
        return list(range(length))

    knots = [0] * length
    value = 1
    for i in range(boundary_repetition, length - boundary_repetition):
        knots[i] = value
        value += 1
    for i in range(length - boundary_repetition, length):
        knots[i] = value
    return knots


def to_u(t: float, knots: Sequence[int], degree: int) -> float:
    """Map normalised ``t`` onto the knot domain."""

    lo = knots[degree - 1]
    hi = knots[len(knots) - degree]
    return (1.0 - t) * lo + t * hi


def parameter_scale(knots: Sequence[int], degree: int) -> float:
    """Return ``du/dt`` for the normalised parameterisation."""

    return float(knots[len(knots) - degree] - knots[degree - 1])


def span(t: float, knots: Sequence[int], degree: int) -> int:
    """Return the index of the knot interval containing ``t``.

    A linear scan is enough for the handful of knots a planet carries.
    """

    u = to_u(t, knots, degree)
    last = len(knots) - degree - 1
    index = degree - 1
    while index < last and u >= knots[index + 1]:
        index += 1
    return index


def _div(num: float, den: float) -> float:
    if den == 0:
        return 0.0
    return num / den


def _lower_basis(span_index: int, u: float, knots: Sequence[int], degree: int, levels: int) -> List[float]:
    # Cox-de Boor up to order ``levels``; slot ``degree`` holds the level-0 function.
    values = [0.0] * (degree + 1)
    values[degree] = 1.0
    for level in range(1, levels + 1):
        current = [0.0] * (degree + 1)
        for j in range(degree + 1):
            b = j + span_index - degree + 1
            value = 0.0
            if j > 0:
                value += _div(u - knots[b - 1], knots[b + level - 1] - knots[b - 1]) * values[j]
            if j < degree:
                value += _div(knots[b + level] - u, knots[b + level] - knots[b]) * values[j + 1]
            current[j] = value
        values = current
    return values


def basis(span_index: int, t: float, knots: Sequence[int], degree: int) -> List[float]:
    """Return the ``degree + 1`` non-zero basis values at ``t``."""

    u = to_u(t, knots, degree)
    return _lower_basis(span_index, u, knots, degree, degree)


def d1_basis(span_index: int, t: float, knots: Sequence[int], degree: int) -> List[float]:
    """First derivatives of the non-zero basis functions with respect to ``u``."""

    u = to_u(t, knots, degree)
    lower = _lower_basis(span_index, u, knots, degree, degree - 1)
    result = [0.0] * (degree + 1)
    for j in range(degree + 1):
        b = j + span_index - degree + 1
        value = 0.0
        if j > 0:
            value += _div(degree, knots[b + degree - 1] - knots[b - 1]) * lower[j]
        if j < degree:
            value -= _div(degree, knots[b + degree] - knots[b]) * lower[j + 1]
        result[j] = value
    return result


def d2_basis(span_index: int, t: float, knots: Sequence[int], degree: int) -> List[float]:
    """Second derivatives of the non-zero basis functions with respect to ``u``.

    Uses the order ``degree - 2`` functions and the closed form

    ``N''(b,p) = p(p-1) [ N(b,p-2) / (L (k[b+p-2]-k[b-1]))
    - N(b+1,p-2) / (L (k[b+p-1]-k[b])) - N(b+1,p-2) / (R (k[b+p-1]-k[b]))
    + N(b+2,p-2) / (R (k[b+p]-k[b+1])) ]``

    with ``L = k[b+p-1]-k[b-1]`` and ``R = k[b+p]-k[b]``.  Terms with a zero
    knot span vanish.  Degrees below two have no curvature and return zeros.
    """

    result = [0.0] * (degree + 1)
    if degree < 2:
        return result
    u = to_u(t, knots, degree)
    lower = _lower_basis(span_index, u, knots, degree, degree - 2)
    c = float(degree * (degree - 1))
    for j in range(degree + 1):
        b = j + span_index - degree + 1
        value = 0.0
        if j > 0:
            left = knots[b + degree - 1] - knots[b - 1]
            value += _div(c, left * (knots[b + degree - 2] - knots[b - 1])) * lower[j]
            if j < degree:
                value -= _div(c, left * (knots[b + degree - 1] - knots[b])) * lower[j + 1]
        if j < degree:
            right = knots[b + degree] - knots[b]
            value -= _div(c, right * (knots[b + degree - 1] - knots[b])) * lower[j + 1]
            if j + 2 <= degree:
                value += _div(c, right * (knots[b + degree] - knots[b + 1])) * lower[j + 2]
        result[j] = value
    return result


_BASIS_FUNCS = (basis, d1_basis, d2_basis)


def basis_matrix(ts: Sequence[float], knots: Sequence[int], degree: int, derivative: int = 0) -> np.ndarray:
    """Return a dense ``(len(ts), n)`` matrix of basis values.

    Row ``r`` holds every basis function (or its ``derivative``-th derivative
    with respect to ``t``) evaluated at ``ts[r]``.  Multiplying by an
    ``(n, 3)`` control array evaluates the curve at all parameters at once.
    """

    if derivative not in (0, 1, 2):
        raise ValueError('derivative must be 0, 1 or 2')
    func = _BASIS_FUNCS[derivative]
    count = len(knots) - degree + 1
    scale = parameter_scale(knots, degree) ** derivative
    matrix = np.zeros((len(ts), count))
    for row, t in enumerate(ts):
        s = span(t, knots, degree)
        values = func(s, t, knots, degree)
        matrix[row, s - degree + 1:s + 2] = values
    if derivative:
        matrix *= scale
    return matrix


class BSpline:
    """Open or closed B-spline curve over 3D control points."""

    def __init__(self, control_points, knots: Sequence[int] | None = None, degree: int = 3):
        points = np.asarray(control_points, dtype=float)
        if points.ndim != 2 or points.shape[0] == 0:
            raise ValueError('control_points must be a non-empty sequence of points')
        if knots is None:
            knots = generate_knots(points.shape[0], degree, 0)
        knots = [int(k) for k in knots]
        if len(knots) != points.shape[0] + degree - 1:
            raise ValueError(
                f'expected {points.shape[0] + degree - 1} knots, got {len(knots)}'
            )
        self._points = points
        self._knots = knots
        self._degree = degree

    @classmethod
    def periodic(cls, points, degree: int = 3) -> "BSpline":
        """Closed curve: the first ``degree`` points are appended to the end."""

        pts = np.asarray(points, dtype=float)
        if pts.shape[0] < degree + 1:
            raise InsufficientControlPointsError(pts.shape[0], degree)
        closed = np.concatenate([pts, pts[:degree]], axis=0)
        return cls(closed, generate_knots(closed.shape[0], degree, 0), degree)

    @classmethod
    def clamped(cls, points, degree: int = 3) -> "BSpline":
        """Open curve passing through its first and last control points."""

        pts = np.asarray(points, dtype=float)
        return cls(pts, generate_knots(pts.shape[0], degree, degree), degree)

    @classmethod
    def circle(cls, radius: float = 1.0, center=(0.0, 0.0, 0.0), n: int = 8, degree: int = 3) -> "BSpline":
        """Closed curve whose control polygon is a regular ``n``-gon in XZ."""

        cx, cy, cz = center
        pts = [
            (cx + radius * cos(2.0 * pi * k / n), cy, cz + radius * sin(2.0 * pi * k / n))
            for k in range(n)
        ]
        return cls.periodic(pts, degree)

    @property
    def control_points(self) -> np.ndarray:
        return self._points

    @property
    def knots(self) -> List[int]:
        return list(self._knots)

    @property
    def degree(self) -> int:
        return self._degree

    def evaluate(self, t: float) -> np.ndarray:
        if t < 0.0 or t > 1.0:
            raise ValueError('parameter t must be in the range [0, 1]')
        s = span(t, self._knots, self._degree)
        weights = basis(s, t, self._knots, self._degree)
        start = s - self._degree + 1
        return np.asarray(weights) @ self._points[start:start + self._degree + 1]

    def derivative(self, t: float, order: int = 1) -> np.ndarray:
        """Derivative of ``order`` 1 or 2 with respect to ``t``."""

        if t < 0.0 or t > 1.0:
            raise ValueError('parameter t must be in the range [0, 1]')
        return (basis_matrix([t], self._knots, self._degree, order) @ self._points)[0]

    def sample(self, n: int) -> np.ndarray:
        """Return ``n`` evenly spaced curve points, endpoints included."""

        ts = np.linspace(0.0, 1.0, n)
        return basis_matrix(ts, self._knots, self._degree) @ self._points

    def __repr__(self) -> str:
        return f'BSpline(degree={self._degree}, points={self._points.shape[0]})'


__all__ = [
    'generate_knots',
    'to_u',
    'parameter_scale',
    'span',
    'basis',
    'd1_basis',
    'd2_basis',
    'basis_matrix',
    'BSpline',
]
