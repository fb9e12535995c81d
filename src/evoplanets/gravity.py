"""Approximate self-gravity of a closed triangle mesh.

The solid enclosed by the mesh is sliced into parallel "tubes": a square grid
of rays parallel to the polar (y) axis is cast through the mesh and every
entry/exit pair of hits becomes a segment.  Each tube stands for a prism of
uniform density whose cross-section is one grid cell; its field is the closed
form line integral of a uniform segment, softened by the tube radius so that
points on or inside the body stay finite.
"""

from __future__ import annotations

from math import pi, sqrt
from typing import Optional, Tuple

import numpy as np

from evoplanets.bvh import BVH
from evoplanets.mesh import TriangleMesh

AXIS = np.array([0.0, 1.0, 0.0])
DEFAULT_CHUNK = 256
_HIT_MERGE_TOL = 1e-9


def build_tubes(mesh: TriangleMesh, resolution: int) -> Tuple[np.ndarray, float]:
    """Return ``(tubes, cell_area)`` for ``mesh``.

    ``tubes`` has shape ``(n, 2, 3)`` holding the start and end of each
    segment.  Rays go through the centres of a ``resolution x resolution``
    grid spanning the mesh's XZ bounds.
    """

    if resolution < 1:
        raise ValueError('resolution must be at least 1')
    lo, hi = mesh.bounds()
    dx = (hi[0] - lo[0]) / resolution
    dz = (hi[2] - lo[2]) / resolution
    if dx <= 0.0 or dz <= 0.0:
        return np.zeros((0, 2, 3)), 0.0

    xs = lo[0] + (np.arange(resolution) + 0.5) * dx
    zs = lo[2] + (np.arange(resolution) + 0.5) * dz
    gx, gz = np.meshgrid(xs, zs, indexing='ij')
    start_y = lo[1] - 1.0
    origins = np.stack([gx.ravel(), np.full(gx.size, start_y), gz.ravel()], axis=1)

    segments = []
    for origin, hits in zip(origins, BVH(mesh.triangles()).cast_rays(origins, AXIS)):
        if len(hits) < 2:
            continue
        keep = np.concatenate([[True], np.diff(hits) > _HIT_MERGE_TOL])
        hits = hits[keep]
        for k in range(0, len(hits) - 1, 2):
            segments.append((origin + hits[k] * AXIS, origin + hits[k + 1] * AXIS))
    if not segments:
        return np.zeros((0, 2, 3)), dx * dz
    return np.asarray(segments, dtype=float), dx * dz


def field_at(tubes, points, G: float = 1.0, radius: float = 0.0,
             linear_density: float = 1.0, chunk: int = DEFAULT_CHUNK) -> np.ndarray:
    """Gravitational field of ``tubes`` at every point of ``points``.

    A segment from ``A`` along unit ``e`` with length ``L`` attracts a point
    ``p`` with ``G lambda [e (1/r1 - 1/r2) + w/rho^2 ((a+L)/r2 - a/r1)]``
    where ``d = A - p``, ``a = d.e``, ``w = d - a e``, ``rho^2 = |w|^2 + R^2``,
    ``r1 = sqrt(a^2 + rho^2)`` and ``r2 = sqrt((a+L)^2 + rho^2)``.
    """

    tubes = np.asarray(tubes, dtype=float).reshape(-1, 2, 3)
    pts = np.asarray(points, dtype=float).reshape(-1, 3)
    result = np.zeros_like(pts)
    if not len(tubes) or not len(pts):
        return result

    start = tubes[:, 0]
    axis = tubes[:, 1] - start
    length = np.linalg.norm(axis, axis=1)
    valid = length > 0.0
    start, axis, length = start[valid], axis[valid], length[valid]
    e = axis / length[:, None]
    r2_soft = radius * radius

    for lo in range(0, len(pts), chunk):
        p = pts[lo:lo + chunk]
        d = start[None, :, :] - p[:, None, :]
        a = np.einsum('ntk,tk->nt', d, e)
        w = d - a[..., None] * e[None]
        rho2 = np.einsum('ntk,ntk->nt', w, w) + r2_soft
        r1 = np.sqrt(a * a + rho2)
        r2 = np.sqrt((a + length) ** 2 + rho2)
        with np.errstate(divide='ignore', invalid='ignore'):
            along = 1.0 / r1 - 1.0 / r2
            across = ((a + length) / r2 - a / r1) / rho2
        along = np.nan_to_num(along, nan=0.0, posinf=0.0, neginf=0.0)
        across = np.nan_to_num(across, nan=0.0, posinf=0.0, neginf=0.0)
        g = along[..., None] * e[None] + across[..., None] * w
        result[lo:lo + chunk] = g.sum(axis=1)
    return G * linear_density * result


class GravityComputer:
    """Field of one tessellated planet, rebuilt whenever the mesh changes."""

    def __init__(self, mesh: TriangleMesh, tubes_resolution: int = 64, G: float = 1.0):
        self.G = float(G)
        self.tubes, self.cell_area = build_tubes(mesh, tubes_resolution)
        self.radius = sqrt(self.cell_area / pi) if self.cell_area > 0.0 else 0.0

    def __len__(self) -> int:
        return len(self.tubes)

    def field(self, point) -> np.ndarray:
        return self.fields(np.asarray(point, dtype=float)[None])[0]

    def fields(self, points) -> np.ndarray:
        return field_at(self.tubes, points, self.G, self.radius, self.cell_area)

    def tube_lines(self) -> np.ndarray:
        """Tube endpoints flattened to ``(2n, 3)`` for line rendering."""

        return self.tubes.reshape(-1, 3)

    def mass_center(self) -> Optional[np.ndarray]:
        """Mean of the tube midpoints; ``None`` for a mesh with no volume."""

        if not len(self.tubes):
            return None
        return self.tubes.mean(axis=1).mean(axis=0)


__all__ = ['AXIS', 'build_tubes', 'field_at', 'GravityComputer']
