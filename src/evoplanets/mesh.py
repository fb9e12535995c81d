"""Triangle tessellation of planet surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil
from typing import Iterator, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
TriTuple = Tuple[Vec3, Vec3, Vec3, Vec3]

MAX_DIVISIONS = 128
MIN_DIVISIONS = 3


@dataclass(frozen=True)
class TriangleMesh:
    """Indexed triangle mesh with per-vertex normals."""

    positions: np.ndarray
    normals: np.ndarray
    faces: np.ndarray

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])

    def triangles(self) -> np.ndarray:
        """Vertex coordinates per face, shape ``(faces, 3, 3)``."""

        return self.positions[self.faces]

    def face_normals(self) -> np.ndarray:
        """Unnormalised face normals following the winding order."""

        tri = self.triangles()
        return np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.positions.min(axis=0), self.positions.max(axis=0)


def divisions(step: float) -> int:
    """Samples per direction for a parameter ``step``, capped at ``MAX_DIVISIONS``."""

    if step <= 0.0:
        raise ValueError('step must be positive')
    count = int(ceil(1.0 / step - 1e-9))
    return max(MIN_DIVISIONS, min(MAX_DIVISIONS, count))


def tessellate(planet, step: float) -> TriangleMesh:
    """Triangulate ``planet`` with parameter spacing ``step``.

    Interior rings sample ``v = k / n`` for ``0 < k < n`` and ``u = j / n``;
    each pole is a single vertex joined to its nearest ring by a fan.  Faces
    wind so that their normals follow ``cross(Su, Sv)`` and point outward on
    a sphere.  The output depends only on the planet and ``step``.
    """

    n_u = divisions(step)
    n_v = divisions(step)
    us = np.arange(n_u) / n_u
    vs = np.arange(1, n_v) / n_v

    rings = planet.evaluate_grid(us, vs)
    ring_normals = planet.normal_grid(us, vs)
    north = planet.evaluate_grid(us, [0.0]).reshape(-1, 3).mean(axis=0)
    south = planet.evaluate_grid(us, [1.0]).reshape(-1, 3).mean(axis=0)

    ring_count = rings.shape[0]
    south_index = 1 + ring_count * n_u
    positions = np.concatenate([north[None], rings.reshape(-1, 3), south[None]], axis=0)

    def vid(r, c):
        return 1 + r * n_u + (c % n_u)

    faces = []
    for c in range(n_u):
        faces.append((0, vid(0, c + 1), vid(0, c)))
    for r in range(ring_count - 1):
        for c in range(n_u):
            a, b = vid(r, c), vid(r, c + 1)
            lower, lower_next = vid(r + 1, c), vid(r + 1, c + 1)
            faces.append((a, b, lower))
            faces.append((b, lower_next, lower))
    last = ring_count - 1
    for c in range(n_u):
        faces.append((vid(last, c), vid(last, c + 1), south_index))
    faces = np.asarray(faces, dtype=np.int64)

    normals = np.concatenate([np.zeros((1, 3)), ring_normals.reshape(-1, 3), np.zeros((1, 3))])
    tri = positions[faces]
    face_n = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    for pole, fan in ((0, slice(0, n_u)), (south_index, slice(len(faces) - n_u, len(faces)))):
        n = face_n[fan].sum(axis=0)
        length = np.linalg.norm(n)
        normals[pole] = n / length if length > 0 else np.nan
    return TriangleMesh(positions, normals, faces)


def mesh_view(mesh: TriangleMesh) -> Iterator[TriTuple]:
    """Yield triangles as ``(normal, v0, v1, v2)`` tuples.

    Normals are unit vectors. Faces with degenerate geometry (zero area) are
    skipped silently.
    """

    tri = mesh.triangles()
    normals = mesh.face_normals()
    lengths = np.linalg.norm(normals, axis=1)
    for index in range(tri.shape[0]):
        if lengths[index] <= 1e-12:
            continue
        n = normals[index] / lengths[index]
        v0, v1, v2 = (tuple(float(x) for x in vertex) for vertex in tri[index])
        yield (float(n[0]), float(n[1]), float(n[2])), v0, v1, v2


__all__ = ['TriangleMesh', 'MAX_DIVISIONS', 'divisions', 'tessellate', 'mesh_view']
