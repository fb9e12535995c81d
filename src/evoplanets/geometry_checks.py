"""Validation helpers for planet meshes.

:func:`is_self_intersecting` is the validity oracle every genetic operator
consults before committing a new control grid.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterator, List, Optional

import numpy as np

from evoplanets.bvh import BVH, moller_trumbore
from evoplanets.mesh import TriangleMesh, mesh_view, tessellate

_EDGES = ((0, 1), (1, 2), (2, 0))
_PAIR_CHUNK = 20000


@dataclass
class CheckResult:
    ok: bool
    warnings: List[str]

    def __bool__(self) -> bool:
        return self.ok


def surface_watertight(mesh: TriangleMesh) -> CheckResult:
    """Every edge must be shared by exactly two faces."""

    edges = Counter()
    for a, b, c in mesh.faces.tolist():
        edges[_edge_key(a, b)] += 1
        edges[_edge_key(b, c)] += 1
        edges[_edge_key(c, a)] += 1

    boundary = [edge for edge, count in edges.items() if count == 1]
    invalid = [edge for edge, count in edges.items() if count > 2]

    warnings: List[str] = []
    ok = True
    if boundary:
        ok = False
        warnings.append(f'{len(boundary)} boundary edges detected')
    if invalid:
        ok = False
        warnings.append(f'edges with multiplicity >2: {invalid}')

    return CheckResult(ok, warnings)


def faces_oriented(mesh: TriangleMesh) -> CheckResult:
    """Neighbouring faces must traverse their shared edge in opposite directions."""

    directed = Counter()
    for a, b, c in mesh.faces.tolist():
        directed[(a, b)] += 1
        directed[(b, c)] += 1
        directed[(c, a)] += 1

    repeated = sorted(edge for edge, count in directed.items() if count > 1)
    degenerate = mesh.triangle_count - sum(1 for _ in mesh_view(mesh))
    warnings: List[str] = []
    if degenerate:
        warnings.append(f'{degenerate} degenerate faces skipped')
    if repeated:
        return CheckResult(False, warnings + [f'inconsistent face orientation on edges: {repeated}'])
    return CheckResult(True, warnings)


def _edge_key(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)


def _edges_cross(edge_tris: np.ndarray, target_tris: np.ndarray) -> np.ndarray:
    # any edge of edge_tris passing through the interior of target_tris
    crossing = np.zeros(edge_tris.shape[0], dtype=bool)
    for i, j in _EDGES:
        start = edge_tris[:, i]
        direction = edge_tris[:, j] - start
        t, hit = moller_trumbore(start, direction, target_tris)
        crossing |= hit & (t >= 0.0) & (t <= 1.0)
    return crossing


def triangles_intersect(first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """Element-wise triangle/triangle test for ``(n, 3, 3)`` arrays.

    Coplanar pairs are reported as not intersecting.
    """

    first = np.asarray(first, dtype=float)
    second = np.asarray(second, dtype=float)
    return _edges_cross(first, second) | _edges_cross(second, first)


def _sharing_vertex(pairs: np.ndarray, triangles: np.ndarray, faces: Optional[np.ndarray]) -> np.ndarray:
    i, j = pairs[:, 0], pairs[:, 1]
    if faces is not None:
        fi = faces[i]
        fj = faces[j]
        return (fi[:, :, None] == fj[:, None, :]).any(axis=(1, 2))
    ti = triangles[i]
    tj = triangles[j]
    same = (ti[:, :, None, :] == tj[:, None, :, :]).all(axis=-1)
    return same.any(axis=(1, 2))


def _intersecting_pairs(triangles, faces) -> Iterator[np.ndarray]:
    tris = np.asarray(triangles, dtype=float)
    if len(tris) < 2:
        return
    face_idx = None if faces is None else np.asarray(faces)
    pairs = BVH(tris).overlapping_pairs()
    for start in range(0, len(pairs), _PAIR_CHUNK):
        chunk = pairs[start:start + _PAIR_CHUNK]
        chunk = chunk[~_sharing_vertex(chunk, tris, face_idx)]
        if not len(chunk):
            continue
        hit = triangles_intersect(tris[chunk[:, 0]], tris[chunk[:, 1]])
        if hit.any():
            yield chunk[hit]


def find_intersections(triangles, faces=None) -> np.ndarray:
    """Index pairs of non-adjacent triangles that intersect.

    Triangles that share a vertex are adjacent and never reported.  Vertex
    sharing is read from ``faces`` when given, else from exact coordinate
    equality.
    """

    found = list(_intersecting_pairs(triangles, faces))
    if not found:
        return np.zeros((0, 2), dtype=np.int64)
    return np.concatenate(found, axis=0)


def any_intersect(triangles, faces=None) -> bool:
    """``True`` if any two non-adjacent triangles intersect."""

    for _ in _intersecting_pairs(triangles, faces):
        return True
    return False


def is_self_intersecting(planet, step: float) -> bool:
    """Tessellate ``planet`` at ``step`` and look for crossing triangles."""

    mesh = tessellate(planet, step)
    return any_intersect(mesh.triangles(), mesh.faces)


__all__ = [
    'CheckResult',
    'surface_watertight',
    'faces_oriented',
    'triangles_intersect',
    'find_intersections',
    'any_intersect',
    'is_self_intersecting',
]
