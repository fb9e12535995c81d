"""Bounding volume hierarchy over triangle soups.

The tree splits a node's triangles at the median centroid along the longest
axis of the centroid bounds.  A triangle whose centroid equals the median
goes to the lower child, so every triangle lives in exactly one leaf.  The
tree answers two questions: which triangle pairs have overlapping boxes, and
where a family of parallel rays crosses the triangles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

LEAF_SIZE = 8
_PARALLEL_EPS = 1e-12


@dataclass
class BVHNode:
    lo: np.ndarray
    hi: np.ndarray
    indices: Optional[np.ndarray] = None
    left: Optional["BVHNode"] = None
    right: Optional["BVHNode"] = None

    @property
    def is_leaf(self) -> bool:
        return self.indices is not None

    def overlaps(self, other: "BVHNode") -> bool:
        return bool(np.all(self.lo <= other.hi) and np.all(other.lo <= self.hi))


def _split(indices: np.ndarray, centroids: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    points = centroids[indices]
    extent = points.max(axis=0) - points.min(axis=0)
    axis = int(np.argmax(extent))
    keys = points[:, axis]
    median = np.median(keys)
    lower = keys <= median
    if lower.all() or not lower.any():
        order = np.argsort(keys, kind='stable')
        half = len(indices) // 2
        return indices[order[:half]], indices[order[half:]]
    return indices[lower], indices[~lower]


def moller_trumbore(origins: np.ndarray, directions: np.ndarray, triangles: np.ndarray):
    """Ray/triangle intersection, broadcasting over the leading axes.

    ``origins`` and ``directions`` have shape ``(..., 3)`` and ``triangles``
    shape ``(..., 3, 3)``.  Returns ``(t, hit)`` where ``origins + t *
    directions`` is the hit point; rays parallel to a triangle never hit.
    """

    v0 = triangles[..., 0, :]
    e1 = triangles[..., 1, :] - v0
    e2 = triangles[..., 2, :] - v0
    h = np.cross(directions, e2)
    a = np.einsum('...k,...k->...', e1, h)
    valid = np.abs(a) > _PARALLEL_EPS
    inv = np.where(valid, 1.0 / np.where(valid, a, 1.0), 0.0)
    s = origins - v0
    u = inv * np.einsum('...k,...k->...', s, h)
    q = np.cross(s, e1)
    v = inv * np.einsum('...k,...k->...', directions, q)
    t = inv * np.einsum('...k,...k->...', e2, q)
    hit = valid & (u >= 0.0) & (v >= 0.0) & (u + v <= 1.0)
    return t, hit


class BVH:
    """Median-split hierarchy of axis aligned boxes over ``(n, 3, 3)`` triangles."""

    def __init__(self, triangles, leaf_size: int = LEAF_SIZE):
        tris = np.asarray(triangles, dtype=float)
        if tris.ndim != 3 or tris.shape[1:] != (3, 3):
            raise ValueError('triangles must have shape (n, 3, 3)')
        self.triangles = tris
        self.leaf_size = max(1, int(leaf_size))
        self._lo = tris.min(axis=1)
        self._hi = tris.max(axis=1)
        self._centroids = tris.mean(axis=1)
        self.root = self._build(np.arange(tris.shape[0])) if len(tris) else None

    def __len__(self) -> int:
        return self.triangles.shape[0]

    def _build(self, indices: np.ndarray) -> BVHNode:
        node = BVHNode(self._lo[indices].min(axis=0), self._hi[indices].max(axis=0))
        if len(indices) <= self.leaf_size:
            node.indices = indices
            return node
        lower, upper = _split(indices, self._centroids)
        node.left = self._build(lower)
        node.right = self._build(upper)
        return node

    def leaves(self) -> List[BVHNode]:
        found = []
        stack = [self.root] if self.root is not None else []
        while stack:
            node = stack.pop()
            if node.is_leaf:
                found.append(node)
            else:
                stack.extend((node.left, node.right))
        return found

    def depth(self) -> int:
        def recurse(node):
            if node is None or node.is_leaf:
                return 0
            return 1 + max(recurse(node.left), recurse(node.right))
        return recurse(self.root)

    # ------------------------------------------------------------------
    # broad phase

    def overlapping_pairs(self) -> np.ndarray:
        """Index pairs ``(i, j)``, ``i < j``, whose triangle boxes overlap."""

        chunks: List[np.ndarray] = []

        def leaf_pairs(a: BVHNode, b: BVHNode) -> None:
            if a is b:
                ii, jj = np.triu_indices(len(a.indices), k=1)
                first, second = a.indices[ii], a.indices[jj]
            else:
                first = np.repeat(a.indices, len(b.indices))
                second = np.tile(b.indices, len(a.indices))
            if len(first):
                chunks.append(np.stack([first, second], axis=1))

        def visit(a: BVHNode, b: BVHNode) -> None:
            if a is b:
                if a.is_leaf:
                    leaf_pairs(a, a)
                    return
                visit(a.left, a.left)
                visit(a.right, a.right)
                visit(a.left, a.right)
                return
            if not a.overlaps(b):
                return
            if a.is_leaf and b.is_leaf:
                leaf_pairs(a, b)
            elif a.is_leaf:
                visit(a, b.left)
                visit(a, b.right)
            else:
                visit(a.left, b)
                visit(a.right, b)

        if self.root is None:
            return np.zeros((0, 2), dtype=np.int64)
        visit(self.root, self.root)
        if not chunks:
            return np.zeros((0, 2), dtype=np.int64)
        pairs = np.concatenate(chunks, axis=0)
        i, j = pairs[:, 0], pairs[:, 1]
        keep = np.all(self._lo[i] <= self._hi[j], axis=1) & np.all(self._lo[j] <= self._hi[i], axis=1)
        pairs = pairs[keep]
        return np.sort(pairs, axis=1)

    # ------------------------------------------------------------------
    # ray queries

    def cast_rays(self, origins, direction) -> List[np.ndarray]:
        """Sorted hit parameters ``t >= 0`` for rays sharing one direction."""

        origins = np.asarray(origins, dtype=float).reshape(-1, 3)
        direction = np.asarray(direction, dtype=float)
        hits: List[List[float]] = [[] for _ in range(origins.shape[0])]
        if self.root is None:
            return [np.zeros(0) for _ in hits]

        moving = np.abs(direction) > 0.0
        inv = np.where(moving, 1.0 / np.where(moving, direction, 1.0), 0.0)

        stack = [(self.root, np.arange(origins.shape[0]))]
        while stack:
            node, rays = stack.pop()
            rays = rays[self._slab(origins[rays], inv, moving, node)]
            if not len(rays):
                continue
            if not node.is_leaf:
                stack.append((node.left, rays))
                stack.append((node.right, rays))
                continue
            tris = self.triangles[node.indices]
            t, hit = moller_trumbore(origins[rays][:, None, :], direction[None, None, :], tris[None])
            hit &= t >= 0.0
            for r, k in zip(*np.nonzero(hit)):
                hits[rays[r]].append(float(t[r, k]))
        return [np.sort(np.asarray(h)) for h in hits]

    @staticmethod
    def _slab(origins: np.ndarray, inv: np.ndarray, moving: np.ndarray, node: BVHNode) -> np.ndarray:
        inside = np.ones(origins.shape[0], dtype=bool)
        t_near = np.zeros(origins.shape[0])
        t_far = np.full(origins.shape[0], np.inf)
        for axis in range(3):
            o = origins[:, axis]
            if not moving[axis]:
                inside &= (o >= node.lo[axis]) & (o <= node.hi[axis])
                continue
            t1 = (node.lo[axis] - o) * inv[axis]
            t2 = (node.hi[axis] - o) * inv[axis]
            t_near = np.maximum(t_near, np.minimum(t1, t2))
            t_far = np.minimum(t_far, np.maximum(t1, t2))
        return inside & (t_near <= t_far)


__all__ = ['BVH', 'BVHNode', 'LEAF_SIZE', 'moller_trumbore']
