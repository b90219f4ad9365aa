#!/usr/bin/env python3
"""
Spatial index and nearest-neighbour correspondences.

SpatialIndex wraps scipy's cKDTree. An index is never modified after it is
built: insert() returns a new index, so one instance can be queried from many
worker threads while clouds are aligned against the same baseline.

Author: Reconstruction Team
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..errors import DimensionMismatchError, EmptyInputError, InvalidArgumentError
from ..numerics.linalg import as_points
from .point_cloud import PointCloud

logger = logging.getLogger(__name__)


def _coords(cloud) -> np.ndarray:
    if isinstance(cloud, PointCloud):
        return cloud.points
    return as_points(cloud)


class SpatialIndex:
    """Read-only KD-tree over a fixed set of points."""

    def __init__(self, points):
        coords = _coords(points)
        if coords.shape[0] == 0:
            raise EmptyInputError("Cannot index an empty point set")
        self._points = coords
        self._tree = cKDTree(coords)

    @property
    def points(self) -> np.ndarray:
        return self._points

    @property
    def dimension(self) -> int:
        return self._points.shape[1]

    def __len__(self) -> int:
        return self._points.shape[0]

    def _check(self, queries: np.ndarray) -> np.ndarray:
        queries = as_points(queries, "queries")
        if queries.shape[1] != self.dimension:
            raise DimensionMismatchError(
                f"Query dimension {queries.shape[1]} does not match index dimension {self.dimension}"
            )
        return queries

    def nearest(self, queries) -> Tuple[np.ndarray, np.ndarray]:
        """Distance to, and index of, the closest indexed point for each query row."""
        queries = self._check(_coords(queries))
        distances, indices = self._tree.query(queries, k=1)
        return np.asarray(distances, dtype=np.float64), np.asarray(indices, dtype=np.int64)

    def within(self, point, radius: float) -> List[int]:
        """Indices of indexed points at distance <= radius from ``point``."""
        if radius < 0:
            raise InvalidArgumentError(f"Radius must be non-negative, got {radius}")
        point = self._check(point)[0]
        return sorted(self._tree.query_ball_point(point, radius))

    def insert(self, points) -> "SpatialIndex":
        """New index holding the current points followed by ``points``."""
        extra = self._check(_coords(points))
        return SpatialIndex(np.vstack([self._points, extra]))


@dataclass(frozen=True)
class Correspondences:
    """One nearest target point per source point, in source order."""
    source: np.ndarray
    target: np.ndarray
    distances: np.ndarray
    target_indices: np.ndarray

    def __len__(self) -> int:
        return self.source.shape[0]

    @property
    def rms(self) -> float:
        return float(np.sqrt(np.mean(self.distances ** 2)))

    @property
    def mean_distance(self) -> float:
        return float(np.mean(self.distances))

    def pairs(self):
        """Iterate (source point, target point) tuples."""
        return zip(self.source, self.target)


def find_correspondences(source, target, index: Optional[SpatialIndex] = None) -> Correspondences:
    """
    Pair every source point with its nearest target point.

    Args:
        source: PointCloud or (N, d) array to match from.
        target: PointCloud or (M, d) array to match into. Ignored for the
            search when ``index`` is given, but still used for validation.
        index: Prebuilt index over ``target`` (shared across calls).

    Returns:
        Correspondences of length N. Several source points may share a target.
    """
    src = _coords(source)
    if src.shape[0] == 0:
        raise EmptyInputError("Source cloud is empty")
    if index is None:
        index = SpatialIndex(target)
    distances, indices = index.nearest(src)
    return Correspondences(
        source=src,
        target=index.points[indices],
        distances=distances,
        target_indices=indices,
    )


def brute_force_correspondences(source, target) -> Correspondences:
    """O(N*M) reference implementation of find_correspondences."""
    src = _coords(source)
    tgt = _coords(target)
    if src.shape[0] == 0 or tgt.shape[0] == 0:
        raise EmptyInputError("Both clouds must be non-empty")
    if src.shape[1] != tgt.shape[1]:
        raise DimensionMismatchError(f"Dimensions differ: {src.shape[1]} vs {tgt.shape[1]}")

    diff = src[:, None, :] - tgt[None, :, :]
    dist_sq = np.einsum('ijk,ijk->ij', diff, diff)
    indices = np.argmin(dist_sq, axis=1)
    distances = np.sqrt(dist_sq[np.arange(src.shape[0]), indices])
    return Correspondences(source=src, target=tgt[indices], distances=distances, target_indices=indices)


def mean_correspondence_distance(source, target, index: Optional[SpatialIndex] = None) -> float:
    """Average nearest-neighbour distance from ``source`` into ``target``."""
    return find_correspondences(source, target, index=index).mean_distance
