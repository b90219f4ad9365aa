#!/usr/bin/env python3
"""
Point cloud container used by every registration stage.

A PointCloud wraps a read-only (N, d) float64 array with N >= 1 and d in
{2, 3}. Stages never mutate a cloud; they return a new one.

Author: Reconstruction Team
"""

import logging
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..errors import (
    DimensionMismatchError,
    EmptyInputError,
    EmptyResultError,
    InvalidArgumentError,
    UnsupportedDimensionError,
)
from ..numerics.linalg import apply_transform, check_dimension

logger = logging.getLogger(__name__)


class PointCloud:
    """Ordered, immutable collection of equal-dimension points."""

    __slots__ = ("_points", "name")

    def __init__(self, points, name: Optional[str] = None):
        """
        Args:
            points: Array-like of shape (N, d) or a sequence of equal-length points.
            name: Optional label used in logs and merge results.

        Raises:
            EmptyInputError: If there are no points.
            DimensionMismatchError: If points have differing lengths.
            UnsupportedDimensionError: If d is not 2 or 3.
        """
        if isinstance(points, PointCloud):
            arr = points._points
        else:
            if not isinstance(points, np.ndarray):
                points = list(points)
                if len(points) == 0:
                    raise EmptyInputError("No empty PointClouds")
                lengths = {len(p) for p in points}
                if len(lengths) != 1:
                    raise DimensionMismatchError(
                        "All point dimensions must be the same within a point cloud."
                    )
            # the cloud owns a private read-only buffer
            arr = np.array(points, dtype=np.float64)

        if arr.size == 0:
            raise EmptyInputError("No empty PointClouds")
        if arr.ndim != 2:
            raise DimensionMismatchError(f"Expected an (N, d) array of points, got shape {arr.shape}")
        check_dimension(arr.shape[1])
        if not np.all(np.isfinite(arr)):
            raise InvalidArgumentError("Point cloud contains NaN or infinite coordinates")

        if arr.flags.writeable:
            arr.setflags(write=False)
        self._points = arr
        self.name = name

    @property
    def points(self) -> np.ndarray:
        """Read-only (N, d) view of the coordinates."""
        return self._points

    @property
    def dimension(self) -> int:
        return self._points.shape[1]

    def __len__(self) -> int:
        return self._points.shape[0]

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self._points)

    def __getitem__(self, index):
        return self._points[index]

    def __repr__(self) -> str:
        label = f" '{self.name}'" if self.name else ""
        return f"PointCloud{label}(size={len(self)}, dimension={self.dimension})"

    def with_points(self, points) -> "PointCloud":
        """New cloud carrying this cloud's name."""
        return PointCloud(points, name=self.name)

    def renamed(self, name: Optional[str]) -> "PointCloud":
        return PointCloud(self._points, name=name)

    def centroid(self) -> np.ndarray:
        """Arithmetic mean of all points."""
        return self._points.mean(axis=0)

    def bounding_range(self) -> Tuple[np.ndarray, np.ndarray]:
        """(min corner, max corner) enclosing all points."""
        return self._points.min(axis=0), self._points.max(axis=0)

    def diagonal(self) -> float:
        """Length of the bounding box diagonal."""
        low, high = self.bounding_range()
        return float(np.linalg.norm(high - low))

    def centered(self) -> "PointCloud":
        """Copy translated so the centroid sits at the origin."""
        return self.with_points(self._points - self.centroid())

    def transformed(self, transform: np.ndarray) -> "PointCloud":
        """Apply a homogeneous (d+1)x(d+1) transform to every point."""
        return self.with_points(apply_transform(transform, self._points))

    def decimated(self, min_distance: float) -> "PointCloud":
        from .decimation import decimate
        return decimate(self, min_distance)

    def largest_cluster(self, parameters=None) -> "PointCloud":
        from .clustering import largest_cluster
        return largest_cluster(self, parameters)

    def averaged_along_z(self, subdivisions: int = 100, min_per_bucket: int = 2) -> "PointCloud":
        """
        Average small XY areas along the Z axis.

        Points are bucketed on an XY grid whose step is the larger XY extent
        divided by ``subdivisions``; each bucket holding at least
        ``min_per_bucket`` points contributes its centroid. The result is a
        grid with holes, ordered by bucket key.

        Raises:
            UnsupportedDimensionError: For 2D clouds.
            InvalidArgumentError: For non-positive subdivisions or bucket sizes.
            EmptyResultError: If no bucket is full enough.
        """
        if self.dimension != 3:
            raise UnsupportedDimensionError("Averaging along Z needs a 3D cloud")
        if subdivisions <= 0 or min_per_bucket <= 0:
            raise InvalidArgumentError(
                f"subdivisions ({subdivisions}) and min_per_bucket ({min_per_bucket}) must be positive"
            )

        low, high = self.bounding_range()
        extent = np.abs(high - low)
        step = max(extent[0], extent[1]) / subdivisions
        xy = self._points[:, :2]
        if step > 0:
            keys = np.trunc(xy / step).astype(np.int64)
        else:
            keys = np.zeros_like(xy, dtype=np.int64)

        unique_keys, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
        inverse = inverse.reshape(-1)
        sums = np.zeros((unique_keys.shape[0], 3))
        np.add.at(sums, inverse, self._points)
        keep = counts >= min_per_bucket
        if not np.any(keep):
            raise EmptyResultError(
                f"No Z bucket holds {min_per_bucket} points (subdivisions={subdivisions})"
            )

        averaged = sums[keep] / counts[keep][:, None]
        logger.debug(f"Averaged {len(self)} points into {averaged.shape[0]} buckets (step {step:.6g})")
        return self.with_points(averaged)

    @classmethod
    def concatenate(cls, clouds: Iterable["PointCloud"], name: Optional[str] = None) -> "PointCloud":
        """Join the point sets of several equal-dimension clouds."""
        clouds = list(clouds)
        if not clouds:
            raise EmptyInputError("Nothing to concatenate")
        dimensions = {cloud.dimension for cloud in clouds}
        if len(dimensions) != 1:
            raise DimensionMismatchError(f"Cannot concatenate clouds of dimensions {sorted(dimensions)}")
        return cls(np.vstack([cloud.points for cloud in clouds]), name=name)


def as_point_cloud(points, name: Optional[str] = None) -> PointCloud:
    """Accept either a PointCloud or raw coordinates."""
    if isinstance(points, PointCloud):
        return points
    return PointCloud(points, name=name)


def same_points(a: Sequence, b: Sequence, atol: float = 0.0) -> bool:
    """
    True when two clouds hold the same set of points, ignoring order.

    With ``atol`` > 0 every point of either cloud must have a partner in the
    other within ``atol`` on each coordinate.
    """
    pa = np.asarray(a.points if isinstance(a, PointCloud) else a, dtype=np.float64)
    pb = np.asarray(b.points if isinstance(b, PointCloud) else b, dtype=np.float64)
    if pa.shape != pb.shape:
        return False
    if atol <= 0:
        order_a = np.lexsort(pa.T[::-1])
        order_b = np.lexsort(pb.T[::-1])
        return bool(np.array_equal(pa[order_a], pb[order_b]))

    forward, _ = cKDTree(pb).query(pa, p=np.inf)
    backward, _ = cKDTree(pa).query(pb, p=np.inf)
    return bool(np.all(forward <= atol) and np.all(backward <= atol))
