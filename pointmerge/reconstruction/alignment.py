#!/usr/bin/env python3
"""
Rigid Alignment - Umeyama/Procrustes solver

Finds the rotation R, translation t and (optionally) uniform scale c that
minimise sum ||c R a_i + t - b_i||^2 over corresponding point pairs:

    M = (1/N) sum (b_i - cB)(a_i - cA)^T      cross-covariance
    M = U S V^T                               SVD
    C = diag(1, ..., 1, sign(det U * det V))  reflection guard
    R = U C V^T
    c = trace(S C) / var_A                    only when scaling is allowed
    t = cB - c R cA

Author: Reconstruction Team
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation

from ..errors import DimensionMismatchError, EmptyInputError, InsufficientPointsError
from ..numerics.linalg import (
    apply_transform,
    as_points,
    check_dimension,
    det,
    make_transform,
    rotation_angle_2d,
)
from ..numerics.svd import svd
from ..processing.point_cloud import PointCloud

logger = logging.getLogger(__name__)

# Fewest pairs accepted by procrustes_fit
PROCRUSTES_MIN_POINTS = 4


@dataclass(frozen=True)
class AlignmentResult:
    """Similarity transform mapping source points onto target points."""
    transform: np.ndarray
    rotation: np.ndarray
    translation: np.ndarray
    scale: float
    error: float
    rms: float
    num_points: int

    @property
    def dimension(self) -> int:
        return self.rotation.shape[0]

    @property
    def angle_degrees(self) -> float:
        """Rotation angle about the z axis (2D) or total rotation angle (3D)."""
        if self.dimension == 2:
            return float(np.degrees(rotation_angle_2d(self.rotation)))
        return float(np.degrees(Rotation.from_matrix(self.rotation).magnitude()))

    def apply(self, points) -> np.ndarray:
        """Map (N, d) points with the solved transform."""
        if isinstance(points, PointCloud):
            return apply_transform(self.transform, points.points)
        return apply_transform(self.transform, points)

    def summary(self) -> str:
        if self.dimension == 2:
            rotation = f"angle={self.angle_degrees:.4f} deg"
        else:
            euler = Rotation.from_matrix(self.rotation).as_euler('xyz', degrees=True)
            rotation = "euler_xyz=[" + ", ".join(f"{a:.4f}" for a in euler) + "] deg"
        translation = ", ".join(f"{v:.6g}" for v in self.translation)
        return (f"{rotation}, translation=[{translation}], scale={self.scale:.6g}, "
                f"error={self.error:.6g}, rms={self.rms:.6g}, points={self.num_points}")


def _coords(points, name: str) -> np.ndarray:
    if isinstance(points, PointCloud):
        return points.points
    return as_points(points, name)


def _validate_pairs(source, target, min_points: int = 0):
    if source is None or target is None:
        raise EmptyInputError("Both point lists are required")
    if len(source) == 0 or len(target) == 0:
        raise EmptyInputError("Both point lists must be non-empty")

    a = _coords(source, "source")
    b = _coords(target, "target")
    if a.shape[1] != b.shape[1]:
        raise DimensionMismatchError(f"Point dimensions differ: {a.shape[1]} vs {b.shape[1]}")
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(f"Point lists differ in length: {a.shape[0]} vs {b.shape[0]}")
    d = check_dimension(a.shape[1])

    required = max(d, min_points)
    if a.shape[0] < required:
        raise InsufficientPointsError(f"Need at least {required} correspondences, got {a.shape[0]}")
    return a, b


def align_points(source, target, allow_scaling: bool = False) -> AlignmentResult:
    """
    Best-fit transform taking ``source`` onto ``target``.

    Args:
        source: (N, d) points or PointCloud, d in {2, 3}, N >= d.
        target: (N, d) points or PointCloud; row i corresponds to source row i.
        allow_scaling: Also solve a uniform scale factor.

    Returns:
        AlignmentResult. ``rotation`` is always a proper rotation (det = +1);
        the transform's linear part is ``scale * rotation``.

    Raises:
        EmptyInputError: Either list is empty.
        DimensionMismatchError: Lengths or per-point dimensions differ.
        UnsupportedDimensionError: Dimension is not 2 or 3.
        InsufficientPointsError: Fewer pairs than dimensions.
        ConvergenceError: The SVD failed.
    """
    a, b = _validate_pairs(source, target)
    n, d = a.shape

    centroid_a = a.mean(axis=0)
    centroid_b = b.mean(axis=0)
    a0 = a - centroid_a
    b0 = b - centroid_b

    covariance = (b0.T @ a0) / n
    decomposition = svd(covariance)
    u, s, v = decomposition.u, decomposition.s, decomposition.v

    correction = np.eye(d)
    if s[0] == 0.0:
        # zero covariance carries no orientation; keep the source orientation
        rotation = np.eye(d)
    else:
        # a zero product (rank deficient) is treated as +1
        correction[d - 1, d - 1] = -1.0 if det(u) * det(v) < 0 else 1.0
        rotation = u @ correction @ v.T

    scale = 1.0
    if allow_scaling:
        variance_a = float(np.sum(a0 * a0)) / n
        if variance_a > 0.0:
            scale = float(np.sum(s * np.diag(correction))) / variance_a
        else:
            logger.debug("Source has zero variance; keeping unit scale")

    translation = centroid_b - scale * (rotation @ centroid_a)
    transform = make_transform(scale * rotation, translation)

    residual = a @ (scale * rotation).T + translation - b
    squared = np.einsum('ij,ij->i', residual, residual)
    result = AlignmentResult(
        transform=transform,
        rotation=rotation,
        translation=translation,
        scale=scale,
        error=float(np.sqrt(np.sum(squared))),
        rms=float(np.sqrt(np.mean(squared))),
        num_points=n,
    )
    logger.debug(f"Aligned {n} pairs: {result.summary()}")
    return result


def procrustes_fit(source, target) -> AlignmentResult:
    """
    Rotation, translation and uniform scale between two point sets.

    Same solve as ``align_points(..., allow_scaling=True)`` with a floor of
    four correspondences.
    """
    _validate_pairs(source, target, min_points=PROCRUSTES_MIN_POINTS)
    return align_points(source, target, allow_scaling=True)
