#!/usr/bin/env python3
"""
Iterative Closest Point registration.

Each iteration pairs the posed moving points with their nearest fixed points,
solves the best-fit transform for those pairs and composes it onto the pose:

    Init -> (FindCorrespondences -> SolveTransform -> ApplyTransform)* -> Converged | IterationLimitReached

The moving cloud itself is never rewritten; the pose is reapplied to the
untouched points on demand.

Author: Reconstruction Team
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from ..errors import DimensionMismatchError, InvalidArgumentError
from ..numerics.linalg import apply_transform, compose, identity_transform
from ..processing.point_cloud import PointCloud, as_point_cloud
from ..processing.spatial_index import SpatialIndex, find_correspondences
from .alignment import PROCRUSTES_MIN_POINTS, align_points

logger = logging.getLogger(__name__)


class RegistrationStatus(Enum):
    """How the ICP loop ended."""
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass(frozen=True)
class PosedCloud:
    """A cloud plus the pose that places it in the shared frame."""
    cloud: PointCloud
    pose: np.ndarray

    @classmethod
    def unposed(cls, cloud: PointCloud) -> "PosedCloud":
        return cls(cloud, identity_transform(cloud.dimension))

    @property
    def name(self) -> Optional[str]:
        return self.cloud.name

    def oriented(self) -> PointCloud:
        """The cloud's points with the pose applied."""
        return self.cloud.transformed(self.pose)

    def with_pose(self, pose: np.ndarray) -> "PosedCloud":
        return PosedCloud(self.cloud, np.asarray(pose, dtype=np.float64))

    def moved_by(self, transform: np.ndarray) -> "PosedCloud":
        """Compose ``transform`` after the current pose."""
        return self.with_pose(compose(transform, self.pose))


@dataclass
class RegistrationResult:
    """Outcome of registering one moving cloud onto a fixed cloud."""
    pose: np.ndarray
    status: RegistrationStatus
    iterations: int
    rms_history: List[float] = field(default_factory=list)
    rms: float = 0.0
    error: float = 0.0
    num_points: int = 0
    registration_time: float = 0.0

    @property
    def converged(self) -> bool:
        return self.status == RegistrationStatus.CONVERGED

    def apply(self, cloud: PointCloud) -> PointCloud:
        return cloud.transformed(self.pose)


def register(moving, fixed, max_iterations: int = 20, tolerance: Optional[float] = None,
             allow_scaling: bool = False, proxy_distance: float = 0.0,
             initial_pose: Optional[np.ndarray] = None,
             fixed_index: Optional[SpatialIndex] = None) -> RegistrationResult:
    """
    Register ``moving`` onto ``fixed`` with point-to-point ICP.

    Args:
        moving: Cloud to be posed.
        fixed: Reference cloud. Only read.
        max_iterations: Upper bound on correspondence/solve cycles.
        tolerance: When set, stop once the rms improvement between two
            iterations falls below it.
        allow_scaling: Solve a uniform scale in every step.
        proxy_distance: When > 0, iterate on a copy of ``moving`` decimated to
            this spacing; the final error is still measured on every point.
        initial_pose: Starting pose, e.g. the pose solved for a neighbouring cloud.
        fixed_index: Prebuilt index over ``fixed``, shared between threads.

    Returns:
        RegistrationResult whose pose maps ``moving`` into the frame of ``fixed``.
    """
    start_time = time.time()
    moving = as_point_cloud(moving)
    fixed = as_point_cloud(fixed)
    if moving.dimension != fixed.dimension:
        raise DimensionMismatchError(
            f"Cannot register {moving.dimension}D points onto {fixed.dimension}D points"
        )
    if max_iterations < 1:
        raise InvalidArgumentError(f"max_iterations must be at least 1, got {max_iterations}")
    if tolerance is not None and tolerance < 0:
        raise InvalidArgumentError(f"tolerance must be non-negative, got {tolerance}")

    # Init
    proxy = moving
    if proxy_distance > 0:
        proxy = moving.decimated(proxy_distance)
        required = PROCRUSTES_MIN_POINTS if allow_scaling else moving.dimension
        if len(proxy) < required:
            logger.warning(
                f"Proxy of {moving.name or 'cloud'} at spacing {proxy_distance:.6g} keeps only "
                f"{len(proxy)} points (need {required}); iterating on all {len(moving)} points"
            )
            proxy = moving
    index = fixed_index if fixed_index is not None else SpatialIndex(fixed)
    if index.dimension != moving.dimension:
        raise DimensionMismatchError("Spatial index dimension does not match the moving cloud")

    if initial_pose is None:
        pose = identity_transform(moving.dimension)
    else:
        pose = np.array(initial_pose, dtype=np.float64)
        if pose.shape != (moving.dimension + 1, moving.dimension + 1):
            raise DimensionMismatchError(f"Initial pose of shape {pose.shape} does not fit the cloud")

    status = RegistrationStatus.ITERATION_LIMIT_REACHED
    rms_history = []
    previous_rms = None
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        posed = apply_transform(pose, proxy.points)
        matches = find_correspondences(posed, fixed, index=index)
        if previous_rms is None:
            previous_rms = matches.rms

        step = align_points(posed, matches.target, allow_scaling=allow_scaling)
        pose = compose(step.transform, pose)
        rms_history.append(step.rms)
        logger.debug(f"ICP iteration {iterations}: rms {matches.rms:.6g} -> {step.rms:.6g}")

        if tolerance is not None and previous_rms - step.rms < tolerance:
            status = RegistrationStatus.CONVERGED
            break
        previous_rms = step.rms

    final = find_correspondences(moving.transformed(pose), fixed, index=index)
    result = RegistrationResult(
        pose=pose,
        status=status,
        iterations=iterations,
        rms_history=rms_history,
        rms=final.rms,
        error=float(np.sqrt(np.sum(final.distances ** 2))),
        num_points=len(moving),
        registration_time=time.time() - start_time,
    )
    logger.info(
        f"Registered {moving.name or 'cloud'} onto {fixed.name or 'cloud'}: "
        f"{status.value} after {iterations} iterations, rms={result.rms:.6g} "
        f"({len(proxy)}/{len(moving)} points used, {result.registration_time:.3f}s)"
    )
    return result
