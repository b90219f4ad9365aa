#!/usr/bin/env python3
"""
Decimation: thin a cloud so no two points are closer than a threshold.

The walk starts at the centroid and moves outward. Points are visited by
increasing distance from the centroid and a point is admitted only while no
admitted point lies within the threshold. This gives an even, deterministic
spacing, which keeps ICP correspondences spread over the whole surface.

Author: Reconstruction Team
"""

import logging

import numpy as np

from .point_cloud import PointCloud
from .spatial_index import SpatialIndex

logger = logging.getLogger(__name__)


def decimate(cloud: PointCloud, min_distance: float) -> PointCloud:
    """
    Return a subset of ``cloud`` with all pairwise distances > ``min_distance``.

    ``min_distance <= 0`` is a no-op and returns ``cloud`` itself. The centroid
    only orders the walk; it is not added to the result, so the output never
    has more points than the input and decimating twice at the same threshold
    returns the same points.

    Args:
        cloud: Cloud to thin.
        min_distance: Minimum spacing between retained points.

    Returns:
        New PointCloud in admission order (closest to the centroid first).
    """
    if min_distance <= 0.0:
        return cloud

    points = cloud.points
    center = cloud.centroid()
    offsets = points - center
    order = np.argsort(np.einsum('ij,ij->i', offsets, offsets), kind='stable')

    # Admitting a point suppresses everything within min_distance of it, so a
    # later point is admitted exactly when no admitted point is that close.
    index = SpatialIndex(points)
    suppressed = np.zeros(len(cloud), dtype=bool)
    admitted = []
    for i in order:
        if suppressed[i]:
            continue
        admitted.append(i)
        suppressed[index.within(points[i], min_distance)] = True

    result = cloud.with_points(points[admitted])
    logger.debug(
        f"Decimated {cloud.name or 'cloud'} from {len(cloud)} to {len(result)} points "
        f"(min distance {min_distance:g})"
    )
    return result
