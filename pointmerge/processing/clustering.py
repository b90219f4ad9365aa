#!/usr/bin/env python3
"""
Density-based clustering used to strip background and sensor noise.

Classic DBSCAN semantics: a point is a core point when its epsilon
neighbourhood (itself included) holds at least min_points points. Clusters
grow outward through core points; a border point joins the first cluster that
reaches it; everything else is noise (label -1). Only the largest cluster is
kept by the pipeline.

Author: Reconstruction Team
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from sklearn.cluster import DBSCAN

from ..errors import InvalidArgumentError, NoClusterFoundError
from .point_cloud import PointCloud

logger = logging.getLogger(__name__)

NOISE = -1


@dataclass(frozen=True)
class ClusterParameters:
    """
    Neighbourhood radius and density threshold for clustering.

    Explicit ``epsilon``/``min_points`` win; otherwise they are derived from the
    cloud: epsilon = bounding diagonal * epsilon_fraction (diagonal / 20) and
    min_points = max(1, N * min_points_fraction) (N / 100).
    """
    epsilon: Optional[float] = None
    min_points: Optional[int] = None
    epsilon_fraction: float = 0.05
    min_points_fraction: float = 0.01

    def __post_init__(self):
        if self.epsilon is not None and self.epsilon < 0:
            raise InvalidArgumentError(f"epsilon must be non-negative, got {self.epsilon}")
        if self.min_points is not None and self.min_points < 1:
            raise InvalidArgumentError(f"min_points must be at least 1, got {self.min_points}")
        if self.epsilon_fraction < 0 or self.min_points_fraction < 0:
            raise InvalidArgumentError("Cluster fractions must be non-negative")

    def resolve(self, cloud: PointCloud) -> Tuple[float, int]:
        """Concrete (epsilon, min_points) for ``cloud``."""
        epsilon = self.epsilon
        if epsilon is None:
            epsilon = cloud.diagonal() * self.epsilon_fraction
        min_points = self.min_points
        if min_points is None:
            min_points = max(1, int(len(cloud) * self.min_points_fraction))
        return float(epsilon), int(min_points)


def cluster_labels(cloud: PointCloud, parameters: Optional[ClusterParameters] = None) -> np.ndarray:
    """
    Label every point with its cluster id.

    Cluster ids are assigned 0, 1, 2, ... in order of the lowest-index core
    point of each cluster. Noise points get -1.
    """
    parameters = parameters or ClusterParameters()
    epsilon, min_points = parameters.resolve(cloud)

    # eps must be positive; the smallest float still groups coincident points
    radius = max(epsilon, np.finfo(np.float64).tiny)
    dbscan = DBSCAN(eps=radius, min_samples=min_points).fit(cloud.points)
    labels = np.asarray(dbscan.labels_, dtype=np.int64)

    logger.debug(
        f"Clustering {len(cloud)} points (eps={epsilon:.6g}, min_points={min_points}): "
        f"{int(labels.max()) + 1} clusters, {int(np.sum(labels == NOISE))} noise points"
    )
    return labels


def largest_cluster(cloud: PointCloud, parameters: Optional[ClusterParameters] = None) -> PointCloud:
    """
    Points of the biggest cluster, in their original order.

    Ties go to the lowest cluster id.

    Raises:
        NoClusterFoundError: If every point is noise.
    """
    labels = cluster_labels(cloud, parameters)
    clustered = labels[labels != NOISE]
    if clustered.size == 0:
        raise NoClusterFoundError(f"No clumps found in {cloud.name or 'cloud'} ({len(cloud)} points)")

    counts = np.bincount(clustered)
    best = int(np.argmax(counts))
    result = cloud.with_points(cloud.points[labels == best])
    logger.info(
        f"Largest cluster of {cloud.name or 'cloud'}: {len(result)}/{len(cloud)} points "
        f"({len(counts)} clusters found)"
    )
    return result
