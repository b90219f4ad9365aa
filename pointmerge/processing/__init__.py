"""
Point cloud container and the per-cloud processing stages: spatial index,
decimation, clustering and file I/O.
"""

from .point_cloud import PointCloud, as_point_cloud, same_points
from .spatial_index import (
    SpatialIndex,
    Correspondences,
    find_correspondences,
    brute_force_correspondences,
    mean_correspondence_distance,
)
from .decimation import decimate
from .clustering import ClusterParameters, cluster_labels, largest_cluster
from .cloud_io import load_ascii_cloud, save_ascii_cloud, load_cloud, save_cloud

__all__ = [
    "PointCloud",
    "as_point_cloud",
    "same_points",
    "SpatialIndex",
    "Correspondences",
    "find_correspondences",
    "brute_force_correspondences",
    "mean_correspondence_distance",
    "decimate",
    "ClusterParameters",
    "cluster_labels",
    "largest_cluster",
    "load_ascii_cloud",
    "save_ascii_cloud",
    "load_cloud",
    "save_cloud",
]
