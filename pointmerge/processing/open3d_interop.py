#!/usr/bin/env python3
"""
Open3D bridge: convert clouds and read/write .ply/.pcd files.

Open3D is an optional dependency; it is imported on first use so the core
registration code runs without it.

Author: Reconstruction Team
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np

from ..errors import EmptyInputError
from .point_cloud import PointCloud

logger = logging.getLogger(__name__)

OPEN3D_SUFFIXES = (".ply", ".pcd")


def _open3d():
    import open3d as o3d
    return o3d


def to_open3d(cloud: PointCloud):
    """open3d.geometry.PointCloud holding the same points (2D clouds get z = 0)."""
    o3d = _open3d()
    points = cloud.points
    if cloud.dimension == 2:
        points = np.hstack([points, np.zeros((len(cloud), 1))])
    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(np.ascontiguousarray(points))
    return pcd


def from_open3d(pcd, name: str = None) -> PointCloud:
    """PointCloud from an open3d.geometry.PointCloud."""
    if pcd.is_empty():
        raise EmptyInputError("Open3D point cloud is empty")
    return PointCloud(np.asarray(pcd.points), name=name)


def load_open3d_cloud(path: Union[str, Path]) -> PointCloud:
    """
    Read a .ply/.pcd file through Open3D.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        EmptyInputError: If the file holds no points or could not be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point cloud '{path}' not found.")
    pcd = _open3d().io.read_point_cloud(str(path))
    if pcd.is_empty():
        raise EmptyInputError(f"Point cloud '{path}' is empty or could not be loaded.")
    cloud = from_open3d(pcd, name=path.stem)
    logger.info(f"Loaded {len(cloud)} points from {path}")
    return cloud


def save_open3d_cloud(cloud: PointCloud, path: Union[str, Path]) -> Path:
    """Write ``cloud`` in the format implied by the file suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not _open3d().io.write_point_cloud(str(path), to_open3d(cloud)):
        raise IOError(f"Open3D failed to write '{path}'")
    logger.info(f"Saved {len(cloud)} points to {path}")
    return path
