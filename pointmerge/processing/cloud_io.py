#!/usr/bin/env python3
"""
Flat ASCII point files: one "x y z" (or "x y") point per line.

Blank lines are ignored. Lines that cannot be parsed are skipped with a
warning so one corrupt row does not lose a whole capture.

Author: Reconstruction Team
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ..errors import EmptyInputError
from ..numerics.linalg import check_dimension
from .open3d_interop import OPEN3D_SUFFIXES, load_open3d_cloud, save_open3d_cloud
from .point_cloud import PointCloud

logger = logging.getLogger(__name__)


def load_ascii_cloud(path: Union[str, Path], dimension: Optional[int] = None) -> PointCloud:
    """
    Read a whitespace separated point file.

    Args:
        path: File to read.
        dimension: Expected point dimension. When omitted it is taken from the
            first parsable line (capped at 3). Extra columns are ignored.

    Returns:
        PointCloud named after the file stem.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        EmptyInputError: If no line holds a valid point.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point cloud '{path}' not found.")
    if dimension is not None:
        check_dimension(dimension)

    rows = []
    skipped = 0
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            parts = line.split()
            if not parts:
                continue
            try:
                values = [float(part) for part in parts]
            except ValueError:
                values = []

            if dimension is None and len(values) >= 2:
                dimension = min(3, len(values))
            if dimension is None or len(values) < dimension:
                logger.warning(f"{path.name}:{line_number}: skipping malformed line '{line.strip()}'")
                skipped += 1
                continue
            rows.append(values[:dimension])

    if not rows:
        raise EmptyInputError(f"No points could be read from '{path}'")

    cloud = PointCloud(np.array(rows, dtype=np.float64), name=path.stem)
    logger.info(f"Loaded {len(cloud)} points from {path}" + (f" ({skipped} lines skipped)" if skipped else ""))
    return cloud


def save_ascii_cloud(cloud: PointCloud, path: Union[str, Path], precision: int = 6) -> Path:
    """Write ``cloud`` one point per line, creating parent folders as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, cloud.points, fmt=f"%.{precision}f", delimiter=" ")
    logger.info(f"Saved {len(cloud)} points to {path}")
    return path


def load_cloud(path: Union[str, Path]) -> PointCloud:
    """Load by suffix: .ply/.pcd through Open3D, anything else as ASCII."""
    path = Path(path)
    if path.suffix.lower() in OPEN3D_SUFFIXES:
        return load_open3d_cloud(path)
    return load_ascii_cloud(path)


def save_cloud(cloud: PointCloud, path: Union[str, Path]) -> Path:
    """Save by suffix: .ply/.pcd through Open3D, anything else as ASCII."""
    path = Path(path)
    if path.suffix.lower() in OPEN3D_SUFFIXES:
        return save_open3d_cloud(cloud, path)
    return save_ascii_cloud(cloud, path)
