#!/usr/bin/env python3
"""
Small dense linear algebra helpers for 2D/3D registration.

Points are rows of float64 arrays. A transform for dimension d is a
(d+1) x (d+1) homogeneous matrix [R | t; 0 | 1]. Composition follows the
usual matrix convention: compose(A, B) applies B first, then A.

Author: Reconstruction Team
"""

import numpy as np
from typing import Tuple

from ..errors import DimensionMismatchError, UnsupportedDimensionError

SUPPORTED_DIMENSIONS = (2, 3)


def as_points(points, name: str = "points") -> np.ndarray:
    """Coerce to a float64 (N, d) array without validating d."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim == 1 and arr.size > 0:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise DimensionMismatchError(f"{name} must be a 2D array of shape (N, d), got shape {arr.shape}")
    return arr


def check_dimension(dimension: int) -> int:
    if dimension not in SUPPORTED_DIMENSIONS:
        raise UnsupportedDimensionError(f"Dimension out of range: {dimension} (supported: 2, 3)")
    return dimension


def det(matrix: np.ndarray) -> float:
    """
    Determinant of a small square matrix.

    2x2 and 3x3 use the closed form; anything else goes through LU.
    """
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise DimensionMismatchError(f"Determinant needs a square matrix, got shape {m.shape}")

    n = m.shape[0]
    if n == 2:
        return float(m[0, 0] * m[1, 1] - m[1, 0] * m[0, 1])
    if n == 3:
        return float(
            m[0, 0] * (m[1, 1] * m[2, 2] - m[1, 2] * m[2, 1])
            - m[0, 1] * (m[1, 0] * m[2, 2] - m[1, 2] * m[2, 0])
            + m[0, 2] * (m[1, 0] * m[2, 1] - m[1, 1] * m[2, 0])
        )
    return float(np.linalg.det(m))


def identity_transform(dimension: int) -> np.ndarray:
    """Homogeneous identity for points of the given dimension."""
    return np.eye(dimension + 1)


def make_transform(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """Pack a linear part and a translation into [R | t; 0 | 1]."""
    rotation = np.asarray(rotation, dtype=np.float64)
    translation = np.asarray(translation, dtype=np.float64).reshape(-1)
    d = rotation.shape[0]
    if rotation.shape != (d, d) or translation.shape != (d,):
        raise DimensionMismatchError(
            f"Rotation {rotation.shape} and translation {translation.shape} do not fit together"
        )
    T = np.eye(d + 1)
    T[:d, :d] = rotation
    T[:d, d] = translation
    return T


def split_transform(transform: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return (linear part, translation) copies of a homogeneous transform."""
    T = np.asarray(transform, dtype=np.float64)
    d = T.shape[0] - 1
    return T[:d, :d].copy(), T[:d, d].copy()


def apply_transform(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Compute R p + t for every row p."""
    pts = as_points(points)
    T = np.asarray(transform, dtype=np.float64)
    d = pts.shape[1]
    if T.shape != (d + 1, d + 1):
        raise DimensionMismatchError(f"Transform of shape {T.shape} cannot act on {d}D points")
    return pts @ T[:d, :d].T + T[:d, d]


def compose(*transforms: np.ndarray) -> np.ndarray:
    """compose(A, B, C) == A @ B @ C, i.e. C is applied first."""
    if not transforms:
        raise ValueError("compose() needs at least one transform")
    result = np.asarray(transforms[0], dtype=np.float64).copy()
    for T in transforms[1:]:
        result = result @ np.asarray(T, dtype=np.float64)
    return result


def invert_transform(transform: np.ndarray) -> np.ndarray:
    """Inverse of a rotation/similarity transform."""
    linear, translation = split_transform(transform)
    inverse_linear = np.linalg.inv(linear)
    return make_transform(inverse_linear, -inverse_linear @ translation)


def translation_transform(offset: np.ndarray) -> np.ndarray:
    offset = np.asarray(offset, dtype=np.float64).reshape(-1)
    return make_transform(np.eye(offset.shape[0]), offset)


def squared_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Row-wise squared Euclidean distance between equally shaped point arrays."""
    diff = as_points(a) - as_points(b)
    return np.einsum('ij,ij->i', diff, diff)


def rotation_angle_2d(rotation: np.ndarray) -> float:
    """Signed angle (radians) of a 2x2 rotation, or the z rotation of a 3x3 one."""
    R = np.asarray(rotation, dtype=np.float64)
    return float(np.arctan2(R[1, 0], R[0, 0]))
