"""
Numerical building blocks: small matrix helpers and the SVD used by the
alignment solver.
"""

from .linalg import (
    det,
    identity_transform,
    make_transform,
    split_transform,
    apply_transform,
    compose,
    invert_transform,
    translation_transform,
    squared_distances,
    rotation_angle_2d,
)
from .svd import svd, SVDResult

__all__ = [
    "det",
    "identity_transform",
    "make_transform",
    "split_transform",
    "apply_transform",
    "compose",
    "invert_transform",
    "translation_transform",
    "squared_distances",
    "rotation_angle_2d",
    "svd",
    "SVDResult",
]
