"""
Registration: pairwise alignment, ICP, per-cloud preparation stages and the
multi-view merge driver.
"""

from .alignment import AlignmentResult, align_points, procrustes_fit
from .icp import RegistrationStatus, PosedCloud, RegistrationResult, register
from .pipeline import PreparationParameters, CloudPreparation, prepare_cloud
from .multiview_registration import (
    MergeStrategy,
    BaselineChoice,
    MergeResult,
    MultiViewRegistration,
    rank_by_distance,
)

__all__ = [
    "AlignmentResult",
    "align_points",
    "procrustes_fit",
    "RegistrationStatus",
    "PosedCloud",
    "RegistrationResult",
    "register",
    "PreparationParameters",
    "CloudPreparation",
    "prepare_cloud",
    "MergeStrategy",
    "BaselineChoice",
    "MergeResult",
    "MultiViewRegistration",
    "rank_by_distance",
]
