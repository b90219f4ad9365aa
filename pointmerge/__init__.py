"""
pointmerge - rigid point-cloud registration and merging.

Aligns several captures of the same object (2D or 3D point clouds) with
Umeyama/Procrustes alignment inside an ICP loop and merges them into one
cloud. Noise is stripped by density clustering and density is reduced by
decimation before registration.
"""

__version__ = "1.0.0"

from .errors import (
    RegistrationError,
    InputValidationError,
    EmptyInputError,
    DimensionMismatchError,
    UnsupportedDimensionError,
    InsufficientPointsError,
    InvalidArgumentError,
    EmptyResultError,
    NoClusterFoundError,
    ConvergenceError,
    ConfigurationError,
)
from .config import PipelineConfig, MergeStrategy, BaselineChoice, load_config
from .processing import (
    PointCloud,
    SpatialIndex,
    Correspondences,
    find_correspondences,
    brute_force_correspondences,
    mean_correspondence_distance,
    decimate,
    ClusterParameters,
    cluster_labels,
    largest_cluster,
    load_cloud,
    save_cloud,
)
from .reconstruction import (
    AlignmentResult,
    align_points,
    procrustes_fit,
    RegistrationStatus,
    PosedCloud,
    RegistrationResult,
    register,
    PreparationParameters,
    CloudPreparation,
    prepare_cloud,
    MergeResult,
    MultiViewRegistration,
)
