#!/usr/bin/env python3
"""
Per-cloud preparation stages with explicit cache invalidation.

    raw -> clustered -> decimated -> prepared (centred)

Each stage is a pure function of the stage before it and the preparation
parameters. Results are memoised together with the version they were built
at. update() and replace_raw() bump the version, which makes every cached
stage stale; nothing is recomputed until it is asked for again.

Author: Reconstruction Team
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from ..errors import InvalidArgumentError
from ..numerics.linalg import identity_transform, translation_transform
from ..processing.clustering import ClusterParameters
from ..processing.point_cloud import PointCloud

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparationParameters:
    """Inputs of the preparation stages."""
    cluster_enabled: bool = True
    cluster: ClusterParameters = field(default_factory=ClusterParameters)
    decimate_distance: float = 0.0
    center: bool = True

    def __post_init__(self):
        if self.decimate_distance < 0:
            raise InvalidArgumentError(f"decimate_distance must be non-negative, got {self.decimate_distance}")


class CloudPreparation:
    """Owns one raw cloud and lazily derives its prepared forms."""

    STAGES = ("clustered", "decimated", "offset", "prepared")

    def __init__(self, raw: PointCloud, parameters: Optional[PreparationParameters] = None):
        self._raw = raw
        self._parameters = parameters or PreparationParameters()
        self._version = 0
        self._cache: Dict[str, Tuple[int, Any]] = {}
        self._lock = threading.RLock()

    @property
    def raw(self) -> PointCloud:
        return self._raw

    @property
    def name(self) -> Optional[str]:
        return self._raw.name

    @property
    def parameters(self) -> PreparationParameters:
        return self._parameters

    @property
    def version(self) -> int:
        return self._version

    def update(self, **changes) -> int:
        """
        Change preparation parameters.

        Returns:
            The new version. Unchanged parameters leave the version alone.
        """
        with self._lock:
            parameters = replace(self._parameters, **changes)
            if parameters != self._parameters:
                self._parameters = parameters
                self._version += 1
                logger.debug(f"{self.name or 'cloud'}: parameters changed, version {self._version}")
            return self._version

    def replace_raw(self, raw: PointCloud) -> int:
        """Swap in new raw points; every derived stage becomes stale."""
        with self._lock:
            self._raw = raw
            self._version += 1
            return self._version

    def invalidate(self):
        """Drop every cached stage."""
        with self._lock:
            self._cache.clear()

    def is_cached(self, stage: str) -> bool:
        """True when ``stage`` holds a value built at the current version."""
        with self._lock:
            entry = self._cache.get(stage)
            return entry is not None and entry[0] == self._version

    def _memoised(self, stage: str, compute: Callable[[], Any]):
        with self._lock:
            entry = self._cache.get(stage)
            if entry is not None and entry[0] == self._version:
                return entry[1]
            start_time = time.time()
            value = compute()
            self._cache[stage] = (self._version, value)
            logger.debug(f"{self.name or 'cloud'}: built {stage} in {time.time() - start_time:.3f}s")
            return value

    def clustered(self) -> PointCloud:
        """Largest density cluster of the raw cloud (or the raw cloud)."""
        def compute():
            if not self._parameters.cluster_enabled:
                return self._raw
            return self._raw.largest_cluster(self._parameters.cluster)
        return self._memoised("clustered", compute)

    def decimated(self) -> PointCloud:
        return self._memoised(
            "decimated", lambda: self.clustered().decimated(self._parameters.decimate_distance)
        )

    def centering_transform(self) -> np.ndarray:
        """Translation applied to the decimated cloud to produce the prepared one."""
        def compute():
            cloud = self.decimated()
            if not self._parameters.center:
                return identity_transform(cloud.dimension)
            return translation_transform(-cloud.centroid())
        return self._memoised("offset", compute).copy()

    def prepared(self) -> PointCloud:
        """Clustered, decimated and (optionally) centred cloud."""
        return self._memoised(
            "prepared", lambda: self.decimated().transformed(self.centering_transform())
        )


def prepare_cloud(raw: PointCloud,
                  parameters: Optional[PreparationParameters] = None) -> Tuple[PointCloud, np.ndarray]:
    """
    Run every preparation stage once.

    Returns:
        (prepared cloud, centering transform mapping raw coordinates onto it)
    """
    preparation = CloudPreparation(raw, parameters)
    return preparation.prepared(), preparation.centering_transform()
