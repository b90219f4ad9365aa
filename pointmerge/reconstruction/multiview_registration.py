#!/usr/bin/env python3
"""
Multi-View Point Cloud Registration

Prepares several captures of the same object, registers them into one frame
and concatenates them into a single merged cloud.

Strategies:
    SEQUENTIAL  Start from the baseline and walk outward (baseline-1 down to the
                first cloud, then baseline+1 up to the last). Each cloud is
                registered onto the growing aggregate, starting from the pose
                solved for the previous cloud of the same run.
    BASELINE    Register every cloud onto the baseline, all in parallel.
    TREE        Pair neighbours and register right onto left in parallel,
                halving the group count every round.

A cloud that fails preparation or registration is logged, reported in
MergeResult.failures and left out; the remaining clouds still merge.

Author: Reconstruction Team
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import BaselineChoice, MergeStrategy, PipelineConfig, load_config
from ..errors import (
    DimensionMismatchError,
    EmptyInputError,
    EmptyResultError,
    InvalidArgumentError,
    RegistrationError,
)
from ..numerics.linalg import compose, identity_transform, invert_transform
from ..processing.clustering import ClusterParameters
from ..processing.point_cloud import PointCloud, as_point_cloud
from ..processing.spatial_index import SpatialIndex, mean_correspondence_distance
from .icp import PosedCloud, RegistrationResult, register
from .pipeline import CloudPreparation, PreparationParameters

logger = logging.getLogger(__name__)

__all__ = [
    "MergeStrategy",
    "BaselineChoice",
    "MergeResult",
    "MultiViewRegistration",
    "rank_by_distance",
]


@dataclass
class MergeResult:
    """Result container for a multi-cloud merge."""
    merged: PointCloud
    poses: Dict[str, np.ndarray]
    errors: Dict[str, float]
    failures: Dict[str, str]
    strategy: MergeStrategy
    baseline: str
    registrations: Dict[str, RegistrationResult] = field(default_factory=dict)
    merge_time: float = 0.0

    @property
    def registered_names(self) -> List[str]:
        return list(self.poses)

    def summary(self) -> str:
        lines = [
            f"Merged {len(self.poses)} clouds ({len(self.merged)} points) with "
            f"{self.strategy.value} strategy onto baseline '{self.baseline}' in {self.merge_time:.2f}s"
        ]
        for name in self.poses:
            if name in self.errors:
                lines.append(f"  {name}: rms {self.errors[name]:.6g}")
            else:
                lines.append(f"  {name}: placed with its group")
        for name, reason in self.failures.items():
            lines.append(f"  {name}: FAILED - {reason}")
        return "\n".join(lines)


def rank_by_distance(clouds: Dict[str, PointCloud], baseline: PointCloud,
                     index: Optional[SpatialIndex] = None) -> List[Tuple[str, float]]:
    """(name, mean nearest-neighbour distance to ``baseline``), closest first."""
    index = index if index is not None else SpatialIndex(baseline)
    scores = [(name, mean_correspondence_distance(cloud, baseline, index=index))
              for name, cloud in clouds.items()]
    return sorted(scores, key=lambda item: item[1])


class MultiViewRegistration:
    """Registration pipeline for aligning multiple point cloud views."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        """
        Args:
            config: Pipeline settings. The packaged defaults when omitted.
        """
        self.config = config if config is not None else load_config()

        self.stats = {
            'total_merges': 0,
            'clouds_registered': 0,
            'clouds_failed': 0,
            'total_icp_iterations': 0,
            'total_merge_time': 0.0,
        }
        self._stats_lock = threading.RLock()

        logger.info(
            f"Multi-view registration initialized: {self.config.merge.strategy.value} strategy, "
            f"{self.config.worker_count} workers"
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, float]:
        with self._stats_lock:
            stats = dict(self.stats)
        attempted = stats['clouds_registered'] + stats['clouds_failed']
        stats['success_rate'] = stats['clouds_registered'] / attempted if attempted else 0.0
        return stats

    def reset_statistics(self):
        with self._stats_lock:
            for key in self.stats:
                self.stats[key] = 0.0 if isinstance(self.stats[key], float) else 0

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def preparation_parameters(self) -> PreparationParameters:
        cluster = self.config.cluster
        return PreparationParameters(
            cluster_enabled=cluster.enabled,
            cluster=ClusterParameters(
                epsilon=cluster.epsilon,
                min_points=cluster.min_points,
                epsilon_fraction=cluster.epsilon_fraction,
                min_points_fraction=cluster.min_points_fraction,
            ),
            decimate_distance=self.config.decimate_distance,
            center=self.config.center,
        )

    @staticmethod
    def _named(clouds: Sequence) -> Dict[str, PointCloud]:
        named = {}
        for i, cloud in enumerate(clouds):
            cloud = as_point_cloud(cloud)
            name = cloud.name or f"cloud_{i:03d}"
            if name in named:
                raise InvalidArgumentError(f"Duplicate cloud name '{name}'")
            named[name] = cloud if cloud.name == name else cloud.renamed(name)

        dimensions = {cloud.dimension for cloud in named.values()}
        if len(dimensions) != 1:
            raise DimensionMismatchError(f"Clouds have mixed dimensions {sorted(dimensions)}")
        return named

    def prepare_all(self, clouds: Dict[str, PointCloud]
                    ) -> Tuple[Dict[str, CloudPreparation], Dict[str, str]]:
        """
        Cluster, decimate and centre every cloud in parallel.

        Returns:
            (preparations in input order, failures by name)
        """
        parameters = self.preparation_parameters()
        preparations = {name: CloudPreparation(cloud, parameters) for name, cloud in clouds.items()}
        failures = {}

        with ThreadPoolExecutor(max_workers=self.config.worker_count) as executor:
            futures = {executor.submit(prep.prepared): name for name, prep in preparations.items()}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    prepared = future.result()
                    logger.info(f"Prepared {name}: {len(clouds[name])} -> {len(prepared)} points")
                except RegistrationError as e:
                    logger.error(f"Preparation of {name} failed: {e}")
                    failures[name] = f"preparation: {e}"

        ready = {name: prep for name, prep in preparations.items() if name not in failures}
        return ready, failures

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register(self, moving: PointCloud, fixed: PointCloud,
                  initial_pose: Optional[np.ndarray] = None,
                  fixed_index: Optional[SpatialIndex] = None) -> RegistrationResult:
        icp = self.config.icp
        result = register(
            moving,
            fixed,
            max_iterations=icp.max_iterations,
            tolerance=icp.tolerance,
            allow_scaling=icp.allow_scaling,
            proxy_distance=self.config.proxy_distance,
            initial_pose=initial_pose,
            fixed_index=fixed_index,
        )
        with self._stats_lock:
            self.stats['total_icp_iterations'] += result.iterations
        return result

    def choose_baseline(self, names: Sequence[str]) -> str:
        if not names:
            raise EmptyInputError("No clouds to choose a baseline from")
        if self.config.merge.baseline == BaselineChoice.FIRST:
            return names[0]
        return names[math.ceil(len(names) / 2) - 1]

    def _runs(self, names: List[str], baseline: str,
              clouds: Dict[str, PointCloud]) -> List[List[str]]:
        """Visiting order for the sequential merge."""
        others = {name: clouds[name] for name in names if name != baseline}
        if self.config.merge.sort_by_distance and others:
            ranked = rank_by_distance(others, clouds[baseline])
            logger.info("Cloud order by distance to baseline: " +
                        ", ".join(f"{name} ({distance:.4g})" for name, distance in ranked))
            return [[name for name, _ in ranked]]
        position = names.index(baseline)
        return [list(reversed(names[:position])), names[position + 1:]]

    def _merge_sequential(self, names, baseline, clouds, poses, registrations, failures):
        aggregate = clouds[baseline]
        index = SpatialIndex(aggregate)
        for run in self._runs(names, baseline, clouds):
            momentum = identity_transform(aggregate.dimension)
            for name in run:
                # start from the pose solved for the previous cloud of this run
                moving = PosedCloud(clouds[name], momentum)
                try:
                    result = self._register(moving.cloud, aggregate, initial_pose=moving.pose, fixed_index=index)
                except RegistrationError as e:
                    logger.error(f"Registration of {name} failed: {e}")
                    failures[name] = f"registration: {e}"
                    continue
                placed = moving.with_pose(result.pose)
                poses[name] = placed.pose
                registrations[name] = result
                momentum = placed.pose
                oriented = placed.oriented()
                aggregate = PointCloud.concatenate([aggregate, oriented])
                index = index.insert(oriented)

    def _merge_baseline(self, names, baseline, clouds, poses, registrations, failures):
        fixed = clouds[baseline]
        index = SpatialIndex(fixed)
        others = [name for name in names if name != baseline]
        if self.config.merge.sort_by_distance and others:
            others = [name for name, _ in rank_by_distance({n: clouds[n] for n in others}, fixed, index)]

        completed = {}
        with ThreadPoolExecutor(max_workers=self.config.worker_count) as executor:
            futures = {executor.submit(self._register, clouds[name], fixed, None, index): name
                       for name in others}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    completed[name] = future.result()
                except RegistrationError as e:
                    logger.error(f"Registration of {name} failed: {e}")
                    failures[name] = f"registration: {e}"

        for name in others:
            if name in completed:
                poses[name] = completed[name].pose
                registrations[name] = completed[name]

    def _merge_tree(self, names, baseline, clouds, poses, registrations, failures):
        # each group: (members posed in the group frame, group cloud)
        groups = [({name: PosedCloud.unposed(clouds[name])}, clouds[name]) for name in names]
        round_number = 0
        while len(groups) > 1:
            round_number += 1
            pairs = [(groups[i], groups[i + 1]) for i in range(0, len(groups) - 1, 2)]
            carry = [groups[-1]] if len(groups) % 2 else []
            logger.info(f"Tree round {round_number}: {len(pairs)} pairs, {len(carry)} carried")

            outcomes = {}
            with ThreadPoolExecutor(max_workers=self.config.worker_count) as executor:
                futures = {executor.submit(self._register, right[1], left[1]): i
                           for i, (left, right) in enumerate(pairs)}
                for future in as_completed(futures):
                    i = futures[future]
                    try:
                        outcomes[i] = future.result()
                    except RegistrationError as e:
                        outcomes[i] = e

            merged_groups = []
            for i, ((left_members, left_cloud), (right_members, right_cloud)) in enumerate(pairs):
                outcome = outcomes[i]
                if isinstance(outcome, RegistrationError):
                    logger.error(f"Registration of group {sorted(right_members)} failed: {outcome}")
                    for name in right_members:
                        failures[name] = f"registration: {outcome}"
                        registrations.pop(name, None)
                    merged_groups.append((left_members, left_cloud))
                    continue
                members = dict(left_members)
                for name, member in right_members.items():
                    members[name] = member.moved_by(outcome.pose)
                    registrations[name] = outcome
                merged_groups.append(
                    (members, PointCloud.concatenate([left_cloud, outcome.apply(right_cloud)]))
                )
            groups = merged_groups + carry

        members = groups[0][0]
        if baseline not in members:
            logger.warning(f"Baseline '{baseline}' was not merged; using '{names[0]}' instead")
            baseline = names[0]
        registrations.pop(baseline, None)

        # Express everything in the baseline's frame.
        rebase = invert_transform(members[baseline].pose)
        poses.clear()
        for name in names:
            if name in members:
                poses[name] = members[name].moved_by(rebase).pose
        return baseline

    def _refine(self, names, baseline, clouds, poses, registrations):
        """Re-register each cloud onto all the others (momentum carry-forward)."""
        movable = [name for name in names if name in poses and name != baseline]
        if not movable:
            return

        for refine_pass in range(1, self.config.merge.refine_passes + 1):
            posed = {name: PosedCloud(clouds[name], poses[name]) for name in names if name in poses}
            oriented = {name: cloud.oriented() for name, cloud in posed.items()}

            def refine_one(name):
                fixed = PointCloud.concatenate([cloud for other, cloud in oriented.items() if other != name])
                return self._register(posed[name].cloud, fixed, initial_pose=posed[name].pose)

            updates = {}
            with ThreadPoolExecutor(max_workers=self.config.worker_count) as executor:
                futures = {executor.submit(refine_one, name): name for name in movable}
                for future in as_completed(futures):
                    name = futures[future]
                    try:
                        updates[name] = future.result()
                    except RegistrationError as e:
                        logger.error(f"Refinement pass {refine_pass} of {name} failed, keeping previous pose: {e}")

            # poses are published only once the whole pass is done
            for name, result in updates.items():
                poses[name] = result.pose
                registrations[name] = result
            logger.info(f"Refinement pass {refine_pass}: {len(updates)}/{len(movable)} clouds updated")

    def register_all(self, clouds: Sequence) -> MergeResult:
        """
        Register and merge ``clouds``.

        Args:
            clouds: PointClouds (or (N, d) arrays) in capture order. Unnamed
                clouds are called cloud_000, cloud_001, ...

        Returns:
            MergeResult. Poses map each raw input cloud into the merged frame.

        Raises:
            EmptyInputError: No clouds given.
            EmptyResultError: Every cloud failed.
        """
        if clouds is None or len(clouds) == 0:
            raise EmptyInputError("No clouds to register")

        start_time = time.time()
        strategy = self.config.merge.strategy
        named = self._named(clouds)
        preparations, failures = self.prepare_all(named)
        if not preparations:
            with self._stats_lock:
                self.stats['clouds_failed'] += len(failures)
            raise EmptyResultError(f"All {len(named)} clouds failed preparation")

        names = list(preparations)
        prepared = {name: prep.prepared() for name, prep in preparations.items()}
        baseline = self.choose_baseline(names)
        logger.info(f"Merging {len(names)} clouds with {strategy.value} strategy, baseline '{baseline}'")

        poses = {baseline: identity_transform(prepared[baseline].dimension)}
        registrations = {}
        if strategy == MergeStrategy.SEQUENTIAL:
            self._merge_sequential(names, baseline, prepared, poses, registrations, failures)
        elif strategy == MergeStrategy.BASELINE:
            self._merge_baseline(names, baseline, prepared, poses, registrations, failures)
        else:
            baseline = self._merge_tree(names, baseline, prepared, poses, registrations, failures)

        if self.config.merge.refine_passes > 0:
            self._refine(names, baseline, prepared, poses, registrations)

        posed = {name: PosedCloud(prepared[name], poses[name]) for name in names if name in poses}
        merged = PointCloud.concatenate([cloud.oriented() for cloud in posed.values()], name="merged")
        raw_poses = {name: compose(cloud.pose, preparations[name].centering_transform())
                     for name, cloud in posed.items()}
        # clouds placed only through their tree group have no registration of their own
        errors = {baseline: 0.0}
        errors.update({name: registrations[name].rms for name in posed if name in registrations})

        merge_time = time.time() - start_time
        with self._stats_lock:
            self.stats['total_merges'] += 1
            self.stats['clouds_registered'] += len(posed)
            self.stats['clouds_failed'] += len(failures)
            self.stats['total_merge_time'] += merge_time

        result = MergeResult(
            merged=merged,
            poses=raw_poses,
            errors=errors,
            failures=failures,
            strategy=strategy,
            baseline=baseline,
            registrations=registrations,
            merge_time=merge_time,
        )
        logger.info(result.summary())
        return result

    def averaged(self, result: MergeResult) -> PointCloud:
        """Z-bucket average of a merged cloud using the configured grid."""
        averaging = self.config.averaging
        return result.merged.averaged_along_z(
            subdivisions=averaging.subdivisions, min_per_bucket=averaging.min_per_bucket
        )
