#!/usr/bin/env python3
"""
Command line entry point: load clouds, register and merge them, save the result.

    python -m pointmerge scan_01.asc scan_02.asc scan_03.asc -o merged.asc

Author: Reconstruction Team
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .config import load_config
from .errors import RegistrationError
from .processing.cloud_io import load_cloud, save_cloud
from .reconstruction.multiview_registration import MultiViewRegistration
from .utils.pipeline_logger import PipelineLogger

logger = logging.getLogger("pointmerge.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register and merge point clouds of the same object")
    parser.add_argument("inputs", type=Path, nargs="+", help="Point cloud files (.asc/.xyz/.txt, or .ply/.pcd with open3d)")
    parser.add_argument("-o", "--output", type=Path, default=Path("merged.asc"), help="Merged cloud destination")
    parser.add_argument("--averaged-output", type=Path, default=None,
                        help="Also write a Z-bucket averaged copy of the merged cloud here")
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding the default settings")
    parser.add_argument("--strategy", choices=["sequential", "baseline", "tree"], default=None,
                        help="Merge strategy")
    parser.add_argument("--baseline", choices=["first", "middle"], default=None, help="Baseline cloud")
    parser.add_argument("--decimate", type=float, default=None, help="Minimum point spacing before registration")
    parser.add_argument("--iterations", type=int, default=None, help="Maximum ICP iterations")
    parser.add_argument("--tolerance", type=float, default=None, help="Early-exit rms improvement")
    parser.add_argument("--allow-scaling", action="store_true", help="Also solve a uniform scale")
    parser.add_argument("--no-cluster", action="store_true", help="Skip largest-cluster extraction")
    parser.add_argument("--sort", action="store_true", help="Order clouds by distance to the baseline")
    parser.add_argument("--refine", type=int, default=None, help="Refinement passes after merging")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Nested config overrides for the options that were given."""
    overrides = {'cluster': {}, 'icp': {}, 'merge': {}}
    if args.strategy is not None:
        overrides['merge']['strategy'] = args.strategy
    if args.baseline is not None:
        overrides['merge']['baseline'] = args.baseline
    if args.sort:
        overrides['merge']['sort_by_distance'] = True
    if args.refine is not None:
        overrides['merge']['refine_passes'] = args.refine
    if args.decimate is not None:
        overrides['decimate_distance'] = args.decimate
    if args.iterations is not None:
        overrides['icp']['max_iterations'] = args.iterations
    if args.tolerance is not None:
        overrides['icp']['tolerance'] = args.tolerance
    if args.allow_scaling:
        overrides['icp']['allow_scaling'] = True
    if args.no_cluster:
        overrides['cluster']['enabled'] = False
    if args.workers is not None:
        overrides['workers'] = args.workers
    return {key: value for key, value in overrides.items() if value != {}}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    pipeline_logger = PipelineLogger("pointmerge", log_file=args.log_file,
                                     level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args.config, overrides_from_args(args))
        clouds = [load_cloud(path) for path in args.inputs]
        registration = MultiViewRegistration(config)
        result = registration.register_all(clouds)
        save_cloud(result.merged, args.output)
        if args.averaged_output is not None:
            save_cloud(registration.averaged(result), args.averaged_output)
    except (RegistrationError, OSError, ImportError) as e:
        logger.error(f"Merge failed: {e}")
        return 1
    finally:
        pipeline_logger.close()

    print(result.summary())
    with np.printoptions(precision=6, suppress=True):
        for name, pose in result.poses.items():
            print(f"Pose {name}:")
            print(pose)
    return 0 if not result.failures else 2


if __name__ == "__main__":
    sys.exit(main())
