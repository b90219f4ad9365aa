#!/usr/bin/env python3
"""
Pipeline configuration.

Settings live in YAML. The packaged defaults (defaults/pipeline.yaml) are
loaded first, then an optional user file and keyword overrides are merged on
top. Every key is validated; unknown keys and out-of-range values raise
ConfigurationError instead of being ignored.

Author: Reconstruction Team
"""

import copy
import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "pipeline.yaml"


class MergeStrategy(Enum):
    """How several clouds are folded into one."""
    SEQUENTIAL = "sequential"
    BASELINE = "baseline"
    TREE = "tree"


class BaselineChoice(Enum):
    """Which input cloud defines the merged frame."""
    FIRST = "first"
    MIDDLE = "middle"


@dataclass
class ClusterConfig:
    enabled: bool = True
    epsilon: Optional[float] = None
    min_points: Optional[int] = None
    epsilon_fraction: float = 0.05
    min_points_fraction: float = 0.01


@dataclass
class IcpConfig:
    max_iterations: int = 20
    tolerance: Optional[float] = None
    allow_scaling: bool = False


@dataclass
class ProxyConfig:
    enabled: bool = True
    multiplier: float = 20.0


@dataclass
class MergeConfig:
    strategy: MergeStrategy = MergeStrategy.SEQUENTIAL
    baseline: BaselineChoice = BaselineChoice.MIDDLE
    sort_by_distance: bool = False
    refine_passes: int = 0


@dataclass
class AveragingConfig:
    subdivisions: int = 150
    min_per_bucket: int = 2


_SECTIONS = {
    'cluster': ClusterConfig,
    'icp': IcpConfig,
    'proxy': ProxyConfig,
    'merge': MergeConfig,
    'averaging': AveragingConfig,
}


@dataclass
class PipelineConfig:
    """Complete settings for one registration run."""
    decimate_distance: float = 0.0
    center: bool = True
    workers: Optional[int] = None
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    icp: IcpConfig = field(default_factory=IcpConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    averaging: AveragingConfig = field(default_factory=AveragingConfig)

    def __post_init__(self):
        self.validate()

    @property
    def proxy_distance(self) -> float:
        """Spacing of the lightweight ICP proxy (0 = use the prepared cloud itself)."""
        if not self.proxy.enabled or self.decimate_distance <= 0:
            return 0.0
        return self.decimate_distance * self.proxy.multiplier

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1

    def validate(self):
        """Raise ConfigurationError on the first invalid value."""
        _check_number("decimate_distance", self.decimate_distance, minimum=0.0)
        _check_bool("center", self.center)
        if self.workers is not None:
            _check_int("workers", self.workers, minimum=1)

        _check_bool("cluster.enabled", self.cluster.enabled)
        if self.cluster.epsilon is not None:
            _check_number("cluster.epsilon", self.cluster.epsilon, minimum=0.0)
        if self.cluster.min_points is not None:
            _check_int("cluster.min_points", self.cluster.min_points, minimum=1)
        _check_number("cluster.epsilon_fraction", self.cluster.epsilon_fraction, minimum=0.0)
        _check_number("cluster.min_points_fraction", self.cluster.min_points_fraction, minimum=0.0)

        _check_int("icp.max_iterations", self.icp.max_iterations, minimum=1)
        if self.icp.tolerance is not None:
            _check_number("icp.tolerance", self.icp.tolerance, minimum=0.0)
        _check_bool("icp.allow_scaling", self.icp.allow_scaling)

        _check_bool("proxy.enabled", self.proxy.enabled)
        _check_number("proxy.multiplier", self.proxy.multiplier, minimum=0.0)

        if not isinstance(self.merge.strategy, MergeStrategy):
            raise ConfigurationError(f"merge.strategy must be a MergeStrategy, got {self.merge.strategy!r}")
        if not isinstance(self.merge.baseline, BaselineChoice):
            raise ConfigurationError(f"merge.baseline must be a BaselineChoice, got {self.merge.baseline!r}")
        _check_bool("merge.sort_by_distance", self.merge.sort_by_distance)
        _check_int("merge.refine_passes", self.merge.refine_passes, minimum=0)

        _check_int("averaging.subdivisions", self.averaging.subdivisions, minimum=1)
        _check_int("averaging.min_per_bucket", self.averaging.min_per_bucket, minimum=1)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Build from a nested dict shaped like pipeline.yaml."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")

        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs = {}
        for key, value in data.items():
            section = _SECTIONS.get(key)
            if section is None:
                kwargs[key] = value
                continue
            if not isinstance(value, dict):
                raise ConfigurationError(f"Section '{key}' must be a mapping")
            unknown = set(value) - set(section.__dataclass_fields__)
            if unknown:
                raise ConfigurationError(f"Unknown keys in '{key}': {sorted(unknown)}")
            kwargs[key] = section(**_decode_section(key, value))
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Plain nested dict (enums as their YAML strings)."""
        data = asdict(self)
        data['merge']['strategy'] = self.merge.strategy.value
        data['merge']['baseline'] = self.merge.baseline.value
        return data

    def update(self, overrides: Dict[str, Any]) -> "PipelineConfig":
        """New config with ``overrides`` (nested dict) merged on top."""
        return PipelineConfig.from_dict(_deep_merge(self.to_dict(), overrides))


def _decode_section(name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    if name != 'merge':
        return dict(values)
    decoded = dict(values)
    try:
        if 'strategy' in decoded and not isinstance(decoded['strategy'], MergeStrategy):
            decoded['strategy'] = MergeStrategy(str(decoded['strategy']).lower())
        if 'baseline' in decoded and not isinstance(decoded['baseline'], BaselineChoice):
            decoded['baseline'] = BaselineChoice(str(decoded['baseline']).lower())
    except ValueError as e:
        raise ConfigurationError(f"Invalid merge setting: {e}") from e
    return decoded


def _check_bool(name: str, value):
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be true or false, got {value!r}")


def _check_int(name: str, value, minimum: int):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")


def _check_number(name: str, value, minimum: float):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration {path}: {e}")
        raise ConfigurationError(f"Cannot read configuration '{path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration '{path}' must hold a mapping at the top level")
    return data


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> PipelineConfig:
    """
    Load the packaged defaults, then ``path`` and ``overrides`` on top.

    Args:
        path: Optional user YAML file holding any subset of the keys.
        overrides: Optional nested dict applied last.

    Raises:
        ConfigurationError: Unreadable file, bad YAML, unknown key or bad value.
    """
    data = _read_yaml(DEFAULT_CONFIG_PATH)
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file '{path}' not found")
        data = _deep_merge(data, _read_yaml(path))
        logger.info(f"Configuration loaded from {path}")
    if overrides:
        data = _deep_merge(data, overrides)
    return PipelineConfig.from_dict(data)
