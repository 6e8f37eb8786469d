"""Odometry node configuration with YAML loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml

from .transform import Transform

logger = logging.getLogger(__name__)

_CONFIGS_DIR = Path(__file__).resolve().parent.parent.parent / "configs"


@dataclass
class OdometryConfig:
    """Frames, TF behavior and engine selection for the odometry node.

    Load from YAML with ``OdometryConfig.from_yaml("configs/default.yaml")``
    and call ``resolve()`` before use.
    """

    frame_id: str = "base_link"
    odom_frame_id: str = "odom"
    # Seed the first pose from TF (ground_truth_frame_id -> frame_id) if set
    ground_truth_frame_id: str = ""
    # Frame used for TF motion guesses; empty means frame_id
    guess_frame_id: str = ""
    publish_tf: bool = True
    tf_prefix: str = ""
    wait_for_transform: bool = True
    wait_for_transform_duration: float = 0.1
    # "x y z roll pitch yaw", angles in radians
    initial_pose: str = ""
    # Engine parameter file (YAML)
    config_path: str = ""
    publish_null_when_lost: bool = True
    guess_from_tf: bool = False
    # "rgbd", "stereo" or "icp"
    odometry_type: str = "icp"
    # Engine class as "package.module:ClassName"
    engine: str = ""
    # Per-parameter engine overrides, e.g. {"Odom/ResetCountdown": 3}
    parameters: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: str | Path) -> OdometryConfig:
        p = Path(path)
        if not p.is_absolute() and not p.exists():
            # Try relative to configs/ directory
            p = _CONFIGS_DIR / p
        with open(p) as f:
            data = yaml.safe_load(f) or {}
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    @classmethod
    def from_yaml_or_default(cls, path: str | Path) -> OdometryConfig:
        """Like ``from_yaml``, but a missing or broken file logs and gives defaults."""
        try:
            return cls.from_yaml(path)
        except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
            logger.error(f'Cannot load odometry config "{path}", using defaults: {e}')
            return cls()

    @property
    def effective_guess_frame_id(self) -> str:
        return self.guess_frame_id or self.frame_id

    @property
    def transform_timeout(self) -> float:
        """Seconds a TF lookup may block, 0 when waiting is disabled."""
        if not self.wait_for_transform:
            return 0.0
        return max(0.0, self.wait_for_transform_duration)

    def resolve(self) -> OdometryConfig:
        """Return a copy with prefixes, paths and conflicting options settled."""
        cfg = replace(self, parameters=dict(self.parameters))
        if not cfg.guess_frame_id:
            cfg.guess_frame_id = cfg.frame_id

        if cfg.publish_tf and cfg.guess_from_tf and cfg.guess_frame_id == cfg.frame_id:
            logger.warning(
                f'"publish_tf" and "guess_from_tf" cannot be used at the same time if '
                f'"guess_frame_id" and "frame_id" are the same frame (value="{cfg.frame_id}"). '
                f'"guess_from_tf" is disabled.'
            )
            cfg.guess_from_tf = False

        if cfg.config_path:
            path = Path(os.path.expanduser(cfg.config_path))
            if not path.is_absolute():
                path = Path.cwd() / path
            cfg.config_path = str(path)

        if cfg.tf_prefix:
            prefix = cfg.tf_prefix.rstrip("/")
            if cfg.frame_id:
                cfg.frame_id = f"{prefix}/{cfg.frame_id}"
            if cfg.odom_frame_id:
                cfg.odom_frame_id = f"{prefix}/{cfg.odom_frame_id}"
            if cfg.ground_truth_frame_id:
                cfg.ground_truth_frame_id = f"{prefix}/{cfg.ground_truth_frame_id}"
        return cfg

    def initial_pose_transform(self) -> Transform:
        """Parse ``initial_pose``; malformed strings fall back to identity."""
        if not self.initial_pose.strip():
            return Transform.identity()
        values = self.initial_pose.split()
        if len(values) == 6:
            try:
                return Transform.from_xyz_rpy(*(float(v) for v in values))
            except ValueError:
                pass
        logger.error(
            f'Wrong initial_pose format: {self.initial_pose} (should be "x y z roll pitch yaw" '
            f"with angle in radians). Identity will be used..."
        )
        return Transform.identity()
