"""Tracking supervisor: runs the engine once per sensor snapshot.

Per update: optional ground-truth seeding, motion guess from TF, engine call,
then failure bookkeeping. After ``reset_countdown`` consecutive failed
updates the engine is re-anchored, preferring the odom -> base pose found in
TF (e.g. from a fusion filter) over the engine's own last pose. A countdown
of 0 disables automatic resets.

The supervisor is not thread-safe; callers serialize ``process`` with the
service-style methods (reset, pause, ...).
"""

from __future__ import annotations

import enum
import logging
import time

import numpy as np
from numpy.typing import NDArray

from .config import OdometryConfig
from .engine import OdometryEngine, SensorData
from .guess import MotionGuessProvider
from .oracle import TransformOracle
from .parameters import parameter_groups
from .result import CycleResult, format_diagnostics
from .transform import Transform

logger = logging.getLogger(__name__)

_PACKAGE_LOGGER = "couch_odom"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def set_log_level(level: str) -> bool:
    """Set the package-wide log level by name. Unknown names are rejected."""
    value = LOG_LEVELS.get(level.strip().lower())
    if value is None:
        logger.error(f"Unknown log level '{level}', expected one of debug, info, warning, error")
        return False
    logging.getLogger(_PACKAGE_LOGGER).setLevel(value)
    logger.info(f"Set log level to {logging.getLevelName(value).capitalize()}")
    return True


class TrackingState(enum.Enum):
    RUNNING = "running"
    LOST = "lost"
    RESETTING = "resetting"


class TrackingSupervisor:
    def __init__(
        self,
        engine: OdometryEngine,
        oracle: TransformOracle,
        guess_provider: MotionGuessProvider,
        odom_frame_id: str = "odom",
        frame_id: str = "base_link",
        ground_truth_frame_id: str = "",
        reset_countdown: int = 0,
        transform_timeout: float = 0.1,
        vis: bool = False,
        icp: bool = True,
    ) -> None:
        if reset_countdown < 0:
            raise ValueError("reset_countdown must be >= 0")
        self.engine = engine
        self.oracle = oracle
        self.guess_provider = guess_provider
        self.odom_frame_id = odom_frame_id
        self.frame_id = frame_id
        self.ground_truth_frame_id = ground_truth_frame_id
        self.transform_timeout = transform_timeout
        self.vis = vis
        self.icp = icp

        self._reset_countdown = reset_countdown
        # Armed from the start, so failures before the first success also count
        self._failure_budget = reset_countdown
        self._paused = False
        self._state = TrackingState.RUNNING

    @classmethod
    def from_config(
        cls,
        config: OdometryConfig,
        engine: OdometryEngine,
        oracle: TransformOracle,
        reset_countdown: int = 0,
    ) -> TrackingSupervisor:
        """Build from a resolved config."""
        _, vis, icp = parameter_groups(config.odometry_type)
        guess_provider = MotionGuessProvider(
            oracle,
            odom_frame_id=config.odom_frame_id,
            guess_frame_id=config.effective_guess_frame_id,
            enabled=config.guess_from_tf,
            timeout=config.transform_timeout,
        )
        return cls(
            engine,
            oracle,
            guess_provider,
            odom_frame_id=config.odom_frame_id,
            frame_id=config.frame_id,
            ground_truth_frame_id=config.ground_truth_frame_id,
            reset_countdown=reset_countdown,
            transform_timeout=config.transform_timeout,
            vis=vis,
            icp=icp,
        )

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def reset_countdown(self) -> int:
        return self._reset_countdown

    @property
    def failure_budget(self) -> int:
        """Failed updates left before an automatic reset."""
        return self._failure_budget

    def process(self, data: SensorData) -> CycleResult | None:
        """Run one odometry update.

        Returns None when the update was skipped: paused, ground-truth pose
        not yet available, or a required TF motion guess could not be built.
        """
        if self._paused:
            logger.debug(f"Paused, ignoring data at {data.stamp:.6f}")
            return None

        stamp = data.stamp
        if self.ground_truth_frame_id and self.engine.pose.is_identity():
            initial_pose = self.oracle.lookup(
                self.ground_truth_frame_id, self.frame_id, stamp, self.transform_timeout
            )
            if initial_pose is None:
                return None
            logger.info(
                f'Initializing odometry pose to {initial_pose} '
                f'(from "{self.ground_truth_frame_id}" -> "{self.frame_id}")'
            )
            self.engine.reset(initial_pose)

        guess = self.guess_provider.compute(self.engine.previous_stamp, stamp)
        if guess is None:
            return None

        start = time.monotonic()
        pose, info = self.engine.process(data, guess.transform)
        elapsed = time.monotonic() - start

        reset_pose = None
        velocity = None
        if pose is not None:
            self._failure_budget = self._reset_countdown
            self._state = TrackingState.RUNNING
            velocity = self.engine.previous_velocity
        else:
            self._state = TrackingState.LOST
            reset_pose = self._on_failure(stamp)

        result = CycleResult(
            stamp=stamp,
            pose=pose,
            info=info,
            velocity=velocity,
            processing_time=elapsed,
            guess=guess.transform,
            reset_pose=reset_pose,
        )
        logger.info(format_diagnostics(result, vis=self.vis, icp=self.icp))
        return result

    def _on_failure(self, stamp: float) -> Transform | None:
        if self._failure_budget <= 0:
            return None

        logger.warning(
            f"Odometry lost! Odometry will be reset after next {self._failure_budget} "
            f"consecutive unsuccessful odometry updates..."
        )
        self._failure_budget -= 1
        if self._failure_budget > 0:
            return None
        return self._recover(stamp)

    def _recover(self, stamp: float) -> Transform:
        self._state = TrackingState.RESETTING
        # A fused pose in TF (e.g. robot_localization output) wins over our own
        tf_pose = self.oracle.lookup(self.odom_frame_id, self.frame_id, stamp, self.transform_timeout)
        if tf_pose is None:
            target = self.engine.pose
            logger.warning("Odometry automatically reset to latest computed pose!")
        else:
            target = tf_pose
            logger.warning(
                f"Odometry automatically reset to latest odometry pose available from TF "
                f"({self.odom_frame_id}->{self.frame_id})!"
            )
        self._reset_engine(target)
        return target

    def _reset_engine(self, pose: Transform | None) -> None:
        self._state = TrackingState.RESETTING
        self.engine.reset(pose)
        # Re-armed immediately rather than waiting for the next success
        self._failure_budget = self._reset_countdown
        self._state = TrackingState.RUNNING

    def reset(self) -> bool:
        logger.info("reset odom!")
        self._reset_engine(None)
        return True

    def reset_to_pose(
        self,
        x: float, y: float, z: float,
        roll: float, pitch: float, yaw: float,
    ) -> bool:
        pose = Transform.from_xyz_rpy(x, y, z, roll, pitch, yaw)
        logger.info(f"reset odom to pose {pose}!")
        self._reset_engine(pose)
        return True

    def pause(self) -> bool:
        if self._paused:
            logger.warning("Already paused!")
        else:
            self._paused = True
            logger.info("paused!")
        return True

    def resume(self) -> bool:
        if not self._paused:
            logger.warning("Already running!")
        else:
            self._paused = False
            logger.info("resumed!")
        return True

    def set_log_level(self, level: str) -> bool:
        return set_log_level(level)

    def local_map_snapshot(self) -> NDArray[np.float32] | None:
        """Engine local map in the odometry frame, None if unsupported."""
        if not self.engine.supports_local_map_snapshot():
            return None
        return np.asarray(self.engine.local_map(), dtype=np.float32).reshape(-1, 3)

    def reference_frame_snapshot(self, pose: Transform) -> NDArray[np.float32] | None:
        """Engine reference/last frame moved into the odometry frame by ``pose``."""
        if not self.engine.supports_reference_frame_snapshot():
            return None
        points = np.asarray(self.engine.reference_frame(), dtype=np.float32).reshape(-1, 3)
        if len(points) == 0:
            return points
        return pose.transform_points(points).astype(np.float32)
