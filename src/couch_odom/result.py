from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .engine import OdometryInfo
from .transform import Transform

# Covariance reported when an estimate must not be trusted
BAD_COVARIANCE = 9999.0


@dataclass
class CycleResult:
    """Outcome of one supervised odometry update."""
    stamp: float
    pose: Transform | None
    info: OdometryInfo
    velocity: Transform | None
    processing_time: float            # wall clock seconds
    guess: Transform | None = None
    # Pose the engine was re-anchored to by automatic recovery
    reset_pose: Transform | None = None

    @property
    def lost(self) -> bool:
        return self.pose is None

    @property
    def auto_reset(self) -> bool:
        return self.reset_pose is not None

    def pose_covariance(self) -> NDArray[np.float64]:
        if self.pose is None:
            return diagonal_covariance(BAD_COVARIANCE)
        return pose_covariance(self.info.variance)

    def twist_covariance(self) -> NDArray[np.float64]:
        if self.pose is None:
            return diagonal_covariance(BAD_COVARIANCE)
        return twist_covariance(self.info.variance, self.velocity is not None)


@dataclass
class ReplayResult:
    times: NDArray[np.float64]
    positions: NDArray[np.float64]    # (N, 3), NaN when lost
    yaws: NDArray[np.float64]         # (N,)
    lost: NDArray[np.bool_]           # (N,)
    inliers: NDArray[np.int64]        # (N,)
    variances: NDArray[np.float64]    # (N,)
    processing_times: NDArray[np.float64]
    reset_times: NDArray[np.float64]  # automatic recoveries
    skipped: int                      # cycles aborted before estimation


def diagonal_covariance(value: float) -> NDArray[np.float64]:
    """6x6 row-major covariance with ``value`` on the diagonal."""
    return np.eye(6) * value


def pose_covariance(variance: float) -> NDArray[np.float64]:
    # Velocity variance * 2, as libviso2 does
    return diagonal_covariance(variance * 2.0)


def twist_covariance(variance: float, has_velocity: bool) -> NDArray[np.float64]:
    return diagonal_covariance(variance if has_velocity else BAD_COVARIANCE)


def velocity_components(velocity: Transform | None) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Split a per-second velocity transform into (linear xyz, angular rpy)."""
    if velocity is None:
        return np.zeros(3), np.zeros(3)
    x, y, z, roll, pitch, yaw = velocity.to_xyz_rpy()
    return np.array([x, y, z]), np.array([roll, pitch, yaw])


def format_diagnostics(result: CycleResult, vis: bool, icp: bool) -> str:
    info = result.info
    std_dev = 0.0 if result.lost else math.sqrt(max(info.variance, 0.0))
    if vis and icp:
        return (
            f"Odom: quality={info.inliers}, ratio={info.icp_inliers_ratio:f}, "
            f"std dev={std_dev:f}m, update time={result.processing_time:f}s"
        )
    if vis:
        return (
            f"Odom: quality={info.inliers}, "
            f"std dev={std_dev:f}m, update time={result.processing_time:f}s"
        )
    return (
        f"Odom: ratio={info.icp_inliers_ratio:f}, "
        f"std dev={std_dev:f}m, update time={result.processing_time:f}s"
    )
