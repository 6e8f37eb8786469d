"""Interface to the external odometry estimation engine.

The engine does the actual pose estimation (registration, feature matching,
covariance). This package only drives it: one ``process`` call per sensor
snapshot, plus resets.
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from .transform import Transform


@dataclass
class SensorData:
    """One sensor snapshot handed to the engine."""
    stamp: float
    points: NDArray[np.float32]  # (N, 3) or (N, 6) with normals
    frame_id: str = ""


@dataclass
class OdometryInfo:
    """Quality metrics filled by the engine for one update."""
    inliers: int = 0
    variance: float = 0.0
    icp_inliers_ratio: float = 0.0
    lost: bool = False
    # Local scan map in the odometry frame, (N, 3) or (N, 6)
    local_scan_map: NDArray[np.float32] = field(
        default_factory=lambda: np.empty((0, 3), dtype=np.float32)
    )


class OdometryEngine(ABC):
    """Stateful pose estimator.

    Implementations may also expose map snapshots; callers check the
    ``supports_*`` capabilities before asking for them.
    """

    def __init__(self, parameters: Mapping[str, object] | None = None) -> None:
        self.parameters = dict(parameters or {})

    @abstractmethod
    def process(
        self,
        data: SensorData,
        guess: Transform | None = None,
    ) -> tuple[Transform | None, OdometryInfo]:
        """Estimate the pose for ``data``; ``None`` when tracking failed."""

    @abstractmethod
    def reset(self, pose: Transform | None = None) -> None:
        """Clear internal state and restart from ``pose`` (identity if None)."""

    @property
    @abstractmethod
    def pose(self) -> Transform:
        """Current pose, identity until the first update or reset."""

    @property
    @abstractmethod
    def previous_stamp(self) -> float:
        """Stamp of the last processed snapshot, 0 if none."""

    @property
    @abstractmethod
    def previous_velocity(self) -> Transform | None:
        """Last velocity as a transform per second, ``None`` if unknown."""

    def supports_local_map_snapshot(self) -> bool:
        return False

    def supports_reference_frame_snapshot(self) -> bool:
        return False

    def local_map(self) -> NDArray[np.float32]:
        """(N, 3) map points in the odometry frame."""
        raise NotImplementedError(f"{type(self).__name__} has no local map")

    def reference_frame(self) -> NDArray[np.float32]:
        """(N, 3) points of the last/reference frame in the sensor frame."""
        raise NotImplementedError(f"{type(self).__name__} has no reference frame")


def create_engine(spec: str, parameters: Mapping[str, object]) -> OdometryEngine:
    """Instantiate an engine from ``"package.module:ClassName"``."""
    module_name, sep, class_name = spec.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Engine must be given as 'package.module:ClassName', got '{spec}'")
    module = importlib.import_module(module_name)
    cls = getattr(module, class_name)
    if not (isinstance(cls, type) and issubclass(cls, OdometryEngine)):
        raise TypeError(f"{spec} is not an OdometryEngine subclass")
    return cls(parameters)
