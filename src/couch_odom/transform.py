"""Rigid 3D transforms used for poses, motion guesses and TF lookups.

A ``Transform`` is a homogeneous 4x4 matrix. Functions that can fail to
produce a transform (TF lookups, odometry updates) return ``None`` instead
of a geometric placeholder, so "no estimate" is never confused with the
identity pose.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.spatial.transform import Rotation, Slerp


@dataclass(frozen=True, eq=False)
class Transform:
    matrix: NDArray[np.float64]

    def __post_init__(self) -> None:
        m = np.asarray(self.matrix, dtype=np.float64)
        if m.shape != (4, 4):
            raise ValueError(f"Transform matrix must be shape (4, 4), got {m.shape}")
        m = m.copy()
        m.setflags(write=False)
        object.__setattr__(self, "matrix", m)

    @classmethod
    def identity(cls) -> Transform:
        return cls(np.eye(4))

    @classmethod
    def from_xyz_rpy(
        cls,
        x: float, y: float, z: float,
        roll: float, pitch: float, yaw: float,
    ) -> Transform:
        """Build from a translation and fixed-axis roll/pitch/yaw (radians)."""
        m = np.eye(4)
        m[:3, :3] = Rotation.from_euler("xyz", [roll, pitch, yaw]).as_matrix()
        m[:3, 3] = [x, y, z]
        return cls(m)

    @classmethod
    def from_translation_quaternion(cls, translation: ArrayLike, quat_xyzw: ArrayLike) -> Transform:
        q = np.asarray(quat_xyzw, dtype=np.float64)
        if np.allclose(q, 0.0):
            # Uninitialized quaternion in a message
            q = np.array([0.0, 0.0, 0.0, 1.0])
        m = np.eye(4)
        m[:3, :3] = Rotation.from_quat(q).as_matrix()
        m[:3, 3] = np.asarray(translation, dtype=np.float64)
        return cls(m)

    @property
    def translation(self) -> NDArray[np.float64]:
        return self.matrix[:3, 3].copy()

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_matrix(self.matrix[:3, :3])

    @property
    def quaternion(self) -> NDArray[np.float64]:
        """Orientation as (x, y, z, w)."""
        return self.rotation.as_quat()

    def to_xyz_rpy(self) -> tuple[float, float, float, float, float, float]:
        x, y, z = (float(v) for v in self.matrix[:3, 3])
        roll, pitch, yaw = (float(v) for v in self.rotation.as_euler("xyz"))
        return x, y, z, roll, pitch, yaw

    def is_identity(self, atol: float = 1e-9) -> bool:
        return bool(np.allclose(self.matrix, np.eye(4), atol=atol))

    def allclose(self, other: Transform, atol: float = 1e-6) -> bool:
        return bool(np.allclose(self.matrix, other.matrix, atol=atol))

    def inverse(self) -> Transform:
        R = self.matrix[:3, :3]
        t = self.matrix[:3, 3]
        m = np.eye(4)
        m[:3, :3] = R.T
        m[:3, 3] = -R.T @ t
        return Transform(m)

    def __matmul__(self, other: Transform) -> Transform:
        if not isinstance(other, Transform):
            return NotImplemented
        return Transform(self.matrix @ other.matrix)

    def transform_points(self, points: ArrayLike) -> NDArray[np.float64]:
        """Apply to an (N, 3) array of points."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return pts @ self.matrix[:3, :3].T + self.matrix[:3, 3]

    def interpolate(self, other: Transform, alpha: float) -> Transform:
        """Linear translation / slerp rotation between self (alpha=0) and other (alpha=1)."""
        rots = Rotation.from_matrix(np.stack([self.matrix[:3, :3], other.matrix[:3, :3]]))
        m = np.eye(4)
        m[:3, :3] = Slerp([0.0, 1.0], rots)([alpha]).as_matrix()[0]
        m[:3, 3] = (1.0 - alpha) * self.matrix[:3, 3] + alpha * other.matrix[:3, 3]
        return Transform(m)

    def __repr__(self) -> str:
        x, y, z, roll, pitch, yaw = self.to_xyz_rpy()
        return (
            f"xyz=({x:.3f}, {y:.3f}, {z:.3f}) "
            f"rpy=({roll:.3f}, {pitch:.3f}, {yaw:.3f})"
        )
