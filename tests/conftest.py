"""Shared fixtures: a scripted engine, an in-memory TF tree and CDR message builders."""

from __future__ import annotations

import struct
from collections.abc import Iterable

import numpy as np
import pytest

from couch_odom.engine import OdometryEngine, OdometryInfo, SensorData
from couch_odom.guess import MotionGuessProvider
from couch_odom.oracle import TransformHistory
from couch_odom.supervisor import TrackingSupervisor
from couch_odom.transform import Transform

STEP = Transform.from_xyz_rpy(0.1, 0.0, 0.0, 0.0, 0.0, 0.0)


class FakeEngine(OdometryEngine):
    """Engine whose successes/failures follow a script (True = success).

    Successes advance the pose by the guess, or by STEP without one.
    Failures leave the pose untouched. Once the script runs out every
    update succeeds.
    """

    def __init__(
        self,
        parameters=None,
        outcomes: Iterable[bool] = (),
        variance: float = 0.01,
        local_map: np.ndarray | None = None,
        reference_frame: np.ndarray | None = None,
    ) -> None:
        super().__init__(parameters)
        self.outcomes = list(outcomes)
        self.variance = variance
        self.calls: list[tuple[SensorData, Transform | None]] = []
        self.resets: list[Transform | None] = []
        self._pose = Transform.identity()
        self._previous_stamp = 0.0
        self._velocity: Transform | None = None
        self._local_map = local_map
        self._reference_frame = reference_frame

    def process(self, data, guess=None):
        self.calls.append((data, guess))
        ok = self.outcomes.pop(0) if self.outcomes else True
        if not ok:
            return None, OdometryInfo(inliers=3, variance=0.0, lost=True)
        motion = guess if guess is not None else STEP
        self._pose = self._pose @ motion
        self._previous_stamp = data.stamp
        self._velocity = motion
        return self._pose, OdometryInfo(inliers=120, variance=self.variance, icp_inliers_ratio=0.8)

    def reset(self, pose=None):
        self.resets.append(pose)
        self._pose = pose if pose is not None else Transform.identity()
        self._previous_stamp = 0.0
        self._velocity = None

    @property
    def pose(self):
        return self._pose

    @property
    def previous_stamp(self):
        return self._previous_stamp

    @previous_stamp.setter
    def previous_stamp(self, value: float) -> None:
        self._previous_stamp = value

    @property
    def previous_velocity(self):
        return self._velocity

    def supports_local_map_snapshot(self):
        return self._local_map is not None

    def supports_reference_frame_snapshot(self):
        return self._reference_frame is not None

    def local_map(self):
        return self._local_map

    def reference_frame(self):
        return self._reference_frame


class CdrBuilder:
    """Little-endian CDR payload writer for building test messages."""

    def __init__(self) -> None:
        self.buf = bytearray()

    def _align(self, n: int) -> None:
        self.buf += b"\x00" * (-len(self.buf) % n)

    def u8(self, v: int) -> CdrBuilder:
        self.buf += bytes([v])
        return self

    def u32(self, v: int) -> CdrBuilder:
        self._align(4)
        self.buf += struct.pack("<I", v)
        return self

    def i32(self, v: int) -> CdrBuilder:
        self._align(4)
        self.buf += struct.pack("<i", v)
        return self

    def f64(self, *vs: float) -> CdrBuilder:
        for v in vs:
            self._align(8)
            self.buf += struct.pack("<d", v)
        return self

    def string(self, s: str) -> CdrBuilder:
        encoded = s.encode("utf-8") + b"\x00"
        self.u32(len(encoded))
        self.buf += encoded
        return self

    def blob(self, data: bytes) -> CdrBuilder:
        self.u32(len(data))
        self.buf += data
        return self

    def header(self, sec: int, nsec: int, frame_id: str) -> CdrBuilder:
        return self.i32(sec).u32(nsec).string(frame_id)

    def payload(self) -> bytes:
        return b"\x00\x01\x00\x00" + bytes(self.buf)


def packed_xyzi(points: list[tuple[float, float, float, float]]) -> bytes:
    return b"".join(struct.pack("<ffff", *p) for p in points)


def point_cloud_payload(sec: int, nsec: int, frame_id: str, points: list[tuple[float, float, float, float]]) -> bytes:
    """CDR PointCloud2 with float32 x, y, z, intensity fields."""
    b = CdrBuilder().header(sec, nsec, frame_id).u32(1).u32(len(points))
    b.u32(4)
    for name, offset in (("x", 0), ("y", 4), ("z", 8), ("intensity", 12)):
        b.string(name).u32(offset).u8(7).u32(1)
    b.u8(0).u32(16).u32(16 * len(points)).blob(packed_xyzi(points)).u8(1)
    return b.payload()


def make_data(stamp: float, n: int = 10) -> SensorData:
    rng = np.random.default_rng(int(stamp * 1000))
    return SensorData(stamp=stamp, points=rng.random((n, 3), dtype=np.float32), frame_id="lidar")


def make_supervisor(
    engine: FakeEngine,
    oracle: TransformHistory | None = None,
    reset_countdown: int = 3,
    guess_from_tf: bool = False,
    ground_truth_frame_id: str = "",
) -> TrackingSupervisor:
    oracle = oracle if oracle is not None else TransformHistory()
    provider = MotionGuessProvider(
        oracle,
        odom_frame_id="odom",
        guess_frame_id="base_link",
        enabled=guess_from_tf,
        timeout=0.0,
    )
    return TrackingSupervisor(
        engine,
        oracle,
        provider,
        odom_frame_id="odom",
        frame_id="base_link",
        ground_truth_frame_id=ground_truth_frame_id,
        reset_countdown=reset_countdown,
        transform_timeout=0.0,
    )


@pytest.fixture
def oracle() -> TransformHistory:
    return TransformHistory()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
