"""Read point clouds and TF from MCAP bags for offline replay."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from mcap.reader import make_reader
from numpy.typing import NDArray

from .cdr import CdrReader
from .engine import SensorData
from .oracle import StampedTransform
from .transform import Transform

# sensor_msgs/PointField datatypes
_POINT_FIELD_DTYPES = {
    1: "i1",
    2: "u1",
    3: "i2",
    4: "u2",
    5: "i4",
    6: "u4",
    7: "f4",
    8: "f8",
}


@dataclass(slots=True)
class PointField:
    name: str
    offset: int
    datatype: int
    count: int


@dataclass
class OdometryBag:
    clouds: list[SensorData] = field(default_factory=list)
    transforms: list[StampedTransform] = field(default_factory=list)


def cloud_xyz(
    fields: list[PointField],
    point_step: int,
    data: bytes,
    is_bigendian: bool = False,
) -> NDArray[np.float32]:
    """Extract an (N, 3) float32 xyz array from packed PointCloud2 data."""
    by_name = {f.name: f for f in fields}
    missing = [axis for axis in ("x", "y", "z") if axis not in by_name]
    if missing:
        raise ValueError(f"PointCloud2 has no {', '.join(missing)} field")
    if point_step <= 0:
        return np.empty((0, 3), dtype=np.float32)

    order = ">" if is_bigendian else "<"
    dtype = np.dtype({
        "names": ["x", "y", "z"],
        "formats": [order + _POINT_FIELD_DTYPES[by_name[a].datatype] for a in ("x", "y", "z")],
        "offsets": [by_name[a].offset for a in ("x", "y", "z")],
        "itemsize": point_step,
    })
    n = len(data) // point_step
    packed = np.frombuffer(data, dtype=dtype, count=n)
    xyz = np.stack([packed["x"], packed["y"], packed["z"]], axis=1).astype(np.float32)
    return xyz[np.isfinite(xyz).all(axis=1)]


def parse_point_cloud(data: bytes) -> SensorData:
    r = CdrReader(data)
    stamp = r.stamp()
    frame_id = r.string()
    _height = r.uint32()
    _width = r.uint32()
    fields = []
    for _ in range(r.uint32()):
        name = r.string()
        offset = r.uint32()
        datatype = r.uint8()
        count = r.uint32()
        fields.append(PointField(name, offset, datatype, count))
    is_bigendian = r.boolean()
    point_step = r.uint32()
    _row_step = r.uint32()
    payload = r.byte_sequence()
    return SensorData(
        stamp=stamp,
        points=cloud_xyz(fields, point_step, payload, is_bigendian),
        frame_id=frame_id,
    )


def parse_tf_message(data: bytes, static: bool = False) -> list[StampedTransform]:
    r = CdrReader(data)
    transforms = []
    for _ in range(r.uint32()):
        stamp = r.stamp()
        parent = r.string()
        child = r.string()
        translation = r.float64_array(3)
        quat = r.float64_array(4)  # x, y, z, w
        transforms.append(StampedTransform(
            stamp=stamp,
            parent=parent.lstrip("/"),
            child=child.lstrip("/"),
            transform=Transform.from_translation_quaternion(translation, quat),
            static=static,
        ))
    return transforms


def read_odometry_bag(path: str | Path, cloud_topic_suffix: str = "scan_cloud") -> OdometryBag:
    """Read every point cloud on ``*cloud_topic_suffix`` plus /tf and /tf_static."""
    bag = OdometryBag()
    with open(path, "rb") as f:
        reader = make_reader(f)
        for _schema, channel, message in reader.iter_messages():
            if channel is None:
                continue
            topic = channel.topic
            if topic == "/tf":
                bag.transforms.extend(parse_tf_message(message.data))
            elif topic == "/tf_static":
                bag.transforms.extend(parse_tf_message(message.data, static=True))
            elif topic.endswith(cloud_topic_suffix):
                bag.clouds.append(parse_point_cloud(message.data))

    bag.clouds.sort(key=lambda c: c.stamp)
    bag.transforms.sort(key=lambda t: t.stamp)
    return bag
