import struct

import numpy as np
import pytest

from conftest import CdrBuilder, packed_xyzi, point_cloud_payload
from couch_odom.bag_reader import PointField, cloud_xyz, parse_point_cloud, parse_tf_message

XYZ_FIELDS = [PointField("x", 0, 7, 1), PointField("y", 4, 7, 1), PointField("z", 8, 7, 1)]


def test_cloud_xyz_skips_extra_fields() -> None:
    data = packed_xyzi([(1.0, 2.0, 3.0, 9.0), (4.0, 5.0, 6.0, 9.0)])
    xyz = cloud_xyz(XYZ_FIELDS + [PointField("intensity", 12, 7, 1)], 16, data)
    assert xyz.dtype == np.float32
    np.testing.assert_array_equal(xyz, [[1, 2, 3], [4, 5, 6]])


def test_cloud_xyz_drops_non_finite() -> None:
    data = packed_xyzi([(1.0, 2.0, 3.0, 0.0), (float("nan"), 0.0, 0.0, 0.0), (0.0, float("inf"), 0.0, 0.0)])
    xyz = cloud_xyz(XYZ_FIELDS, 16, data)
    np.testing.assert_array_equal(xyz, [[1, 2, 3]])


def test_cloud_xyz_big_endian_doubles() -> None:
    fields = [PointField("x", 0, 8, 1), PointField("y", 8, 8, 1), PointField("z", 16, 8, 1)]
    data = struct.pack(">ddd", 0.5, -1.5, 2.0)
    np.testing.assert_allclose(cloud_xyz(fields, 24, data, is_bigendian=True), [[0.5, -1.5, 2.0]])


def test_cloud_xyz_requires_xyz() -> None:
    with pytest.raises(ValueError, match="z"):
        cloud_xyz(XYZ_FIELDS[:2], 8, b"")


def test_parse_point_cloud() -> None:
    points = [(1.0, 0.0, 0.0, 1.0), (0.0, 2.0, 0.0, 1.0), (0.0, 0.0, 3.0, 1.0)]
    data = parse_point_cloud(point_cloud_payload(100, 250_000_000, "lidar", points))
    assert data.stamp == pytest.approx(100.25)
    assert data.frame_id == "lidar"
    np.testing.assert_array_equal(data.points, [[1, 0, 0], [0, 2, 0], [0, 0, 3]])


def test_parse_tf_message() -> None:
    b = CdrBuilder().u32(2)
    b.header(5, 0, "/odom").string("base_link").f64(1.0, 2.0, 0.0).f64(0.0, 0.0, 0.0, 1.0)
    b.header(5, 0, "base_link").string("lidar").f64(0.2, 0.0, 0.3).f64(0.0, 0.0, 0.0, 1.0)

    transforms = parse_tf_message(b.payload(), static=True)
    assert [(t.parent, t.child) for t in transforms] == [("odom", "base_link"), ("base_link", "lidar")]
    assert all(t.static for t in transforms)
    assert transforms[0].stamp == pytest.approx(5.0)
    np.testing.assert_allclose(transforms[0].transform.translation, [1.0, 2.0, 0.0])
    np.testing.assert_allclose(transforms[1].transform.translation, [0.2, 0.0, 0.3])
    assert transforms[1].transform.to_xyz_rpy()[3:] == pytest.approx([0.0, 0.0, 0.0])
