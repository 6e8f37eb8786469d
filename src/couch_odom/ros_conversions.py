"""Conversions between couch_odom types and ROS 2 messages, plus the tf2 oracle."""

from __future__ import annotations

import logging

import numpy as np
import tf2_ros
from builtin_interfaces.msg import Time as RosTime
from diagnostic_msgs.msg import DiagnosticStatus, KeyValue
from geometry_msgs.msg import Pose, TransformStamped
from nav_msgs.msg import Odometry
from numpy.typing import NDArray
from rclpy.duration import Duration
from rclpy.time import Time
from sensor_msgs.msg import PointCloud2, PointField
from sensor_msgs_py import point_cloud2
from std_msgs.msg import Header

from .engine import SensorData
from .oracle import TransformOracle
from .result import BAD_COVARIANCE, CycleResult, diagonal_covariance, velocity_components
from .transform import Transform

logger = logging.getLogger(__name__)


def stamp_to_msg(stamp: float) -> RosTime:
    return Time(nanoseconds=int(round(stamp * 1e9))).to_msg()


def stamp_from_msg(msg: RosTime) -> float:
    return msg.sec + msg.nanosec * 1e-9


def make_header(stamp: float, frame_id: str) -> Header:
    header = Header()
    header.stamp = stamp_to_msg(stamp)
    header.frame_id = frame_id
    return header


def transform_from_msg(msg) -> Transform:
    """geometry_msgs/Transform -> Transform."""
    t, q = msg.translation, msg.rotation
    return Transform.from_translation_quaternion([t.x, t.y, t.z], [q.x, q.y, q.z, q.w])


def transform_from_pose_msg(msg: Pose) -> Transform:
    p, q = msg.position, msg.orientation
    return Transform.from_translation_quaternion([p.x, p.y, p.z], [q.x, q.y, q.z, q.w])


def transform_to_stamped(pose: Transform, stamp: float, parent: str, child: str) -> TransformStamped:
    tf = TransformStamped()
    tf.header = make_header(stamp, parent)
    tf.child_frame_id = child
    x, y, z = (float(v) for v in pose.translation)
    qx, qy, qz, qw = (float(v) for v in pose.quaternion)
    tf.transform.translation.x = x
    tf.transform.translation.y = y
    tf.transform.translation.z = z
    tf.transform.rotation.x = qx
    tf.transform.rotation.y = qy
    tf.transform.rotation.z = qz
    tf.transform.rotation.w = qw
    return tf


def _flat_covariance(cov: NDArray[np.float64]) -> list[float]:
    return [float(v) for v in cov.reshape(36)]


def odometry_to_msg(result: CycleResult, odom_frame_id: str, frame_id: str) -> Odometry:
    """Odometry message for a cycle; a lost cycle gives a null pose with bad covariance."""
    odom = Odometry()
    odom.header = make_header(result.stamp, odom_frame_id)
    odom.child_frame_id = frame_id

    if result.pose is None:
        bad = _flat_covariance(diagonal_covariance(BAD_COVARIANCE))
        odom.pose.covariance = bad
        odom.twist.covariance = bad
        return odom

    x, y, z = (float(v) for v in result.pose.translation)
    qx, qy, qz, qw = (float(v) for v in result.pose.quaternion)
    odom.pose.pose.position.x = x
    odom.pose.pose.position.y = y
    odom.pose.pose.position.z = z
    odom.pose.pose.orientation.x = qx
    odom.pose.pose.orientation.y = qy
    odom.pose.pose.orientation.z = qz
    odom.pose.pose.orientation.w = qw
    odom.pose.covariance = _flat_covariance(result.pose_covariance())

    linear, angular = velocity_components(result.velocity)
    odom.twist.twist.linear.x, odom.twist.twist.linear.y, odom.twist.twist.linear.z = (float(v) for v in linear)
    odom.twist.twist.angular.x, odom.twist.twist.angular.y, odom.twist.twist.angular.z = (float(v) for v in angular)
    odom.twist.covariance = _flat_covariance(result.twist_covariance())
    return odom


def info_to_status(result: CycleResult, name: str = "odometry") -> DiagnosticStatus:
    info = result.info
    status = DiagnosticStatus()
    status.name = name
    if result.lost:
        status.level = DiagnosticStatus.ERROR
        status.message = "lost"
    else:
        status.level = DiagnosticStatus.OK
        status.message = "tracking"
    values = {
        "inliers": str(info.inliers),
        "icp_inliers_ratio": f"{info.icp_inliers_ratio:f}",
        "variance": f"{info.variance:f}",
        "processing_time": f"{result.processing_time:f}",
        "lost": "true" if result.lost else "false",
        "auto_reset": "true" if result.auto_reset else "false",
    }
    status.values = [KeyValue(key=k, value=v) for k, v in values.items()]
    return status


_NORMAL_FIELDS = [
    PointField(name=name, offset=4 * i, datatype=PointField.FLOAT32, count=1)
    for i, name in enumerate(("x", "y", "z", "normal_x", "normal_y", "normal_z"))
]


def points_to_cloud(points: NDArray[np.float32], stamp: float, frame_id: str) -> PointCloud2:
    """(N, 3) points -> xyz PointCloud2, (N, 6) points -> xyz + normals PointCloud2."""
    pts = np.asarray(points, dtype=np.float32)
    header = make_header(stamp, frame_id)
    if pts.ndim == 2 and pts.shape[1] >= 6:
        return point_cloud2.create_cloud(header, _NORMAL_FIELDS, np.ascontiguousarray(pts[:, :6]))
    xyz = pts[:, :3] if pts.ndim == 2 and pts.shape[1] >= 3 else pts.reshape(-1, 3)
    return point_cloud2.create_cloud_xyz32(header, xyz)


def cloud_to_sensor_data(msg: PointCloud2) -> SensorData:
    xyz = point_cloud2.read_points_numpy(msg, field_names=("x", "y", "z"), skip_nans=True)
    return SensorData(
        stamp=stamp_from_msg(msg.header.stamp),
        points=np.asarray(xyz, dtype=np.float32).reshape(-1, 3),
        frame_id=msg.header.frame_id,
    )


class Tf2Oracle(TransformOracle):
    """Transform lookups on a ``tf2_ros.Buffer`` fed by a TransformListener."""

    def __init__(self, buffer: tf2_ros.Buffer) -> None:
        self.buffer = buffer

    def lookup(
        self,
        parent: str,
        child: str,
        stamp: float,
        timeout: float = 0.0,
    ) -> Transform | None:
        query_time = Time(nanoseconds=int(round(stamp * 1e9))) if stamp > 0.0 else Time()
        try:
            if timeout > 0.0 and stamp > 0.0:
                tf = self.buffer.lookup_transform(
                    parent, child, query_time, timeout=Duration(seconds=timeout)
                )
            else:
                tf = self.buffer.lookup_transform(parent, child, query_time)
        except tf2_ros.TransformException as e:
            logger.warning(
                f"Could not get transform from {parent} to {child} (stamp={stamp:f}) "
                f'after {timeout:f} seconds ("wait_for_transform_duration"={timeout:f})! Error="{e}"'
            )
            return None
        return transform_from_msg(tf.transform)
