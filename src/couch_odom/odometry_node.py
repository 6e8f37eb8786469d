"""ROS2 odometry node: point clouds in, odometry + TF out.

Wraps a TrackingSupervisor around the configured engine. Engine parameters
("Odom/ResetCountdown", "Icp/VoxelSize", ...) can be set as node parameters,
in the YAML file named by ``config_path`` or on the command line as
``--Group/Name value``.
"""

from __future__ import annotations

import logging
import sys

import numpy as np
import rclpy
from diagnostic_msgs.msg import DiagnosticArray
from geometry_msgs.msg import PoseStamped
from nav_msgs.msg import Odometry
from rclpy.logging import LoggingSeverity
from rclpy.node import Node
from rclpy.qos import HistoryPolicy, QoSProfile, ReliabilityPolicy
from rclpy.utilities import remove_ros_args
from sensor_msgs.msg import PointCloud2
from std_srvs.srv import Empty
from tf2_ros import Buffer, TransformBroadcaster, TransformListener

from .config import OdometryConfig
from .engine import create_engine
from .parameters import REMOVED_PARAMETERS, build_parameters, default_parameters, parameter_groups
from .result import CycleResult
from .ros_conversions import (
    Tf2Oracle,
    cloud_to_sensor_data,
    info_to_status,
    make_header,
    odometry_to_msg,
    points_to_cloud,
    transform_from_pose_msg,
    transform_to_stamped,
)
from .supervisor import TrackingSupervisor

_SENSOR_QOS = QoSProfile(
    reliability=ReliabilityPolicy.BEST_EFFORT,
    history=HistoryPolicy.KEEP_LAST,
    depth=5,
)

_ROS_SEVERITY = {
    "debug": LoggingSeverity.DEBUG,
    "info": LoggingSeverity.INFO,
    "warning": LoggingSeverity.WARN,
    "error": LoggingSeverity.ERROR,
}


class OdometryNode(Node):  # type: ignore[misc]
    def __init__(self, argv: list[str] | None = None, **kwargs) -> None:
        # Engine parameters are only known by name at runtime
        super().__init__(
            "odometry",
            allow_undeclared_parameters=True,
            automatically_declare_parameters_from_overrides=True,
            **kwargs,
        )

        # Node parameters override the optional YAML config file
        config_file = self._param("config_file", "")
        defaults = OdometryConfig.from_yaml_or_default(config_file) if config_file else OdometryConfig()
        config = OdometryConfig(
            frame_id=self._param("frame_id", defaults.frame_id),
            odom_frame_id=self._param("odom_frame_id", defaults.odom_frame_id),
            ground_truth_frame_id=self._param("ground_truth_frame_id", defaults.ground_truth_frame_id),
            guess_frame_id=self._param("guess_frame_id", defaults.guess_frame_id),
            publish_tf=self._param("publish_tf", defaults.publish_tf),
            tf_prefix=self._param("tf_prefix", defaults.tf_prefix),
            wait_for_transform=self._param("wait_for_transform", defaults.wait_for_transform),
            wait_for_transform_duration=self._param(
                "wait_for_transform_duration", defaults.wait_for_transform_duration
            ),
            initial_pose=self._param("initial_pose", defaults.initial_pose),
            config_path=self._param("config_path", defaults.config_path),
            publish_null_when_lost=self._param("publish_null_when_lost", defaults.publish_null_when_lost),
            guess_from_tf=self._param("guess_from_tf", defaults.guess_from_tf),
            odometry_type=self._param("odometry_type", defaults.odometry_type),
            engine=self._param("engine", defaults.engine) or defaults.engine,
            parameters={**defaults.parameters, **self._engine_overrides(defaults.odometry_type)},
        )
        self.config = config.resolve()
        if not self.config.engine:
            raise ValueError('No odometry engine configured, set the "engine" parameter')

        parameters, reset_countdown = build_parameters(
            self.config.odometry_type,
            config_path=self.config.config_path or None,
            overrides=self.config.parameters,
            argv=argv or [],
        )
        self.engine = create_engine(self.config.engine, parameters)
        initial_pose = self.config.initial_pose_transform()
        if not initial_pose.is_identity():
            self.engine.reset(initial_pose)

        self._tf_buffer = Buffer()
        # Own thread so TF keeps arriving while a lookup waits inside _on_cloud
        self._tf_listener = TransformListener(self._tf_buffer, self, spin_thread=True)
        self._tf_broadcaster = TransformBroadcaster(self)
        self.supervisor = TrackingSupervisor.from_config(
            self.config, self.engine, Tf2Oracle(self._tf_buffer), reset_countdown=reset_countdown
        )

        self._odom_pub = self.create_publisher(Odometry, "odom", 1)
        self._info_pub = self.create_publisher(DiagnosticArray, "odom_info", 1)
        self._local_map_pub = self.create_publisher(PointCloud2, "odom_local_map", 1)
        self._local_scan_map_pub = self.create_publisher(PointCloud2, "odom_local_scan_map", 1)
        self._last_frame_pub = self.create_publisher(PointCloud2, "odom_last_frame", 1)

        self.create_subscription(PointCloud2, "scan_cloud", self._on_cloud, _SENSOR_QOS)
        self.create_subscription(PoseStamped, "reset_odom_to_pose", self._on_reset_to_pose, 1)

        self.create_service(Empty, "reset_odom", self._srv_reset)
        self.create_service(Empty, "pause_odom", self._srv_pause)
        self.create_service(Empty, "resume_odom", self._srv_resume)
        for level in ("debug", "info", "warning", "error"):
            self.create_service(Empty, f"~/log_{level}", self._make_log_level_srv(level))

        self.get_logger().info(
            f"Odometry ready — {self.config.odom_frame_id} → {self.config.frame_id}, "
            f"engine={self.config.engine}, reset countdown={reset_countdown}, "
            f"guess_from_tf={self.config.guess_from_tf}, publish_tf={self.config.publish_tf}"
        )

    def destroy_node(self) -> None:
        self._tf_listener.unregister()
        super().destroy_node()

    def _param(self, name: str, default):
        if self.has_parameter(name):
            return self.get_parameter(name).value
        return self.declare_parameter(name, default).value

    def _engine_overrides(self, fallback_type: str) -> dict[str, object]:
        """Engine parameters (current and removed names) given to this node."""
        odometry_type = self._param("odometry_type", fallback_type)
        stereo, vis, icp = parameter_groups(odometry_type)
        names = set(default_parameters(stereo=stereo, vis=vis, icp=icp)) | set(REMOVED_PARAMETERS)
        overrides: dict[str, object] = {}
        for name in sorted(names):
            if self.has_parameter(name):
                value = self.get_parameter(name).value
                if value is not None:
                    overrides[name] = value
        return overrides

    # ── Sensor data ──────────────────────────────────────────────────────

    def _on_cloud(self, msg: PointCloud2) -> None:
        result = self.supervisor.process(cloud_to_sensor_data(msg))
        if result is None:
            return
        if result.pose is not None:
            self._publish_tracked(result)
        elif self.config.publish_null_when_lost:
            self._odom_pub.publish(
                odometry_to_msg(result, self.config.odom_frame_id, self.config.frame_id)
            )

        if self._info_pub.get_subscription_count():
            info = DiagnosticArray()
            info.header = make_header(result.stamp, self.config.odom_frame_id)
            info.status = [info_to_status(result)]
            self._info_pub.publish(info)

    def _publish_tracked(self, result: CycleResult) -> None:
        odom_frame = self.config.odom_frame_id
        if self.config.publish_tf:
            self._tf_broadcaster.sendTransform(
                transform_to_stamped(result.pose, result.stamp, odom_frame, self.config.frame_id)
            )

        if self._odom_pub.get_subscription_count():
            self._odom_pub.publish(odometry_to_msg(result, odom_frame, self.config.frame_id))

        if self._local_map_pub.get_subscription_count():
            local_map = self.supervisor.local_map_snapshot()
            if local_map is not None:
                self._local_map_pub.publish(points_to_cloud(local_map, result.stamp, odom_frame))

        if self._last_frame_pub.get_subscription_count():
            last_frame = self.supervisor.reference_frame_snapshot(result.pose)
            if last_frame is not None and len(last_frame):
                self._last_frame_pub.publish(points_to_cloud(last_frame, result.stamp, odom_frame))

        scan_map = result.info.local_scan_map
        if self._local_scan_map_pub.get_subscription_count() and len(scan_map):
            self._local_scan_map_pub.publish(
                points_to_cloud(np.asarray(scan_map), result.stamp, odom_frame)
            )

    # ── Commands ─────────────────────────────────────────────────────────

    def _on_reset_to_pose(self, msg: PoseStamped) -> None:
        x, y, z, roll, pitch, yaw = transform_from_pose_msg(msg.pose).to_xyz_rpy()
        self.supervisor.reset_to_pose(x, y, z, roll, pitch, yaw)

    def _srv_reset(self, req, resp):
        self.supervisor.reset()
        return resp

    def _srv_pause(self, req, resp):
        self.supervisor.pause()
        return resp

    def _srv_resume(self, req, resp):
        self.supervisor.resume()
        return resp

    def _make_log_level_srv(self, level: str):
        def _srv(req, resp):
            self.get_logger().info(f"Set log level to {level.capitalize()}")
            self.get_logger().set_level(_ROS_SEVERITY[level])
            self.supervisor.set_log_level(level)
            return resp
        return _srv


def main(args=None) -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] [%(name)s]: %(message)s")
    rclpy.init(args=args)
    argv = remove_ros_args(args if args is not None else sys.argv)[1:]
    node = OdometryNode(argv=argv)
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == "__main__":
    main()
