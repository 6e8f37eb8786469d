"""Odometry launch: couch_odom node on a point cloud topic.

Engine selection via ODOM_ENGINE env var ("package.module:ClassName").
Engine parameters come from configs/engine_icp.yaml unless ODOM_ENGINE_CONFIG
points elsewhere.
"""

import os
from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import EnvironmentVariable, LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description():
    config_dir = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        "configs",
    )
    node_params = os.path.join(config_dir, "default.yaml")
    engine_params = os.path.join(config_dir, "engine_icp.yaml")

    engine_arg = DeclareLaunchArgument(
        "engine",
        default_value=EnvironmentVariable("ODOM_ENGINE", default_value=""),
    )
    engine_config_arg = DeclareLaunchArgument(
        "engine_config",
        default_value=EnvironmentVariable("ODOM_ENGINE_CONFIG", default_value=engine_params),
    )
    cloud_topic_arg = DeclareLaunchArgument(
        "cloud_topic",
        default_value=EnvironmentVariable("ODOM_CLOUD_TOPIC", default_value="/lidar/points"),
    )
    reset_countdown_arg = DeclareLaunchArgument("reset_countdown", default_value="5")
    guess_frame_arg = DeclareLaunchArgument("guess_frame_id", default_value="")

    odometry = Node(
        package="couch_odom",
        executable="couch-odom-node",
        name="odometry",
        output="screen",
        parameters=[
            {
                "config_file": node_params,
                "engine": LaunchConfiguration("engine"),
                "config_path": LaunchConfiguration("engine_config"),
                "guess_frame_id": LaunchConfiguration("guess_frame_id"),
                "Odom/ResetCountdown": LaunchConfiguration("reset_countdown"),
            },
        ],
        remappings=[("scan_cloud", LaunchConfiguration("cloud_topic"))],
    )

    return LaunchDescription([
        engine_arg,
        engine_config_arg,
        cloud_topic_arg,
        reset_countdown_arg,
        guess_frame_arg,
        odometry,
    ])
