"""Odometry front end: drives a pose estimation engine from ROS 2 point clouds and TF."""
