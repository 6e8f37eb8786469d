from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

import numpy as np

from .bag_reader import read_odometry_bag
from .config import OdometryConfig
from .dashboard import plot_dashboard
from .engine import SensorData, create_engine
from .oracle import TransformHistory
from .parameters import build_parameters
from .result import ReplayResult
from .supervisor import TrackingSupervisor


def replay(supervisor: TrackingSupervisor, clouds: Iterable[SensorData]) -> ReplayResult:
    """Feed every cloud through the supervisor and collect the trajectory."""
    times: list[float] = []
    positions: list[np.ndarray] = []
    yaws: list[float] = []
    lost: list[bool] = []
    inliers: list[int] = []
    variances: list[float] = []
    processing_times: list[float] = []
    reset_times: list[float] = []
    skipped = 0

    for data in clouds:
        result = supervisor.process(data)
        if result is None:
            skipped += 1
            continue
        times.append(result.stamp)
        lost.append(result.lost)
        inliers.append(result.info.inliers)
        variances.append(result.info.variance)
        processing_times.append(result.processing_time)
        if result.pose is None:
            positions.append(np.full(3, np.nan))
            yaws.append(np.nan)
        else:
            positions.append(result.pose.translation)
            yaws.append(result.pose.to_xyz_rpy()[5])
        if result.auto_reset:
            reset_times.append(result.stamp)

    return ReplayResult(
        times=np.asarray(times, dtype=np.float64),
        positions=np.asarray(positions, dtype=np.float64).reshape(-1, 3),
        yaws=np.asarray(yaws, dtype=np.float64),
        lost=np.asarray(lost, dtype=bool),
        inliers=np.asarray(inliers, dtype=np.int64),
        variances=np.asarray(variances, dtype=np.float64),
        processing_times=np.asarray(processing_times, dtype=np.float64),
        reset_times=np.asarray(reset_times, dtype=np.float64),
        skipped=skipped,
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Replay point clouds from an MCAP bag through odometry")
    parser.add_argument("bag", type=Path, help="Path to MCAP bag file")
    parser.add_argument("--config", "-c", default="default.yaml", help="Odometry config YAML")
    parser.add_argument("--engine", default=None, help="Engine as package.module:ClassName (overrides config)")
    parser.add_argument("--cloud-topic", default="scan_cloud", help="Point cloud topic suffix")
    parser.add_argument("--tf-tolerance", type=float, default=0.05, help="Max TF extrapolation (s)")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Output PNG path")
    parser.add_argument("--no-show", action="store_true", help="Don't show interactive plot")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    args, engine_args = parser.parse_known_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("couch_odom").setLevel(args.log_level.upper())

    config = OdometryConfig.from_yaml(args.config)
    if args.engine:
        config.engine = args.engine
    config = config.resolve()
    if not config.engine:
        print("ERROR: No engine configured (set 'engine' in the config or pass --engine).", file=sys.stderr)
        sys.exit(1)

    print(f"Reading bag: {args.bag}")
    bag = read_odometry_bag(args.bag, cloud_topic_suffix=args.cloud_topic)
    print(f"  Clouds:     {len(bag.clouds)}")
    print(f"  Transforms: {len(bag.transforms)}")
    if not bag.clouds:
        print("ERROR: No point clouds in the bag.", file=sys.stderr)
        sys.exit(1)

    parameters, reset_countdown = build_parameters(
        config.odometry_type,
        config_path=config.config_path or None,
        overrides=config.parameters,
        argv=engine_args,
    )
    engine = create_engine(config.engine, parameters)
    initial_pose = config.initial_pose_transform()
    if not initial_pose.is_identity():
        engine.reset(initial_pose)

    oracle = TransformHistory(tolerance=args.tf_tolerance)
    oracle.extend(bag.transforms)
    supervisor = TrackingSupervisor.from_config(config, engine, oracle, reset_countdown=reset_countdown)

    result = replay(supervisor, bag.clouds)

    n = len(result.times)
    print(f"\nProcessed {n} clouds ({result.skipped} skipped)")
    if n:
        print(f"  Lost:           {int(result.lost.sum())} ({100.0 * result.lost.mean():.1f}%)")
        print(f"  Auto resets:    {len(result.reset_times)}")
        print(f"  Mean update:    {1000.0 * result.processing_times.mean():.1f} ms")
    tracked = ~result.lost
    if tracked.any():
        final_pos = result.positions[tracked][-1]
        print(f"  Final position: ({final_pos[0]:.2f}, {final_pos[1]:.2f}, {final_pos[2]:.2f}) m")

    output_path = args.output or args.bag.with_suffix(".png")
    plot_dashboard(result, save_path=output_path, show=not args.no_show)
    print(f"\nDashboard saved to: {output_path}")


if __name__ == "__main__":
    main()
