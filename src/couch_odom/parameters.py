"""Odometry engine parameters: typed defaults, file/override loading, migration.

Parameters are a flat ``{"Group/Name": value}`` mapping. Every key has a
typed default, and values coming from YAML, ROS parameters or the command
line are coerced to the default's type once, at load time.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Union

import yaml

logger = logging.getLogger(__name__)

ParamValue = Union[str, bool, int, float]
Parameters = dict[str, ParamValue]

RESET_COUNTDOWN = "Odom/ResetCountdown"
STRATEGY = "Odom/Strategy"
MIN_INLIERS = "Vis/MinInliers"
MIN_INLIERS_FLOOR = 8

# Odom/Strategy values
STRATEGY_F2M = 0
STRATEGY_F2F = 1

_ODOM_DEFAULTS: Parameters = {
    STRATEGY: STRATEGY_F2M,
    RESET_COUNTDOWN: 0,
    "Odom/Holonomic": True,
    "Odom/FillInfoData": True,
    "Odom/KeyFrameThr": 0.3,
    "Odom/ScanKeyFrameThr": 0.9,
    "Odom/ImageDecimation": 1,
    "OdomF2M/MaxSize": 2000,
    "OdomF2M/ScanMaxSize": 2000,
    "OdomF2M/ScanSubtractRadius": 0.05,
}

_STEREO_DEFAULTS: Parameters = {
    "Stereo/MaxDisparity": 128.0,
    "Stereo/OpticalFlow": True,
    "Stereo/WinWidth": 15,
    "Stereo/WinHeight": 3,
}

_VIS_DEFAULTS: Parameters = {
    MIN_INLIERS: 20,
    "Vis/FeatureType": 6,
    "Vis/MaxFeatures": 1000,
    "Vis/CorType": 0,
    "Vis/EstimationType": 1,
    "Vis/InlierDistance": 0.1,
    "Vis/MaxDepth": 0.0,
}

_ICP_DEFAULTS: Parameters = {
    "Icp/MaxCorrespondenceDistance": 0.05,
    "Icp/Iterations": 30,
    "Icp/CorrespondenceRatio": 0.1,
    "Icp/PointToPlane": True,
    "Icp/PointToPlaneK": 5,
    "Icp/VoxelSize": 0.0,
    "Icp/Epsilon": 0.0,
    "Icp/MaxTranslation": 0.2,
    "Icp/MaxRotation": 0.78,
}

# old name -> (can be migrated, new name or suggestion)
REMOVED_PARAMETERS: dict[str, tuple[bool, str]] = {
    "Odom/MinInliers": (True, MIN_INLIERS),
    "Odom/FeatureType": (True, "Vis/FeatureType"),
    "Odom/MaxFeatures": (True, "Vis/MaxFeatures"),
    "Odom/InlierDistance": (True, "Vis/InlierDistance"),
    "Odom/MaxDepth": (True, "Vis/MaxDepth"),
    "Odom/LocalHistory": (True, "OdomF2M/MaxSize"),
    "Odom/Type": (False, "Vis/FeatureType"),
    "Odom/EstimationType": (False, "Vis/EstimationType"),
    "Odom/PnPEstimation": (False, ""),
    "Icp/PointToPlaneNormalNeighbors": (True, "Icp/PointToPlaneK"),
    "Icp/MaxCorrespondences": (False, "Icp/CorrespondenceRatio"),
}

ODOMETRY_TYPES = ("rgbd", "stereo", "icp")


def parameter_groups(odometry_type: str) -> tuple[bool, bool, bool]:
    """Return (stereo, vis, icp) group flags for an odometry type."""
    if odometry_type == "rgbd":
        return False, True, False
    if odometry_type == "stereo":
        return True, True, False
    if odometry_type == "icp":
        return False, False, True
    raise ValueError(f"Unknown odometry type '{odometry_type}', expected one of {ODOMETRY_TYPES}")


def default_parameters(stereo: bool = False, vis: bool = True, icp: bool = False) -> Parameters:
    params: Parameters = dict(_ODOM_DEFAULTS)
    if stereo:
        params.update(_STEREO_DEFAULTS)
    if vis:
        params.update(_VIS_DEFAULTS)
    if icp:
        params.update(_ICP_DEFAULTS)
    return params


def coerce_value(default: ParamValue, raw: object) -> ParamValue:
    """Convert ``raw`` to the type of ``default``. Raises ValueError when impossible."""
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, (int, float)):
            return bool(raw)
        text = str(raw).strip().lower()
        if text in ("true", "1", "yes", "on"):
            return True
        if text in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"'{raw}' is not a boolean")
    if isinstance(default, int):
        if isinstance(raw, bool):
            return int(raw)
        if isinstance(raw, float):
            if not raw.is_integer():
                raise ValueError(f"'{raw}' is not an integer")
            return int(raw)
        return int(str(raw).strip())
    if isinstance(default, float):
        if isinstance(raw, bool):
            raise ValueError(f"'{raw}' is not a number")
        return float(raw)  # type: ignore[arg-type]
    return str(raw)


def format_value(value: ParamValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten(data: Mapping[str, object], prefix: str = "") -> dict[str, object]:
    flat: dict[str, object] = {}
    for key, value in data.items():
        name = f"{prefix}/{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, name))
        else:
            flat[name] = value
    return flat


def load_parameter_file(params: Parameters, path: str | Path) -> Parameters:
    """Update known parameters from a YAML file, flat or nested by group.

    A missing or unreadable file is logged and leaves ``params`` unchanged.
    """
    p = Path(path)
    if not p.exists():
        logger.error(f'Config file "{p}" not found!')
        return dict(params)

    logger.info(f"Odometry: Loading parameters from {p}")
    try:
        with open(p) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f'Cannot read config file "{p}", keeping defaults: {e}')
        return dict(params)
    if not isinstance(data, Mapping):
        logger.error(f'Config file "{p}" must contain a mapping, ignoring it')
        return dict(params)

    file_values = _flatten(data)
    updated = dict(params)
    for name, default in params.items():
        if name not in file_values:
            continue
        try:
            updated[name] = coerce_value(default, file_values[name])
        except ValueError as e:
            logger.error(f'Ignoring "{name}" from {p}: {e}')
    return updated


def apply_overrides(
    params: Parameters,
    overrides: Mapping[str, object],
    source: str = "",
) -> Parameters:
    """Apply overrides for keys that already exist in ``params``."""
    suffix = f" from {source}" if source else ""
    verb = "Update" if source else "Setting"
    updated = dict(params)
    for name, raw in overrides.items():
        if name not in updated:
            continue
        try:
            value = coerce_value(updated[name], raw)
        except ValueError as e:
            logger.error(f'Cannot set odometry parameter "{name}"{suffix}: {e}')
            continue
        logger.info(f'{verb} odometry parameter "{name}"="{format_value(value)}"{suffix}')
        updated[name] = value
    return updated


def clamp_min_inliers(params: Parameters) -> Parameters:
    updated = dict(params)
    value = updated.get(MIN_INLIERS)
    if value is not None and int(value) < MIN_INLIERS_FLOOR:
        logger.warning(f"Parameter min_inliers must be >= {MIN_INLIERS_FLOOR}, setting to {MIN_INLIERS_FLOOR}...")
        updated[MIN_INLIERS] = MIN_INLIERS_FLOOR
    return updated


def parse_arguments(argv: Sequence[str]) -> dict[str, str]:
    """Collect ``--Group/Name value`` pairs from a command line."""
    found: dict[str, str] = {}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg.startswith("--") and "/" in arg and i + 1 < len(argv):
            found[arg[2:]] = argv[i + 1]
            i += 2
        else:
            i += 1
    return found


def migrate_deprecated(params: Parameters, provided: Mapping[str, object]) -> Parameters:
    """Carry values given under removed names over to their replacements."""
    updated = dict(params)
    for old_name, (migratable, new_name) in REMOVED_PARAMETERS.items():
        if old_name not in provided:
            continue
        raw = provided[old_name]
        if migratable:
            if new_name not in updated:
                logger.warning(
                    f'Odometry: Parameter "{old_name}" was renamed to "{new_name}", '
                    f"which is not used by this odometry type. Ignoring it."
                )
                continue
            try:
                updated[new_name] = coerce_value(updated[new_name], raw)
            except ValueError as e:
                logger.error(f'Odometry: Cannot migrate "{old_name}" -> "{new_name}": {e}')
                continue
            logger.warning(
                f'Odometry: Parameter name changed: "{old_name}" -> "{new_name}". '
                f"Please update your launch file accordingly. "
                f'Value "{raw}" is still set to the new parameter name.'
            )
        elif not new_name:
            logger.error(f'Odometry: Parameter "{old_name}" doesn\'t exist anymore!')
        else:
            logger.error(
                f'Odometry: Parameter "{old_name}" doesn\'t exist anymore! '
                f'You may look at this similar parameter: "{new_name}"'
            )
    return updated


def extract_reset_countdown(params: Parameters) -> tuple[int, Parameters]:
    """Take the reset countdown out of the engine parameters.

    The supervisor owns automatic resets, so the engine receives 0.
    """
    updated = dict(params)
    countdown = max(0, int(updated.get(RESET_COUNTDOWN, 0)))
    updated[RESET_COUNTDOWN] = 0
    return countdown, updated


def build_parameters(
    odometry_type: str,
    config_path: str | Path | None = None,
    overrides: Mapping[str, object] | None = None,
    argv: Sequence[str] = (),
) -> tuple[Parameters, int]:
    """Resolve the engine parameters and the reset countdown.

    Order: defaults, parameter file, node overrides, command line arguments,
    then deprecated-name migration.
    """
    stereo, vis, icp = parameter_groups(odometry_type)
    params = default_parameters(stereo=stereo, vis=vis, icp=icp)
    if config_path:
        params = load_parameter_file(params, config_path)
    overrides = dict(overrides or {})
    params = apply_overrides(params, overrides)
    params = clamp_min_inliers(params)
    params = apply_overrides(params, parse_arguments(argv), source="arguments")
    params = migrate_deprecated(params, overrides)
    countdown, params = extract_reset_countdown(params)
    return params, countdown
