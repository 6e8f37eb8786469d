import logging
from pathlib import Path

import pytest

from couch_odom.config import OdometryConfig
from couch_odom.transform import Transform


def test_defaults() -> None:
    cfg = OdometryConfig()
    assert cfg.frame_id == "base_link"
    assert cfg.odom_frame_id == "odom"
    assert cfg.publish_null_when_lost
    assert not cfg.guess_from_tf
    assert cfg.transform_timeout == pytest.approx(0.1)


def test_from_yaml_ignores_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "odom.yaml"
    path.write_text(
        "frame_id: robot\nguess_from_tf: true\nunknown_key: 3\n"
        "parameters:\n  Odom/ResetCountdown: 4\n"
    )
    cfg = OdometryConfig.from_yaml(path)
    assert cfg.frame_id == "robot"
    assert cfg.guess_from_tf
    assert cfg.parameters == {"Odom/ResetCountdown": 4}


def test_preset_default_config() -> None:
    cfg = OdometryConfig.from_yaml("default.yaml")
    assert cfg.odometry_type == "icp"
    assert cfg.parameters["Odom/ResetCountdown"] == 5


def test_conflicting_guess_is_disabled(caplog: pytest.LogCaptureFixture) -> None:
    cfg = OdometryConfig(publish_tf=True, guess_from_tf=True)
    with caplog.at_level(logging.WARNING, logger="couch_odom"):
        resolved = cfg.resolve()
    assert not resolved.guess_from_tf
    assert resolved.guess_frame_id == "base_link"
    assert '"guess_from_tf" is disabled' in caplog.text
    assert cfg.guess_from_tf


@pytest.mark.parametrize(
    ("publish_tf", "guess_frame_id"),
    [(False, ""), (True, "base_footprint_fused")],
)
def test_guess_kept_without_conflict(publish_tf: bool, guess_frame_id: str) -> None:
    cfg = OdometryConfig(publish_tf=publish_tf, guess_from_tf=True, guess_frame_id=guess_frame_id)
    assert cfg.resolve().guess_from_tf


def test_tf_prefix() -> None:
    cfg = OdometryConfig(tf_prefix="robot1", ground_truth_frame_id="world").resolve()
    assert cfg.frame_id == "robot1/base_link"
    assert cfg.odom_frame_id == "robot1/odom"
    assert cfg.ground_truth_frame_id == "robot1/world"
    # guess frame is resolved before the prefix
    assert cfg.guess_frame_id == "base_link"


def test_config_path_expansion(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    assert OdometryConfig(config_path="engine.yaml").resolve().config_path == str(tmp_path / "engine.yaml")
    assert OdometryConfig(config_path="~/e.yaml").resolve().config_path == str(tmp_path / "home" / "e.yaml")
    assert OdometryConfig(config_path="/abs/e.yaml").resolve().config_path == "/abs/e.yaml"


def test_initial_pose_parsing() -> None:
    cfg = OdometryConfig(initial_pose="1 2 3 0 0 1.57")
    expected = Transform.from_xyz_rpy(1.0, 2.0, 3.0, 0.0, 0.0, 1.57)
    assert cfg.initial_pose_transform().allclose(expected)
    assert OdometryConfig().initial_pose_transform().is_identity()


@pytest.mark.parametrize("text", ["1 2 3", "1 2 3 a b c", "1 2 3 4 5 6 7"])
def test_malformed_initial_pose_is_identity(text: str, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger="couch_odom"):
        pose = OdometryConfig(initial_pose=text).initial_pose_transform()
    assert pose.is_identity()
    assert "Wrong initial_pose format" in caplog.text


def test_transform_timeout_disabled() -> None:
    assert OdometryConfig(wait_for_transform=False).transform_timeout == 0.0


@pytest.mark.parametrize("content", [None, "frame_id: [robot\n", "- a\n- b\n"])
def test_unusable_config_file_falls_back_to_defaults(
    content: str | None, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "odom.yaml"
    if content is not None:
        path.write_text(content)
    with caplog.at_level(logging.ERROR, logger="couch_odom"):
        cfg = OdometryConfig.from_yaml_or_default(path)
    assert cfg == OdometryConfig()
    assert "Cannot load odometry config" in caplog.text


def test_config_file_with_fallback_loads_normally(tmp_path: Path) -> None:
    path = tmp_path / "odom.yaml"
    path.write_text("frame_id: robot\n")
    assert OdometryConfig.from_yaml_or_default(path).frame_id == "robot"
