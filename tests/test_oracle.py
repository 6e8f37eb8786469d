import pytest

from couch_odom.oracle import StampedTransform, TransformHistory
from couch_odom.transform import Transform


def _xy(x: float, y: float = 0.0, yaw: float = 0.0) -> Transform:
    return Transform.from_xyz_rpy(x, y, 0.0, 0.0, 0.0, yaw)


@pytest.fixture
def history() -> TransformHistory:
    h = TransformHistory()
    h.add_transform("odom", "base_link", 1.0, _xy(0.0))
    h.add_transform("odom", "base_link", 2.0, _xy(2.0, yaw=0.4))
    h.add_transform("base_link", "lidar", 0.0, _xy(0.5), static=True)
    return h


def test_exact_sample(history: TransformHistory) -> None:
    assert history.lookup("odom", "base_link", 2.0).allclose(_xy(2.0, yaw=0.4))


def test_interpolates_between_samples(history: TransformHistory) -> None:
    assert history.lookup("odom", "base_link", 1.5).allclose(_xy(1.0, yaw=0.2))


def test_zero_stamp_is_latest(history: TransformHistory) -> None:
    assert history.lookup("odom", "base_link", 0.0).allclose(_xy(2.0, yaw=0.4))


def test_no_extrapolation(history: TransformHistory) -> None:
    assert history.lookup("odom", "base_link", 2.5) is None
    assert history.lookup("odom", "base_link", 0.5) is None


def test_tolerance_allows_small_extrapolation() -> None:
    h = TransformHistory(tolerance=0.1)
    h.add_transform("odom", "base_link", 1.0, _xy(1.0))
    assert h.lookup("odom", "base_link", 1.05).allclose(_xy(1.0))
    assert h.lookup("odom", "base_link", 0.95).allclose(_xy(1.0))
    assert h.lookup("odom", "base_link", 1.2) is None


def test_inverse_lookup(history: TransformHistory) -> None:
    tf = history.lookup("base_link", "odom", 2.0)
    assert tf.allclose(_xy(2.0, yaw=0.4).inverse())


def test_chain_through_static_edge(history: TransformHistory) -> None:
    tf = history.lookup("odom", "lidar", 2.0)
    assert tf.allclose(_xy(2.0, yaw=0.4) @ _xy(0.5))


def test_unknown_frames(history: TransformHistory) -> None:
    assert history.lookup("map", "base_link", 1.0) is None
    assert history.lookup("odom", "odom", 1.0).is_identity()


def test_disconnected_frames(history: TransformHistory) -> None:
    history.add_transform("map", "world", 0.0, Transform.identity(), static=True)
    assert history.lookup("map", "base_link", 1.0) is None


def test_out_of_order_inserts() -> None:
    h = TransformHistory()
    h.extend([
        StampedTransform(3.0, "odom", "base_link", _xy(3.0)),
        StampedTransform(1.0, "odom", "base_link", _xy(1.0)),
        StampedTransform(2.0, "odom", "base_link", _xy(2.0)),
    ])
    assert len(h) == 1
    assert h.lookup("odom", "base_link", 1.5).allclose(_xy(1.5))
    assert h.lookup("odom", "base_link", 2.5).allclose(_xy(2.5))
