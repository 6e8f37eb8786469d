import pytest

from conftest import FakeEngine
from couch_odom.engine import OdometryEngine, create_engine


def test_create_engine_from_import_path() -> None:
    engine = create_engine("conftest:FakeEngine", {"Icp/Iterations": 10})
    assert isinstance(engine, FakeEngine)
    assert engine.parameters == {"Icp/Iterations": 10}


@pytest.mark.parametrize("spec", ["conftest.FakeEngine", "conftest:", ":FakeEngine", ""])
def test_malformed_engine_path(spec: str) -> None:
    with pytest.raises(ValueError):
        create_engine(spec, {})


def test_engine_path_must_name_engine() -> None:
    with pytest.raises(TypeError):
        create_engine("conftest:make_data", {})


def test_default_capabilities() -> None:
    engine = FakeEngine()
    assert not engine.supports_local_map_snapshot()
    assert not engine.supports_reference_frame_snapshot()


def test_base_snapshots_not_implemented() -> None:
    class Minimal(FakeEngine):
        local_map = OdometryEngine.local_map
        reference_frame = OdometryEngine.reference_frame

    engine = Minimal()
    with pytest.raises(NotImplementedError):
        engine.local_map()
    with pytest.raises(NotImplementedError):
        engine.reference_frame()
