import logging
import math

import numpy as np
import pytest

from ..bands import linear_sweep, log_sweep, standard_sweep
from ..config import SolverConfig
from ..errors import BasstraceError, ConfigurationError, GeometryError
from ..logging_config import setup_logging
from ..materials import Material, absorption_of, builtin_library


def test_defaults_and_key() -> None:
    cfg = SolverConfig()
    assert cfg.c == 343.0
    assert cfg.pruning == "permissive"
    assert math.isinf(cfg.max_distance)
    assert SolverConfig(*cfg.key()) == cfg
    assert hash(cfg.key()) == hash(SolverConfig().key())
    assert cfg.with_(max_order=5).max_order == 5


@pytest.mark.parametrize("kwargs", [
    dict(c=0.0),
    dict(c=float("inf")),
    dict(max_order=-1),
    dict(max_order=1.5),
    dict(max_order=True),
    dict(max_order=float("inf")),
    dict(workers=1.5),
    dict(chunk_size="4"),
    dict(max_distance=0.0),
    dict(pruning="greedy"),
    dict(air_db_per_m=-0.1),
    dict(workers=-2),
    dict(chunk_size=0),
])
def test_invalid_config(kwargs) -> None:
    with pytest.raises(ConfigurationError):
        SolverConfig(**kwargs)


def test_whole_number_counts_become_ints() -> None:
    cfg = SolverConfig(max_order=2.0, workers=np.int64(3), chunk_size=16.0)
    assert cfg.max_order == 2 and type(cfg.max_order) is int
    assert type(cfg.workers) is int and type(cfg.chunk_size) is int
    assert cfg == SolverConfig(max_order=2, workers=3, chunk_size=16)


def test_error_hierarchy() -> None:
    assert issubclass(GeometryError, BasstraceError)
    assert issubclass(ConfigurationError, BasstraceError)


def test_sweeps() -> None:
    assert np.allclose(log_sweep(20.0, 160.0, 1), [20.0, 40.0, 80.0, 160.0])
    assert np.allclose(linear_sweep(20.0, 25.0, 1.0), [20, 21, 22, 23, 24, 25])
    third = standard_sweep("third")
    assert third[0] == pytest.approx(20.0) and third[-1] == pytest.approx(200.0, rel=0.05)
    assert standard_sweep("sub")[0] == pytest.approx(15.0)
    assert len(standard_sweep("anything")) == len(standard_sweep("bass"))
    with pytest.raises(ConfigurationError):
        log_sweep(0.0, 100.0, 3)
    with pytest.raises(ConfigurationError):
        linear_sweep(50.0, 20.0, 1.0)


def test_materials() -> None:
    lib = builtin_library()
    assert "Concrete" in lib
    assert absorption_of("Concrete") == pytest.approx(0.01)
    assert all(0.0 <= m.absorption <= 1.0 for m in lib.values())
    with pytest.raises(GeometryError):
        absorption_of("Unobtainium")
    with pytest.raises(GeometryError):
        Material("bad", 1.2)


def test_setup_logging_is_idempotent() -> None:
    logger = setup_logging(logging.DEBUG)
    setup_logging(logging.DEBUG)
    assert logger.name == "basstrace"
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
