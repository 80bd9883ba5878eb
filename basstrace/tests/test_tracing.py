import logging
import math

import numpy as np
import pytest

from ..config import SolverConfig
from ..errors import ConfigurationError
from ..geometry import extrude, half_space, shoebox
from ..tracing import Source, build_image_tree, enumerate_paths, trace_preview_paths


SRC = Source((1.0, 1.0, 1.2))
LIS = (3.0, 2.0, 1.2)
L_PLAN = [(0, 0), (4, 0), (4, 2), (2, 2), (2, 4), (0, 4)]


def _room():
    return shoebox(4.0, 3.0, 2.5, absorption=0.2)


def test_half_space_direct_and_reflected() -> None:
    room = half_space(absorption=0.25)
    paths = enumerate_paths(room, Source((0.0, 0.0, 1.0)), (2.0, 0.0, 1.0), SolverConfig(max_order=3))
    assert [p.order for p in paths] == [0, 1]
    direct, refl = paths
    assert direct.length == pytest.approx(2.0)
    assert direct.attenuation == 1.0
    assert refl.length == pytest.approx(math.sqrt(8.0))
    assert refl.attenuation == pytest.approx(0.75)
    assert np.allclose(refl.image, (0.0, 0.0, -1.0))
    assert np.allclose(refl.points[1], (1.0, 0.0, 0.0))


def test_full_absorption_silences_reflections() -> None:
    room = shoebox(4.0, 3.0, 2.5, absorption=1.0)
    paths = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=2))
    assert paths[0].order == 0 and paths[0].attenuation == 1.0
    assert all(p.attenuation == 0.0 for p in paths[1:])


def test_shoebox_low_orders() -> None:
    room = _room()
    cfg = SolverConfig(c=343.0, max_order=2)
    paths = enumerate_paths(room, SRC, LIS, cfg)

    assert paths[0].order == 0
    assert paths[0].length == pytest.approx(math.sqrt(5.0))
    first = [p for p in paths if p.order == 1]
    assert len(first) == 6
    assert all(p.length > paths[0].length for p in first)
    assert all(p.attenuation == pytest.approx(0.8) for p in first)
    assert any(p.order == 2 for p in paths)

    lengths = [p.length for p in paths]
    assert lengths == sorted(lengths)
    for p in paths:
        assert p.points[0] == SRC.position
        assert np.allclose(p.points[-1], LIS)
        assert len(p.points) == p.order + 2


def test_floor_reflection_point() -> None:
    room = _room()
    paths = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=1))
    floor = room.index_of("floor")
    (p,) = [p for p in paths if p.surface_ids == (floor,)]
    assert p.length == pytest.approx(math.sqrt(4.0 + 1.0 + 2.4 ** 2))
    assert np.allclose(p.points[1], (2.0, 1.5, 0.0))


def test_path_set_grows_with_order() -> None:
    room = _room()
    prev = set()
    for k in range(4):
        ids = {p.surface_ids for p in enumerate_paths(room, SRC, LIS, SolverConfig(max_order=k))}
        assert prev <= ids
        assert all(len(s) <= k for s in ids)
        prev = ids


def test_enumeration_is_deterministic() -> None:
    room = _room()
    cfg = SolverConfig(max_order=3)
    a = enumerate_paths(room, SRC, LIS, cfg)
    b = enumerate_paths(room, SRC, LIS, cfg)
    assert [p.surface_ids for p in a] == [p.surface_ids for p in b]
    assert [p.length for p in a] == [p.length for p in b]


def test_image_tree_counts() -> None:
    room = _room()
    assert build_image_tree(room, SRC, SolverConfig(max_order=1)).count_by_order() == [1, 6]
    assert build_image_tree(room, SRC, SolverConfig(max_order=2)).count_by_order() == [1, 6, 30]


def test_max_distance_prunes() -> None:
    room = _room()
    full = build_image_tree(room, SRC, SolverConfig(max_order=3))
    near = build_image_tree(room, SRC, SolverConfig(max_order=3, max_distance=6.0))
    assert len(near) < len(full)
    paths = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=3, max_distance=6.0))
    assert paths and all(p.length <= 6.0 for p in paths)


def test_tree_is_rebuilt_for_other_settings() -> None:
    room = _room()
    tree = build_image_tree(room, SRC, SolverConfig(max_order=1))
    paths = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=2), tree=tree)
    assert any(p.order == 2 for p in paths)


def test_strict_pruning_is_a_subset() -> None:
    room = _room()
    loose = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=3))
    strict = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=3, pruning="strict"))
    loose_ids = {p.surface_ids for p in loose}
    strict_ids = {p.surface_ids for p in strict}
    assert strict_ids <= loose_ids
    assert {s for s in loose_ids if len(s) <= 1} <= strict_ids
    assert len(strict) < len(loose)


def test_strict_pruning_cuts_occluded_branches() -> None:
    room = extrude(L_PLAN, 3.0)
    src = Source((3.5, 1.0, 1.0))
    lis = (1.0, 3.5, 1.0)
    loose = enumerate_paths(room, src, lis, SolverConfig(max_order=3))
    strict = enumerate_paths(room, src, lis, SolverConfig(max_order=3, pruning="strict"))
    assert strict
    assert {p.surface_ids for p in strict} < {p.surface_ids for p in loose}
    assert len(strict) < len(loose)


def test_occluded_direct_path() -> None:
    room = extrude(L_PLAN, 3.0)
    src = Source((3.5, 1.0, 1.0))
    assert enumerate_paths(room, src, (1.0, 3.5, 1.0), SolverConfig(max_order=0)) == []
    paths = enumerate_paths(room, src, (1.0, 1.0, 1.0), SolverConfig(max_order=0))
    assert len(paths) == 1 and paths[0].length == pytest.approx(2.5)


def test_rejected_queries() -> None:
    room = _room()
    with pytest.raises(ConfigurationError):
        enumerate_paths(room, SRC, SRC.position)
    with pytest.raises(ConfigurationError):
        enumerate_paths(room, SRC, (5.0, 1.0, 1.0))
    with pytest.raises(ConfigurationError):
        enumerate_paths(room, Source((1.0, 1.0, 3.0)), LIS)


def test_preview_polylines() -> None:
    paths = enumerate_paths(_room(), SRC, LIS, SolverConfig(max_order=2))
    lines = trace_preview_paths(paths, max_paths=5)
    assert len(lines) == 5
    assert lines[0].shape == (2, 3)


def test_whole_number_float_order(caplog) -> None:
    room = _room()
    with caplog.at_level(logging.DEBUG, logger="basstrace"):
        tree = build_image_tree(room, SRC, SolverConfig(max_order=2.0))
        paths = enumerate_paths(room, SRC, LIS, SolverConfig(max_order=2.0), tree=tree)
    assert tree.count_by_order() == [1, 6, 30]
    assert "images by order" in caplog.text
    assert max(p.order for p in paths) == 2


def test_non_finite_positions_rejected() -> None:
    with pytest.raises(ConfigurationError):
        Source((math.nan, 1.0, 1.0))
    with pytest.raises(ConfigurationError):
        Source((1.0, 1.0))
    with pytest.raises(ConfigurationError):
        enumerate_paths(_room(), SRC, (math.nan, 2.0, 1.2))
    with pytest.raises(ConfigurationError):
        enumerate_paths(_room(), SRC, (3.0, math.inf, 1.2))


def test_boundary_tolerance_applies_to_listener() -> None:
    room = _room()
    near_wall = (3.95, 2.0, 1.2)
    assert enumerate_paths(room, SRC, near_wall, SolverConfig(max_order=1))
    with pytest.raises(ConfigurationError):
        enumerate_paths(room, SRC, near_wall, SolverConfig(max_order=1, boundary_tol=0.1))
