import numpy as np
import pytest

from ..errors import GeometryError
from ..geometry import Room, Surface, extrude, half_space, shoebox


L_PLAN = [(0.0, 0.0), (4.0, 0.0), (4.0, 2.0), (2.0, 2.0), (2.0, 4.0), (0.0, 4.0)]


def test_shoebox_is_closed_with_inward_normals() -> None:
    room = shoebox(4.0, 3.0, 2.5)
    assert len(room) == 6
    assert room.volume == pytest.approx(30.0)
    expected = {
        "floor": (0, 0, 1), "ceiling": (0, 0, -1),
        "south": (0, 1, 0), "north": (0, -1, 0),
        "west": (1, 0, 0), "east": (-1, 0, 0),
    }
    for name, n in expected.items():
        s = room.surfaces[room.index_of(name)]
        assert np.allclose(s.normal, n)


def test_shoebox_per_face_absorption() -> None:
    room = shoebox(4.0, 3.0, 2.5, absorption={"floor": 0.3, "ceiling": 0.6})
    assert room.surfaces[room.index_of("floor")].absorption == 0.3
    assert room.surfaces[room.index_of("ceiling")].absorption == 0.6
    assert room.surfaces[room.index_of("east")].absorption == 0.0
    with pytest.raises(GeometryError):
        shoebox(4.0, 3.0, 2.5, absorption={"roof": 0.3})


def test_invalid_surfaces_rejected() -> None:
    with pytest.raises(GeometryError):
        Surface(((0, 0, 0), (1, 0, 0), (1, 1, 0.1), (0, 1, 0)))      # not planar
    with pytest.raises(GeometryError):
        Surface(((0, 0, 0), (1, 0, 0), (2, 0, 0)))                  # collinear
    with pytest.raises(GeometryError):
        Surface(((0, 0, 0), (1, 0, 0)))                             # too few vertices
    with pytest.raises(GeometryError):
        Surface(((0, 0, 0), (1, 1, 0), (1, 0, 0), (0, 1, 0)))       # bow tie
    with pytest.raises(GeometryError):
        Surface(((0, 0, 0), (1, 0, 0), (0, 1, 0)), absorption=1.5)


def test_open_box_is_not_a_room() -> None:
    surfaces = shoebox(4.0, 3.0, 2.5).surfaces
    with pytest.raises(GeometryError):
        Room(tuple(s for s in surfaces if s.name != "ceiling"))
    with pytest.raises(GeometryError):
        Room(surfaces[:3])


def test_interior_point_sanity_check() -> None:
    surfaces = shoebox(4.0, 3.0, 2.5).surfaces
    Room(surfaces, interior_point=(2.0, 1.5, 1.0))
    with pytest.raises(GeometryError):
        Room(surfaces, interior_point=(10.0, 10.0, 10.0))


def test_contains() -> None:
    room = shoebox(4.0, 3.0, 2.5)
    assert room.contains((1.0, 1.0, 1.2))
    assert not room.contains((-1.0, 1.0, 1.2))
    assert not room.contains((1.0, 1.0, 3.0))
    assert not room.contains((0.0, 1.0, 1.0))     # on the west wall

    pts = np.array([[2.0, 1.5, 1.0], [5.0, 1.5, 1.0], [4.0, 1.5, 1.0], [0.01, 0.01, 0.01]])
    assert room.contains_points(pts).tolist() == [True, False, False, True]


def test_mirror_across_plane() -> None:
    room = half_space(point=(0.0, 0.0, 0.0), normal=(0.0, 0.0, 1.0))
    assert np.allclose(room.mirror((1.0, 2.0, 3.0), 0), (1.0, 2.0, -3.0))

    tilted = half_space(point=(0.0, 0.0, 1.0), normal=(1.0, 0.0, 1.0))
    p = np.array([2.0, 0.0, 2.0])
    n = np.array([1.0, 0.0, 1.0]) / np.sqrt(2.0)
    expected = p - 2.0 * np.dot(p - np.array([0.0, 0.0, 1.0]), n) * n
    assert np.allclose(tilted.mirror(p, 0), expected)


def test_intersect_ray_and_first_hit() -> None:
    room = shoebox(4.0, 3.0, 2.5)
    floor = room.surfaces[room.index_of("floor")]
    t, hit = floor.intersect_ray((1.0, 1.0, 1.0), (0.0, 0.0, -1.0))
    assert t == pytest.approx(1.0)
    assert np.allclose(hit, (1.0, 1.0, 0.0))
    assert floor.intersect_ray((1.0, 1.0, 1.0), (0.0, 0.0, 1.0)) is None      # behind
    assert floor.intersect_ray((1.0, 1.0, 1.0), (1.0, 0.0, 0.0)) is None      # parallel
    assert floor.intersect_ray((5.0, 1.0, 1.0), (0.0, 0.0, -1.0)) is None     # outside polygon

    idx, point, dist = room.first_hit((1.0, 1.0, 1.2), (1.0, 0.0, 0.0))
    assert idx == room.index_of("east")
    assert dist == pytest.approx(3.0)
    assert np.allclose(point, (4.0, 1.0, 1.2))


def test_l_shaped_room_occludes() -> None:
    room = extrude(L_PLAN, 3.0)
    assert len(room) == 8
    assert room.volume == pytest.approx(12.0 * 3.0)
    assert room.contains((1.0, 1.0, 1.0))
    assert not room.contains((3.0, 3.0, 1.0))     # the notch
    assert not room.visible((3.5, 1.0, 1.0), (1.0, 3.5, 1.0))
    assert room.visible((3.5, 1.0, 1.0), (1.0, 1.0, 1.0))
