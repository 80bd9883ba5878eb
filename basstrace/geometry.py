# basstrace/geometry.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import trimesh

from .config import BOUNDARY_TOL, DISTANCE_TOL, PARALLEL_TOL, PLANARITY_TOL
from .errors import ConfigurationError, GeometryError
from .physics import mirror_point, unit

logger = logging.getLogger(__name__)


class Point3(NamedTuple):
    x: float
    y: float
    z: float


def as_point(p, error: type = ConfigurationError) -> Point3:
    """Finite 3-D point from any 3-sequence; raises ``error`` otherwise."""
    try:
        a = np.asarray(p, dtype=float).reshape(-1)
    except (TypeError, ValueError) as e:
        raise error(f"expected a finite 3-component point, got {p!r}") from e
    if a.shape != (3,) or not np.all(np.isfinite(a)):
        raise error(f"expected a finite 3-component point, got {p!r}")
    return Point3(float(a[0]), float(a[1]), float(a[2]))


# -----------------------------
# Planar polygon helpers
# -----------------------------

def _newell_normal(V: np.ndarray) -> np.ndarray:
    # Area-weighted normal; robust for non-convex polygons
    nxt = np.roll(V, -1, axis=0)
    return np.array([
        np.sum((V[:, 1] - nxt[:, 1]) * (V[:, 2] + nxt[:, 2])),
        np.sum((V[:, 2] - nxt[:, 2]) * (V[:, 0] + nxt[:, 0])),
        np.sum((V[:, 0] - nxt[:, 0]) * (V[:, 1] + nxt[:, 1])),
    ]) * 0.5


def _signed_area_2d(P: np.ndarray) -> float:
    x, y = P[:, 0], P[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def _segments_cross_2d(a, b, c, d, tol: float) -> bool:
    def orient(p, q, r):
        return (q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0])

    def on_seg(p, q, r):
        return (min(p[0], q[0]) - tol <= r[0] <= max(p[0], q[0]) + tol and
                min(p[1], q[1]) - tol <= r[1] <= max(p[1], q[1]) + tol)

    o1, o2 = orient(a, b, c), orient(a, b, d)
    o3, o4 = orient(c, d, a), orient(c, d, b)
    if ((o1 > tol and o2 < -tol) or (o1 < -tol and o2 > tol)) and \
       ((o3 > tol and o4 < -tol) or (o3 < -tol and o4 > tol)):
        return True
    if abs(o1) <= tol and on_seg(a, b, c): return True
    if abs(o2) <= tol and on_seg(a, b, d): return True
    if abs(o3) <= tol and on_seg(c, d, a): return True
    if abs(o4) <= tol and on_seg(c, d, b): return True
    return False


def _is_simple_polygon(P: np.ndarray, tol: float) -> bool:
    n = len(P)
    for i in range(n):
        a, b = P[i], P[(i + 1) % n]
        for j in range(i + 1, n):
            # skip shared-vertex neighbours
            if j == i or (j + 1) % n == i or (i + 1) % n == j:
                continue
            if _segments_cross_2d(a, b, P[j], P[(j + 1) % n], tol):
                return False
    return True


def _ear_clip(P: np.ndarray) -> List[Tuple[int, int, int]]:
    """Triangulate a simple 2-D polygon; returns index triples in input winding."""
    n = len(P)
    if n == 3:
        return [(0, 1, 2)]
    ccw = _signed_area_2d(P) > 0
    idx = list(range(n)) if ccw else list(range(n))[::-1]

    def cross(o, a, b):
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    tris: List[Tuple[int, int, int]] = []
    guard = 0
    while len(idx) > 3 and guard < 10 * n * n:
        guard += 1
        m = len(idx)
        for k in range(m):
            i0, i1, i2 = idx[k - 1], idx[k], idx[(k + 1) % m]
            a, b, c = P[i0], P[i1], P[i2]
            if cross(a, b, c) <= 0:
                continue  # reflex vertex
            inside = False
            for j in idx:
                if j in (i0, i1, i2):
                    continue
                p = P[j]
                if cross(a, b, p) >= 0 and cross(b, c, p) >= 0 and cross(c, a, p) >= 0:
                    inside = True
                    break
            if inside:
                continue
            tris.append((i0, i1, i2) if ccw else (i2, i1, i0))
            del idx[k]
            break
        else:
            raise GeometryError("polygon could not be triangulated")
    a, b, c = idx
    tris.append((a, b, c) if ccw else (c, b, a))
    return tris


def classify_points_2d(pts: np.ndarray, poly: np.ndarray, tol: float) -> np.ndarray:
    """
    Vectorized point-in-polygon. Returns int array: 1 inside, 0 on the boundary
    (within ``tol``), -1 outside.
    """
    pts = np.asarray(pts, dtype=float).reshape(-1, 2)
    a = poly[None, :, :]
    b = np.roll(poly, -1, axis=0)[None, :, :]
    p = pts[:, None, :]

    # distance to every edge
    ab = b - a
    ab2 = np.maximum(np.sum(ab * ab, axis=-1), 1e-300)
    t = np.clip(np.sum((p - a) * ab, axis=-1) / ab2, 0.0, 1.0)
    closest = a + t[..., None] * ab
    d_edge = np.min(np.linalg.norm(p - closest, axis=-1), axis=1)

    # crossing number
    ay, by = a[..., 1], b[..., 1]
    py, px = p[..., 1], p[..., 0]
    straddle = (ay > py) != (by > py)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = a[..., 0] + (py - ay) * (b[..., 0] - a[..., 0]) / (by - ay)
    crossings = np.sum(straddle & (px < x_cross), axis=1)

    out = np.where(crossings % 2 == 1, 1, -1)
    out[d_edge <= tol] = 0
    return out


# -----------------------------
# Surface
# -----------------------------

@dataclass(frozen=True)
class Surface:
    """
    Bounded planar polygon with a broadband absorption coefficient.

    ``normal`` follows the vertex winding (right-hand rule). A :class:`Room`
    re-orients its surfaces so every normal points into the room.
    """
    vertices: Tuple[Point3, ...]
    absorption: float = 0.0
    name: str = ""

    normal: np.ndarray = field(init=False, repr=False, compare=False)
    origin: np.ndarray = field(init=False, repr=False, compare=False)
    area: float = field(init=False, repr=False, compare=False)
    _u: np.ndarray = field(init=False, repr=False, compare=False)
    _v: np.ndarray = field(init=False, repr=False, compare=False)
    _poly2d: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        verts = tuple(as_point(p, GeometryError) for p in self.vertices)
        object.__setattr__(self, "vertices", verts)
        if len(verts) < 3:
            raise GeometryError(f"surface {self.name!r} needs at least 3 vertices, got {len(verts)}")
        a = float(self.absorption)
        if not (0.0 <= a <= 1.0):
            raise GeometryError(f"surface {self.name!r}: absorption {a} outside [0, 1]")
        object.__setattr__(self, "absorption", a)

        V = np.asarray(verts, dtype=float)
        scale = max(float(np.max(np.ptp(V, axis=0))), 1.0)
        nw = _newell_normal(V)
        area = float(np.linalg.norm(nw))
        if area <= 1e-12 * scale * scale:
            raise GeometryError(f"surface {self.name!r} is degenerate (collinear or zero area)")
        n = nw / area
        origin = V[0].copy()

        off_plane = np.abs((V - origin) @ n)
        if float(np.max(off_plane)) > PLANARITY_TOL * scale:
            raise GeometryError(
                f"surface {self.name!r} is not planar (max deviation {float(np.max(off_plane)):.3g} m)"
            )

        # In-plane basis; u along the longest edge from vertex 0 for stability
        edges = V - origin
        e = edges[int(np.argmax(np.linalg.norm(edges, axis=1)))]
        u = unit(e - float(np.dot(e, n)) * n)
        v = np.cross(n, u)
        P = np.column_stack([edges @ u, edges @ v])
        if not _is_simple_polygon(P, DISTANCE_TOL * scale):
            raise GeometryError(f"surface {self.name!r} is self-intersecting")

        for k, val in (("normal", n), ("origin", origin), ("area", area),
                       ("_u", u), ("_v", v), ("_poly2d", P)):
            object.__setattr__(self, k, val)

    # -- plane queries --------------------------------------------------------
    def signed_distance(self, p) -> float:
        return float(np.dot(np.asarray(p, dtype=float) - self.origin, self.normal))

    def mirror(self, p) -> np.ndarray:
        """Mirror ``p`` through this surface's plane."""
        return mirror_point(p, self.origin, self.normal)

    def project(self, p) -> np.ndarray:
        d = np.asarray(p, dtype=float) - self.origin
        return np.stack([d @ self._u, d @ self._v], axis=-1)

    def classify(self, p_on_plane, tol: float = BOUNDARY_TOL) -> int:
        """1 inside the polygon, 0 on its boundary, -1 outside (``p`` on the plane)."""
        return int(classify_points_2d(self.project(p_on_plane), self._poly2d, tol)[0])

    def flipped(self) -> "Surface":
        return Surface(tuple(reversed(self.vertices)), self.absorption, self.name)

    def interior_sample(self) -> np.ndarray:
        """A point strictly inside the polygon (centroid of its first ear)."""
        i, j, k = _ear_clip(self._poly2d)[0]
        V = np.asarray(self.vertices, dtype=float)
        return (V[i] + V[j] + V[k]) / 3.0

    def triangles(self) -> List[Tuple[int, int, int]]:
        """Triangulation of the polygon in vertex indices, following the winding."""
        return _ear_clip(self._poly2d)

    # -- intersections --------------------------------------------------------
    def _line_param(self, p: np.ndarray, d: np.ndarray, parallel_tol: float):
        denom = float(np.dot(self.normal, d))
        if abs(denom) <= parallel_tol * max(float(np.linalg.norm(d)), 1.0):
            return None
        return float(np.dot(self.normal, self.origin - p)) / denom

    def intersect_ray(self, origin, direction, *, tol: float = DISTANCE_TOL,
                      parallel_tol: float = PARALLEL_TOL,
                      boundary_tol: float = BOUNDARY_TOL) -> Optional[Tuple[float, np.ndarray]]:
        """Return ``(distance, point)`` of the hit in front of ``origin`` or ``None``."""
        o = np.asarray(origin, dtype=float)
        d = unit(direction)
        t = self._line_param(o, d, parallel_tol)
        if t is None or t <= tol:
            return None
        hit = o + t * d
        if self.classify(hit, boundary_tol) < 0:
            return None
        return t, hit

    def segment_crossing(self, p, q, *, inclusive: bool, tol: float = DISTANCE_TOL,
                         parallel_tol: float = PARALLEL_TOL,
                         boundary_tol: float = BOUNDARY_TOL) -> Optional[np.ndarray]:
        """
        Point where the open segment ``p``-``q`` crosses the polygon, or ``None``.
        Hits within ``tol`` of either endpoint do not count. Boundary hits count
        only when ``inclusive``.
        """
        p = np.asarray(p, dtype=float)
        q = np.asarray(q, dtype=float)
        d = q - p
        length = float(np.linalg.norm(d))
        if length <= tol:
            return None
        t = self._line_param(p, d, parallel_tol)
        if t is None or t * length <= tol or (1.0 - t) * length <= tol:
            return None
        hit = p + t * d
        cls = self.classify(hit, boundary_tol)
        if cls < 0 or (cls == 0 and not inclusive):
            return None
        return hit


# -----------------------------
# Room
# -----------------------------

_PARITY_DIRS = np.array([
    [0.5773, 0.6123, 0.5401],
    [-0.4137, 0.7071, -0.5734],
    [0.6917, -0.3109, -0.6519],
])
_PARITY_DIRS = _PARITY_DIRS / np.linalg.norm(_PARITY_DIRS, axis=1, keepdims=True)


def _merge_vertices(surfaces: Sequence[Surface], merge_tol: float):
    """Shared vertex array + per-surface vertex index lists (coincident points merged)."""
    allV = np.vstack([np.asarray(s.vertices, dtype=float) for s in surfaces])
    keys = np.round(allV / merge_tol).astype(np.int64)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    inverse = np.asarray(inverse).reshape(-1)
    V = allV[first]
    out, k = [], 0
    for s in surfaces:
        n = len(s.vertices)
        out.append(inverse[k:k + n])
        k += n
    return V, out


def build_trimesh(surfaces: Sequence[Surface], merge_tol: float = 1e-6) -> "trimesh.Trimesh":
    """Triangulated boundary mesh of ``surfaces`` (windings as given)."""
    V, vidx = _merge_vertices(surfaces, merge_tol)
    F = []
    for s, ids in zip(surfaces, vidx):
        for i, j, k in s.triangles():
            F.append((ids[i], ids[j], ids[k]))
    return trimesh.Trimesh(vertices=V, faces=np.asarray(F, dtype=np.int64), process=False)


@dataclass(frozen=True)
class Room:
    """
    Immutable set of surfaces bounding the listening volume.

    Closed rooms (the default) must be watertight; their surfaces are
    re-oriented so that every normal points into the room. Open rooms skip the
    closure check and define the interior as the region in front of all
    surfaces; use them for idealised half spaces.
    """
    surfaces: Tuple[Surface, ...]
    closed: bool = True
    interior_point: Optional[Point3] = None

    mesh: Optional["trimesh.Trimesh"] = field(init=False, repr=False, compare=False, default=None)
    bounds: np.ndarray = field(init=False, repr=False, compare=False, default=None)
    diameter: float = field(init=False, repr=False, compare=False, default=0.0)
    volume: float = field(init=False, repr=False, compare=False, default=math.inf)

    def __post_init__(self) -> None:
        surfaces = tuple(self.surfaces)
        if not surfaces:
            raise GeometryError("a room needs at least one surface")
        for s in surfaces:
            if not isinstance(s, Surface):
                raise GeometryError(f"expected Surface, got {type(s).__name__}")
        if self.interior_point is not None:
            object.__setattr__(self, "interior_point", as_point(self.interior_point, GeometryError))

        allV = np.vstack([np.asarray(s.vertices, dtype=float) for s in surfaces])
        bounds = np.vstack([allV.min(axis=0), allV.max(axis=0)])
        diameter = float(np.linalg.norm(bounds[1] - bounds[0]))
        object.__setattr__(self, "bounds", bounds)
        object.__setattr__(self, "diameter", diameter)

        if self.closed:
            surfaces = self._validate_closed(surfaces, diameter)
        object.__setattr__(self, "surfaces", surfaces)

        if self.interior_point is not None and not self.contains(self.interior_point):
            raise GeometryError(
                f"sanity-check interior point {tuple(self.interior_point)} is not inside the room"
            )
        logger.debug("Room with %d surfaces, closed=%s, volume=%.3f m^3",
                     len(surfaces), self.closed, self.volume)

    def _validate_closed(self, surfaces: Tuple[Surface, ...], diameter: float) -> Tuple[Surface, ...]:
        if len(surfaces) < 4:
            raise GeometryError(f"a closed room needs at least 4 surfaces, got {len(surfaces)}")
        mesh = build_trimesh(surfaces)
        if not mesh.is_watertight:
            raise GeometryError("surfaces do not form a closed, watertight boundary")

        # Orient every normal inward: a ray leaving the surface along an inward
        # normal crosses the rest of the boundary an odd number of times.
        eps = max(1e-6 * diameter, 10.0 * DISTANCE_TOL)
        oriented = []
        for i, s in enumerate(surfaces):
            p = s.interior_sample()
            d = unit(s.normal + 1e-3 * _PARITY_DIRS[0])
            o = p + eps * s.normal
            hits = 0
            for j, other in enumerate(surfaces):
                if j != i and other.intersect_ray(o, d) is not None:
                    hits += 1
            oriented.append(s if hits % 2 == 1 else s.flipped())
        oriented = tuple(oriented)

        # trimesh wants outward windings for a positive volume
        mesh = build_trimesh([s.flipped() for s in oriented])
        vol = float(mesh.volume)
        if not (vol > DISTANCE_TOL):
            raise GeometryError(f"surfaces do not enclose a bounded volume (volume={vol:.3g})")
        object.__setattr__(self, "mesh", mesh)
        object.__setattr__(self, "volume", vol)
        return oriented

    # -- queries --------------------------------------------------------------
    def __len__(self) -> int:
        return len(self.surfaces)

    def index_of(self, name: str) -> int:
        for i, s in enumerate(self.surfaces):
            if s.name == name:
                return i
        raise KeyError(name)

    def mirror(self, p, surface_index: int) -> np.ndarray:
        """Mirror ``p`` across the plane of surface ``surface_index``."""
        return self.surfaces[surface_index].mirror(p)

    def distance_to_bounds(self, p) -> float:
        p = np.asarray(p, dtype=float)
        lo, hi = self.bounds
        d = np.maximum(np.maximum(lo - p, p - hi), 0.0)
        return float(np.linalg.norm(d))

    def first_hit(self, origin, direction, exclude: Iterable[int] = ()):
        """Nearest ``(surface_index, point, distance)`` along a ray or ``(None, None, None)``."""
        skip = set(exclude)
        best = (None, None, None)
        for i, s in enumerate(self.surfaces):
            if i in skip:
                continue
            hit = s.intersect_ray(origin, direction)
            if hit is not None and (best[2] is None or hit[0] < best[2]):
                best = (i, hit[1], hit[0])
        return best

    def visible(self, p, q, exclude: Iterable[int] = (), *, tol: float = DISTANCE_TOL,
                parallel_tol: float = PARALLEL_TOL, boundary_tol: float = BOUNDARY_TOL) -> bool:
        """True if no surface (other than ``exclude``) blocks the open segment ``p``-``q``."""
        skip = set(exclude)
        for i, s in enumerate(self.surfaces):
            if i in skip:
                continue
            if s.segment_crossing(p, q, inclusive=False, tol=tol,
                                  parallel_tol=parallel_tol, boundary_tol=boundary_tol) is not None:
                return False
        return True

    def contains(self, p, tol: float = BOUNDARY_TOL, parallel_tol: float = PARALLEL_TOL) -> bool:
        return bool(self.contains_points(np.asarray(p, dtype=float).reshape(1, 3), tol, parallel_tol)[0])

    def contains_points(self, pts: np.ndarray, tol: float = BOUNDARY_TOL,
                        parallel_tol: float = PARALLEL_TOL) -> np.ndarray:
        """
        Vectorized membership test. Points on the boundary count as outside.
        Closed rooms use ray parity (majority of three oblique rays); open rooms
        require every point to be in front of every surface.
        """
        P = np.asarray(pts, dtype=float).reshape(-1, 3)
        n = P.shape[0]
        if n == 0:
            return np.zeros(0, dtype=bool)

        if not self.closed:
            inside = np.ones(n, dtype=bool)
            for s in self.surfaces:
                inside &= (P - s.origin) @ s.normal > tol
            return inside

        on_boundary = np.zeros(n, dtype=bool)
        for s in self.surfaces:
            sd = (P - s.origin) @ s.normal
            near = np.abs(sd) <= tol
            if np.any(near):
                foot = P[near] - sd[near, None] * s.normal
                on_boundary[np.flatnonzero(near)] |= classify_points_2d(
                    s.project(foot), s._poly2d, tol) >= 0

        votes = np.zeros(n, dtype=int)
        for d in _PARITY_DIRS:
            crossings = np.zeros(n, dtype=int)
            for s in self.surfaces:
                denom = float(np.dot(s.normal, d))
                if abs(denom) <= parallel_tol:
                    continue
                t = ((s.origin - P) @ s.normal) / denom
                ahead = t > tol
                if not np.any(ahead):
                    continue
                hit = P[ahead] + t[ahead, None] * d
                cls = classify_points_2d(s.project(hit), s._poly2d, tol)
                crossings[np.flatnonzero(ahead)] += (cls >= 0).astype(int)
            votes += crossings % 2
        return (votes >= 2) & ~on_boundary


# -----------------------------
# Builders
# -----------------------------

AbsorptionSpec = Union[float, Mapping[str, float]]

SHOEBOX_FACES = ("floor", "ceiling", "south", "north", "west", "east")


def _absorption_for(spec: AbsorptionSpec, names: Sequence[str], default: float = 0.0) -> Dict[str, float]:
    if isinstance(spec, Mapping):
        unknown = set(spec) - set(names)
        if unknown:
            raise GeometryError(f"unknown surface names {sorted(unknown)}; expected {list(names)}")
        return {n: float(spec.get(n, default)) for n in names}
    return {n: float(spec) for n in names}


def shoebox(lx: float, ly: float, lz: float, absorption: AbsorptionSpec = 0.0,
            origin=(0.0, 0.0, 0.0)) -> Room:
    """Rectangular room spanning ``origin`` to ``origin + (lx, ly, lz)``."""
    if min(lx, ly, lz) <= 0:
        raise GeometryError(f"shoebox dimensions must be positive, got {(lx, ly, lz)}")
    x0, y0, z0 = as_point(origin, GeometryError)
    x1, y1, z1 = x0 + lx, y0 + ly, z0 + lz
    a = _absorption_for(absorption, SHOEBOX_FACES)
    quads = {
        "floor":   [(x0, y0, z0), (x0, y1, z0), (x1, y1, z0), (x1, y0, z0)],
        "ceiling": [(x0, y0, z1), (x1, y0, z1), (x1, y1, z1), (x0, y1, z1)],
        "south":   [(x0, y0, z0), (x1, y0, z0), (x1, y0, z1), (x0, y0, z1)],
        "north":   [(x0, y1, z0), (x0, y1, z1), (x1, y1, z1), (x1, y1, z0)],
        "west":    [(x0, y0, z0), (x0, y0, z1), (x0, y1, z1), (x0, y1, z0)],
        "east":    [(x1, y0, z0), (x1, y1, z0), (x1, y1, z1), (x1, y0, z1)],
    }
    return Room(tuple(Surface(tuple(quads[n]), a[n], n) for n in SHOEBOX_FACES))


def extrude(floor_plan: Sequence[Tuple[float, float]], height: float,
            absorption: AbsorptionSpec = 0.0, floor_z: float = 0.0) -> Room:
    """
    Prism room from a simple (possibly concave) floor polygon. Walls are named
    ``wall_0`` .. ``wall_{n-1}``, wall ``i`` running from vertex ``i`` to ``i+1``.
    """
    plan = [(float(x), float(y)) for x, y in floor_plan]
    if len(plan) < 3:
        raise GeometryError("floor plan needs at least 3 vertices")
    if height <= 0:
        raise GeometryError(f"height must be positive, got {height}")
    n = len(plan)
    names = ["floor", "ceiling"] + [f"wall_{i}" for i in range(n)]
    a = _absorption_for(absorption, names)
    z0, z1 = float(floor_z), float(floor_z) + float(height)
    surfaces = [
        Surface(tuple((x, y, z0) for x, y in plan), a["floor"], "floor"),
        Surface(tuple((x, y, z1) for x, y in plan), a["ceiling"], "ceiling"),
    ]
    for i in range(n):
        (xa, ya), (xb, yb) = plan[i], plan[(i + 1) % n]
        surfaces.append(Surface(((xa, ya, z0), (xb, yb, z0), (xb, yb, z1), (xa, ya, z1)),
                                a[f"wall_{i}"], f"wall_{i}"))
    return Room(tuple(surfaces))


def half_space(point=(0.0, 0.0, 0.0), normal=(0.0, 0.0, 1.0), absorption: float = 0.0,
               size: float = 1e4, name: str = "plane") -> Room:
    """
    Open room made of one square reflector of half-width ``size`` centred on
    ``point``; ``normal`` points into the listening half space.
    """
    p = np.asarray(as_point(point, GeometryError), dtype=float)
    n = unit(np.asarray(as_point(normal, GeometryError), dtype=float))
    a = np.array([1.0, 0.0, 0.0]) if abs(n[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = unit(np.cross(n, a))
    v = np.cross(n, u)
    corners = [p + size * (su * u + sv * v) for su, sv in ((-1, -1), (1, -1), (1, 1), (-1, 1))]
    s = Surface(tuple(map(tuple, corners)), absorption, name)
    if float(np.dot(s.normal, n)) < 0:
        s = s.flipped()
    return Room((s,), closed=False)
