# basstrace/tracing.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from .config import SolverConfig
from .errors import ConfigurationError
from .geometry import Point3, Room, Surface, as_point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Source:
    """Point emitter; ``amplitude`` is the pressure amplitude at 1 m."""
    position: Point3
    amplitude: float = 1.0
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", as_point(self.position))
        if not math.isfinite(self.amplitude):
            raise ConfigurationError(f"source amplitude must be finite, got {self.amplitude!r}")


@dataclass(frozen=True)
class ReflectionPath:
    """
    One propagation path from a source to a listener.

    ``surface_ids`` index into ``Room.surfaces`` in bounce order; an empty
    sequence is the direct path. ``points`` is the polyline source ->
    reflection points -> listener.
    """
    surfaces: Tuple[Surface, ...]
    surface_ids: Tuple[int, ...]
    length: float
    attenuation: float
    image: Point3
    points: Tuple[Point3, ...] = field(repr=False)

    @property
    def order(self) -> int:
        return len(self.surface_ids)

    def travel_time(self, c: float) -> float:
        return self.length / c

    def polyline(self) -> np.ndarray:
        return np.asarray(self.points, dtype=float)

    def sort_key(self):
        return (self.length, self.order, self.surface_ids)


# -----------------------------
# Image-source tree
# -----------------------------

@dataclass(frozen=True)
class ImageSource:
    position: np.ndarray = field(repr=False, compare=False)
    surface_ids: Tuple[int, ...]
    parent: int                     # -1 for the real source
    attenuation: float

    @property
    def order(self) -> int:
        return len(self.surface_ids)


@dataclass(frozen=True)
class ImageTree:
    """
    Listener-independent image sources of one source, up to ``max_order``.
    ``nodes[0]`` is the real source; ``children[i]`` lists the node indices
    mirrored from node ``i``.
    """
    source: Source
    nodes: Tuple[ImageSource, ...]
    children: Tuple[Tuple[int, ...], ...]
    max_order: int
    max_distance: float = math.inf

    def matches(self, source: Source, cfg: SolverConfig) -> bool:
        return (self.source == source and self.max_order == cfg.max_order
                and self.max_distance == cfg.max_distance)

    def __len__(self) -> int:
        return len(self.nodes)

    def count_by_order(self) -> List[int]:
        counts = [0] * (self.max_order + 1)
        for n in self.nodes:
            counts[n.order] += 1
        return counts


def build_image_tree(room: Room, source: Source, cfg: SolverConfig) -> ImageTree:
    """
    Mirror the source across every surface, then every image across every
    surface except the one it was just mirrored in, up to ``cfg.max_order``.

    An image is only mirrored across a surface it lies in front of. Images
    farther than ``cfg.max_distance`` from the room's bounding box are dropped
    with their whole subtree, since every path through them is at least that
    long.
    """
    S = np.asarray(source.position, dtype=float)
    nodes: List[ImageSource] = [ImageSource(S, (), -1, 1.0)]
    children: List[List[int]] = [[]]
    prune_far = math.isfinite(cfg.max_distance)

    # explicit work stack of node indices; order-bounded
    stack = [0]
    while stack:
        idx = stack.pop()
        node = nodes[idx]
        if node.order >= cfg.max_order:
            continue
        last = node.surface_ids[-1] if node.surface_ids else -1
        for t, surf in enumerate(room.surfaces):
            if t == last:
                continue
            if surf.signed_distance(node.position) <= cfg.distance_tol:
                continue  # behind or on the mirror plane
            pos = surf.mirror(node.position)
            if prune_far and room.distance_to_bounds(pos) > cfg.max_distance:
                continue
            child = ImageSource(pos, node.surface_ids + (t,), idx,
                                node.attenuation * (1.0 - surf.absorption))
            nodes.append(child)
            children.append([])
            children[idx].append(len(nodes) - 1)
        # reversed so that lower surface indices are expanded first
        stack.extend(reversed(children[idx]))

    tree = ImageTree(source, tuple(nodes), tuple(tuple(c) for c in children),
                     cfg.max_order, cfg.max_distance)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Image tree for source %s: %s images by order",
                     source.name or tuple(source.position), tree.count_by_order())
    return tree


# -----------------------------
# Path validation
# -----------------------------

def _chain(tree: ImageTree, idx: int) -> List[ImageSource]:
    out = []
    while idx >= 0:
        node = tree.nodes[idx]
        out.append(node)
        idx = node.parent
    return out[::-1]   # real source first


def _validate(room: Room, tree: ImageTree, idx: int, L: np.ndarray,
              cfg: SolverConfig) -> Optional[ReflectionPath]:
    """Trace node ``idx`` back from the listener; ``None`` if the path does not exist."""
    chain = _chain(tree, idx)
    node = chain[-1]
    ids = node.surface_ids
    n = len(ids)
    kw = dict(tol=cfg.distance_tol, parallel_tol=cfg.parallel_tol, boundary_tol=cfg.boundary_tol)

    p = L
    points = [L]
    for k in range(n, 0, -1):
        surf = room.surfaces[ids[k - 1]]
        if surf.signed_distance(p) <= cfg.distance_tol:
            return None
        hit = surf.segment_crossing(chain[k].position, p, inclusive=True, **kw)
        if hit is None:
            return None
        exclude = {ids[k - 1]} if k == n else {ids[k - 1], ids[k]}
        if not room.visible(hit, p, exclude, **kw):
            return None
        points.append(hit)
        p = hit

    S = chain[0].position
    exclude = {ids[0]} if n else set()
    if not room.visible(S, p, exclude, **kw):
        return None
    points.append(S)

    length = float(np.linalg.norm(L - node.position))
    return ReflectionPath(
        surfaces=tuple(room.surfaces[i] for i in ids),
        surface_ids=ids,
        length=length,
        attenuation=node.attenuation,
        image=Point3(*map(float, node.position)),
        points=tuple(Point3(*map(float, q)) for q in reversed(points)),
    )


def paths_from_tree(room: Room, tree: ImageTree, listener, cfg: SolverConfig) -> List[ReflectionPath]:
    """
    Valid paths of ``tree`` at ``listener``, sorted by (length, order, surfaces).
    No membership checks; see :func:`enumerate_paths`.
    """
    L = np.asarray(listener, dtype=float)
    S = np.asarray(tree.source.position, dtype=float)
    if float(np.linalg.norm(L - S)) <= cfg.distance_tol:
        raise ConfigurationError(
            f"listener {tuple(L)} coincides with source {tree.source.name or tuple(S)}"
        )

    strict = cfg.pruning == "strict"
    found: List[ReflectionPath] = []
    stack = [0]
    while stack:
        idx = stack.pop()
        path = _validate(room, tree, idx, L, cfg)
        if path is not None and path.length <= cfg.max_distance:
            found.append(path)
        if strict and idx != 0 and path is None:
            continue  # a reflection that does not exist ends its branch
        stack.extend(tree.children[idx])

    found.sort(key=ReflectionPath.sort_key)
    return found


def enumerate_paths(room: Room, source: Source, listener, cfg: Optional[SolverConfig] = None,
                    tree: Optional[ImageTree] = None) -> List[ReflectionPath]:
    """
    Direct and reflected paths from ``source`` to ``listener`` up to
    ``cfg.max_order`` reflections, shortest first.

    Raises ConfigurationError when the source or listener is outside the room
    or the two coincide.
    """
    cfg = cfg or SolverConfig()
    L = as_point(listener)
    tols = (cfg.boundary_tol, cfg.parallel_tol)
    if not room.contains(source.position, *tols):
        raise ConfigurationError(f"source {tuple(source.position)} is not inside the room")
    if not room.contains(L, *tols):
        raise ConfigurationError(f"listener {tuple(L)} is not inside the room")
    if tree is None or not tree.matches(source, cfg):
        tree = build_image_tree(room, source, cfg)
    paths = paths_from_tree(room, tree, L, cfg)
    logger.debug("%d paths at listener %s (%s pruning)", len(paths), tuple(L), cfg.pruning)
    return paths


def trace_preview_paths(paths: Sequence[ReflectionPath], max_paths: int = 50) -> List[np.ndarray]:
    """Polylines of the first ``max_paths`` paths, for visualization."""
    return [p.polyline() for p in list(paths)[:int(max_paths)]]
