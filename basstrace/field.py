# basstrace/field.py
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import threading
import time

import numpy as np

from .config import SolverConfig
from .errors import ConfigurationError, SweepCancelled
from .geometry import Point3, Room, as_point
from .physics import check_frequencies, to_db
from .response import pressure_at
from .tracing import ImageTree, Source, build_image_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridSpec:
    """
    Axis-aligned grid from ``lower`` to ``upper`` (inclusive) with ``spacing``
    metres between samples. An axis with ``lower == upper`` has one sample, so
    a flat box is a 2-D slice.
    """
    lower: Point3
    upper: Point3
    spacing: float

    def __post_init__(self) -> None:
        lo, hi = as_point(self.lower), as_point(self.upper)
        object.__setattr__(self, "lower", lo)
        object.__setattr__(self, "upper", hi)
        if not (self.spacing > 0.0):
            raise ConfigurationError(f"grid spacing must be positive, got {self.spacing!r}")
        if any(h < l for l, h in zip(lo, hi)):
            raise ConfigurationError(f"grid upper bound {tuple(hi)} is below lower bound {tuple(lo)}")

    @classmethod
    def horizontal(cls, x0: float, x1: float, y0: float, y1: float, z: float,
                   spacing: float) -> "GridSpec":
        """Horizontal slice at height ``z``."""
        return cls(Point3(x0, y0, z), Point3(x1, y1, z), spacing)

    def axes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        out = []
        for lo, hi in zip(self.lower, self.upper):
            n = int(np.floor((hi - lo) / self.spacing + 1e-9)) + 1
            out.append(lo + self.spacing * np.arange(n, dtype=float))
        return tuple(out)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(a.size for a in self.axes())

    @property
    def size(self) -> int:
        nx, ny, nz = self.shape
        return nx * ny * nz

    def points(self) -> np.ndarray:
        """All grid points, shape (N, 3), in C order of ``shape``."""
        X, Y, Z = np.meshgrid(*self.axes(), indexing="ij")
        return np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])


@dataclass(frozen=True)
class InterferenceField:
    """
    Pressure magnitude on a grid for one or more frequencies.

    Cells outside the room, or rejected by their own query, are "not
    evaluated": ``evaluated`` is False there and ``magnitude`` holds NaN.
    ``errors`` maps the grid index of each rejected cell to its message.
    """
    grid: GridSpec
    frequencies: np.ndarray = field(repr=False)
    pressure: np.ndarray = field(repr=False)      # complex (F, nx, ny, nz)
    evaluated: np.ndarray = field(repr=False)     # bool (nx, ny, nz)
    errors: Dict[Tuple[int, int, int], str] = field(default_factory=dict, repr=False)

    @property
    def magnitude(self) -> np.ndarray:
        m = np.abs(self.pressure)
        m[:, ~self.evaluated] = np.nan
        return m

    @property
    def not_evaluated(self) -> np.ndarray:
        return ~self.evaluated

    def at(self, frequency_index: int = 0) -> np.ndarray:
        """Magnitude for one frequency with single-sample axes squeezed."""
        return np.squeeze(self.magnitude[frequency_index])

    def to_db(self, reference: float = 1.0) -> np.ndarray:
        return to_db(self.magnitude, reference)


# -----------------------------
# Worker pool
# -----------------------------

def run_chunks(n_items: int, work: Callable[[int], None], cfg: SolverConfig,
               cancel: Optional[threading.Event] = None) -> int:
    """
    Call ``work(i)`` for ``i`` in ``range(n_items)``, split into chunks of
    ``cfg.chunk_size`` and run on ``cfg.workers`` threads (serially for 0/1).
    ``work`` must only write to slots owned by ``i``. ``cancel`` is checked
    between items. Returns the number of items processed.
    """
    counts: List[int] = []

    def _chunk(lo: int, hi: int) -> int:
        done = 0
        for i in range(lo, hi):
            if cancel is not None and cancel.is_set():
                break
            work(i)
            done += 1
        return done

    bounds = [(lo, min(lo + cfg.chunk_size, n_items)) for lo in range(0, n_items, cfg.chunk_size)]
    if cfg.workers <= 1 or len(bounds) <= 1:
        for lo, hi in bounds:
            counts.append(_chunk(lo, hi))
    else:
        with ThreadPoolExecutor(max_workers=cfg.workers) as executor:
            futures = [executor.submit(_chunk, lo, hi) for lo, hi in bounds]
            for fut in as_completed(futures):
                counts.append(fut.result())
    return int(sum(counts))


# -----------------------------
# Sweep
# -----------------------------

def sample_field(room: Room, sources, grid: GridSpec, frequencies,
                 cfg: Optional[SolverConfig] = None,
                 trees: Optional[Sequence[ImageTree]] = None,
                 cancel: Optional[threading.Event] = None) -> InterferenceField:
    """
    Evaluate the complex pressure of ``sources`` at every grid point inside
    ``room`` for each of ``frequencies``.

    Raises SweepCancelled if ``cancel`` is set before the sweep finishes.
    """
    cfg = cfg or SolverConfig()
    srcs = (sources,) if isinstance(sources, Source) else tuple(sources)
    f = check_frequencies(np.atleast_1d(np.asarray(frequencies, dtype=float)))
    for s in srcs:
        if not room.contains(s.position, cfg.boundary_tol, cfg.parallel_tol):
            raise ConfigurationError(f"source {tuple(s.position)} is not inside the room")
    if trees is None:
        trees = [build_image_tree(room, s, cfg) for s in srcs]
    elif len(trees) != len(srcs):
        raise ConfigurationError(f"got {len(trees)} image trees for {len(srcs)} sources")

    shape = grid.shape
    pts = grid.points()
    inside = room.contains_points(pts, cfg.boundary_tol, cfg.parallel_tol)
    todo = np.flatnonzero(inside)

    pressure = np.full((f.size, pts.shape[0]), np.nan + 1j * np.nan, dtype=complex)
    evaluated = np.zeros(pts.shape[0], dtype=bool)
    errors: Dict[int, str] = {}

    def _cell(k: int) -> None:
        i = int(todo[k])
        try:
            p, _ = pressure_at(room, trees, pts[i], f, cfg)
        except ConfigurationError as e:
            errors[i] = str(e)
            return
        pressure[:, i] = p
        evaluated[i] = True

    t0 = time.perf_counter()
    logger.info("Field sweep: %d grid points (%d inside), %d frequencies, workers=%d",
                pts.shape[0], todo.size, f.size, cfg.workers)
    done = run_chunks(int(todo.size), _cell, cfg, cancel)
    if cancel is not None and cancel.is_set() and done < todo.size:
        logger.info("Field sweep cancelled after %d/%d points", done, todo.size)
        raise SweepCancelled(done, int(todo.size))
    if errors:
        logger.warning("%d grid points rejected: %s", len(errors), next(iter(errors.values())))
    logger.info("Field sweep finished in %.2f s", time.perf_counter() - t0)

    return InterferenceField(
        grid=grid,
        frequencies=f,
        pressure=pressure.reshape((f.size,) + shape),
        evaluated=evaluated.reshape(shape),
        errors={tuple(int(v) for v in np.unravel_index(i, shape)): msg for i, msg in errors.items()},
    )
