# basstrace/response.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from .config import SolverConfig
from .errors import ConfigurationError
from .geometry import Point3, Room, as_point
from .physics import check_frequencies, path_contribution, to_db
from .tracing import ImageTree, ReflectionPath, Source, enumerate_paths, paths_from_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrequencyResponse:
    """Complex pressure at one listener for an ordered set of frequencies."""
    listener: Point3
    frequencies: np.ndarray = field(repr=False)
    pressure: np.ndarray = field(repr=False)      # complex, same length as frequencies
    path_count: int = 0

    @property
    def magnitude(self) -> np.ndarray:
        return np.abs(self.pressure)

    @property
    def phase(self) -> np.ndarray:
        return np.angle(self.pressure)

    def level_db(self, reference: float = 1.0) -> np.ndarray:
        return to_db(self.magnitude, reference)

    def samples(self) -> List[Tuple[float, complex]]:
        return [(float(f), complex(p)) for f, p in zip(self.frequencies, self.pressure)]

    def __len__(self) -> int:
        return int(self.frequencies.size)


def sum_paths(paths: Iterable[ReflectionPath], frequencies: np.ndarray, cfg: SolverConfig,
              source_amplitude: float = 1.0, out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Add the contributions of ``paths`` into ``out`` (complex, one slot per
    frequency) in iteration order.
    """
    f = np.asarray(frequencies, dtype=float)
    acc = np.zeros(f.shape, dtype=complex) if out is None else out
    for path in paths:
        acc += path_contribution(path, f, cfg, source_amplitude)
    return acc


def pressure_at(room: Room, trees: Sequence[ImageTree], listener, frequencies: np.ndarray,
                cfg: SolverConfig) -> Tuple[np.ndarray, int]:
    """
    Complex pressure of all sources at ``listener``; sources are summed in
    the given order, paths in enumeration order. No membership checks.
    """
    acc = np.zeros(np.shape(frequencies), dtype=complex)
    n_paths = 0
    for tree in trees:
        paths = paths_from_tree(room, tree, listener, cfg)
        sum_paths(paths, frequencies, cfg, tree.source.amplitude, out=acc)
        n_paths += len(paths)
    return acc, n_paths


def frequency_response(room: Room, sources, listener, frequencies,
                       cfg: Optional[SolverConfig] = None,
                       trees: Optional[Sequence[ImageTree]] = None) -> FrequencyResponse:
    """
    Frequency response at ``listener`` for one source or a sequence of
    coherent sources. Paths are enumerated once; only the phasor sums depend
    on frequency.
    """
    cfg = cfg or SolverConfig()
    srcs = (sources,) if isinstance(sources, Source) else tuple(sources)
    if trees is not None and len(trees) != len(srcs):
        raise ConfigurationError(f"got {len(trees)} image trees for {len(srcs)} sources")
    f = check_frequencies(np.atleast_1d(np.asarray(frequencies, dtype=float)))
    L = as_point(listener)

    acc = np.zeros(f.shape, dtype=complex)
    n_paths = 0
    for k, src in enumerate(srcs):
        tree = trees[k] if trees is not None else None
        paths = enumerate_paths(room, src, L, cfg, tree=tree)
        sum_paths(paths, f, cfg, src.amplitude, out=acc)
        n_paths += len(paths)
    logger.debug("Response at %s: %d paths, %d frequencies", tuple(L), n_paths, f.size)
    return FrequencyResponse(L, f, acc, n_paths)
