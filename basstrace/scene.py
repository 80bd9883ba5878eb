# basstrace/scene.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import threading

import numpy as np

from .config import SolverConfig
from .errors import ConfigurationError
from .field import GridSpec, InterferenceField, run_chunks, sample_field
from .geometry import Room, as_point
from .physics import check_frequencies, unit
from .response import FrequencyResponse, frequency_response
from .tracing import ImageTree, ReflectionPath, Source, build_image_tree, enumerate_paths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scene:
    """
    A room with one or more coherent sources and the solver settings.

    Image-source trees are built once on construction and shared by every
    query, so a Scene can serve many listeners (and threads) cheaply.
    """
    room: Room
    sources: Tuple[Source, ...]
    config: SolverConfig = field(default_factory=SolverConfig)
    trees: Tuple[ImageTree, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        srcs = (self.sources,) if isinstance(self.sources, Source) else tuple(self.sources)
        if not srcs:
            raise ConfigurationError("a scene needs at least one source")
        for s in srcs:
            if not self.room.contains(s.position, self.config.boundary_tol, self.config.parallel_tol):
                raise ConfigurationError(f"source {s.name or tuple(s.position)} is not inside the room")
        object.__setattr__(self, "sources", srcs)
        object.__setattr__(self, "trees", tuple(build_image_tree(self.room, s, self.config) for s in srcs))

    def with_config(self, **changes) -> "Scene":
        return Scene(self.room, self.sources, replace(self.config, **changes))

    # -- queries --------------------------------------------------------------
    def paths(self, listener, source_index: int = 0) -> List[ReflectionPath]:
        return enumerate_paths(self.room, self.sources[source_index], listener,
                               self.config, tree=self.trees[source_index])

    def response(self, listener, frequencies) -> FrequencyResponse:
        return frequency_response(self.room, self.sources, listener, frequencies,
                                  self.config, trees=self.trees)

    def responses(self, listeners: Sequence, frequencies,
                  cancel: Optional[threading.Event] = None) -> List[Optional[FrequencyResponse]]:
        """
        One response per listener, computed on the configured worker pool.
        Listeners whose query is rejected get ``None``.
        """
        pts = list(listeners)
        f = check_frequencies(np.atleast_1d(np.asarray(frequencies, dtype=float)))
        out: List[Optional[FrequencyResponse]] = [None] * len(pts)
        failures: Dict[int, str] = {}

        def _one(i: int) -> None:
            try:
                out[i] = self.response(as_point(pts[i]), f)
            except ConfigurationError as e:
                failures[i] = str(e)

        run_chunks(len(pts), _one, replace(self.config, chunk_size=1), cancel)
        for i, msg in sorted(failures.items()):
            logger.warning("Listener %d rejected: %s", i, msg)
        return out

    def interference_field(self, grid: GridSpec, frequencies,
                           cancel: Optional[threading.Event] = None) -> InterferenceField:
        return sample_field(self.room, self.sources, grid, frequencies, self.config,
                            trees=self.trees, cancel=cancel)

    # -- levels ---------------------------------------------------------------
    def reference_level(self, frequency: float, distance: float = 1.0) -> float:
        """
        Pressure magnitude defining 0 dB: the geometric mean of the full
        response ``distance`` metres from each source towards the room centre.
        Falls back to the free-field level of the loudest source.
        """
        centre = self.room.bounds.mean(axis=0)
        logs = []
        for s in self.sources:
            pos = np.asarray(s.position, dtype=float)
            d = centre - pos
            d = unit(d) if np.linalg.norm(d) > self.config.distance_tol else np.array([1.0, 0.0, 0.0])
            probe = pos + distance * d
            if not self.room.contains(probe, self.config.boundary_tol, self.config.parallel_tol):
                continue
            try:
                mag = float(self.response(probe, [frequency]).magnitude[0])
            except ConfigurationError:
                continue
            if mag > 0.0:
                logs.append(np.log10(mag))
        if logs:
            return float(10.0 ** np.mean(logs))
        return max(abs(s.amplitude) for s in self.sources) / float(distance)
