# basstrace/config.py
from __future__ import annotations
from dataclasses import dataclass, astuple, replace
import math
import numbers

from .errors import ConfigurationError

# Speed of sound in m/s (dry air, 20 C)
SPEED_OF_SOUND: float = 343.0
# Dry air at 25 C and 1 atm
SPEED_OF_SOUND_25C: float = 346.3

# Tolerances (metres unless noted)
DISTANCE_TOL: float = 1e-9        # below this two points coincide / a leg has no length
PARALLEL_TOL: float = 1e-12       # |n . d| below this is a grazing ray -> "no hit"
PLANARITY_TOL: float = 1e-6       # max vertex distance from its surface plane
BOUNDARY_TOL: float = 1e-9        # polygon edge band treated as "on the boundary"

PRUNING_MODES = ("permissive", "strict")


def _as_count(name: str, value) -> int:
    # whole numbers only; 2.0 is accepted as 2, True is not a count
    if isinstance(value, bool) or not isinstance(value, numbers.Real) \
            or not math.isfinite(value) or int(value) != value:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class SolverConfig:
    # Core acoustics
    c: float = SPEED_OF_SOUND
    air_db_per_m: float = 0.0             # flat air absorption coefficient

    # Image sources
    max_order: int = 3
    max_distance: float = math.inf        # paths longer than this are dropped
    pruning: str = "permissive"           # "permissive" | "strict"

    # Tolerances
    distance_tol: float = DISTANCE_TOL
    parallel_tol: float = PARALLEL_TOL
    boundary_tol: float = BOUNDARY_TOL

    # Execution
    workers: int = 0                      # 0/1 = serial, >1 = thread pool size
    chunk_size: int = 256                 # grid points per work unit

    def __post_init__(self) -> None:
        if not (self.c > 0.0) or not math.isfinite(self.c):
            raise ConfigurationError(f"speed of sound must be positive, got {self.c!r}")
        if self.air_db_per_m < 0.0:
            raise ConfigurationError(f"air_db_per_m must be >= 0, got {self.air_db_per_m!r}")
        for name in ("max_order", "workers", "chunk_size"):
            object.__setattr__(self, name, _as_count(name, getattr(self, name)))
        if self.max_order < 0:
            raise ConfigurationError(f"max_order must be a non-negative integer, got {self.max_order!r}")
        if not (self.max_distance > 0.0):
            raise ConfigurationError(f"max_distance must be positive, got {self.max_distance!r}")
        if self.pruning not in PRUNING_MODES:
            raise ConfigurationError(
                f"pruning must be one of {PRUNING_MODES}, got {self.pruning!r}"
            )
        for name in ("distance_tol", "parallel_tol", "boundary_tol"):
            if getattr(self, name) < 0.0:
                raise ConfigurationError(f"{name} must be >= 0")
        if self.workers < 0:
            raise ConfigurationError(f"workers must be >= 0, got {self.workers!r}")
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size!r}")

    def key(self) -> tuple:
        """Hashable tuple of all fields, usable as a cache key."""
        return astuple(self)

    def with_(self, **changes) -> "SolverConfig":
        return replace(self, **changes)
