# basstrace/physics.py
from __future__ import annotations
import math
import numpy as np

from .config import SolverConfig
from .errors import ConfigurationError

# -----------------------------
# Vector math helpers
# -----------------------------

def unit(v: np.ndarray) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    n = np.where(n == 0, 1.0, n)
    return v / n

def mirror_point(p: np.ndarray, origin: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Reflect ``p`` through the plane through ``origin`` with unit ``normal``."""
    p = np.asarray(p, dtype=float)
    d = float(np.dot(p - origin, normal))
    return p - 2.0 * d * normal

# -----------------------------
# Spreading & air absorption
# -----------------------------

def pressure_spread(distance_m: float) -> float:
    # amplitude convention ~ 1/r, no clipping: callers reject r <= 0
    return 1.0 / float(distance_m)

def air_lin(db_per_m: float, d_m: float) -> float:
    if db_per_m <= 0.0 or d_m <= 0.0:
        return 1.0
    return 10.0 ** (-(db_per_m * d_m) / 20.0)

# -----------------------------
# Path contributions
# -----------------------------

def check_frequencies(frequency) -> np.ndarray:
    f = np.asarray(frequency, dtype=float)
    if not np.all(np.isfinite(f)):
        raise ConfigurationError("frequencies must be finite")
    if np.any(f < 0.0):
        raise ConfigurationError(f"frequencies must be >= 0 Hz, got min {float(np.min(f))}")
    return f

def path_amplitude(length: float, attenuation: float, cfg: SolverConfig,
                   source_amplitude: float = 1.0) -> float:
    """Real amplitude of one path: spreading, reflection losses and air."""
    if not (length > cfg.distance_tol):
        raise ConfigurationError(
            f"path length {length!r} is not positive; listener coincides with a source"
        )
    return float(source_amplitude) * float(attenuation) * pressure_spread(length) \
        * air_lin(cfg.air_db_per_m, length)

def path_phase(length: float, frequency, c: float):
    """Phase lag in radians, 2*pi*f*length/c. Not wrapped."""
    f = np.asarray(frequency, dtype=float)
    return 2.0 * math.pi * f * (float(length) / float(c))

def path_contribution(path, frequency, cfg: SolverConfig, source_amplitude: float = 1.0):
    """
    Complex pressure phasor of ``path`` (anything with ``length`` and
    ``attenuation``) at ``frequency`` Hz. ``frequency`` may be a scalar or an
    array; the result has the same shape.
    """
    f = check_frequencies(frequency)
    amp = path_amplitude(path.length, path.attenuation, cfg, source_amplitude)
    phase = path_phase(path.length, f, cfg.c)
    out = amp * (np.cos(-phase) + 1j * np.sin(-phase))
    if out.ndim == 0:
        return complex(out)
    return out

# -----------------------------
# Levels
# -----------------------------

def to_db(magnitude, reference: float = 1.0, floor: float = 1e-20):
    """20*log10(|p| / reference). NaN (not evaluated) stays NaN."""
    m = np.asarray(magnitude, dtype=float)
    ref = max(float(reference), floor)
    with np.errstate(invalid="ignore"):
        return 20.0 * np.log10(np.maximum(m, floor) / ref)
