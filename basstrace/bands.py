# basstrace/bands.py
from __future__ import annotations
import numpy as np

from .errors import ConfigurationError

# Bass range used by the front end (Hz)
BASS_RANGE = (20.0, 200.0)


def log_sweep(f_lo: float, f_hi: float, points_per_octave: int) -> np.ndarray:
    """
    Frequencies from f_lo..f_hi with PPO points per octave.
    e.g., PPO=3 (third-octave spacing), 24 (typical room-response resolution).
    """
    if not (f_lo > 0 and f_hi > f_lo and points_per_octave > 0):
        raise ConfigurationError(
            f"log sweep needs 0 < f_lo < f_hi and points_per_octave > 0, got {(f_lo, f_hi, points_per_octave)}"
        )
    octaves = np.log2(f_hi / f_lo)
    n = int(np.round(octaves * points_per_octave)) + 1
    return f_lo * (2.0 ** (np.arange(n) / points_per_octave))


def linear_sweep(f_lo: float, f_hi: float, step: float) -> np.ndarray:
    """f_lo, f_lo+step, ... up to and including f_hi (when it lands on the grid)."""
    if not (f_lo >= 0 and f_hi >= f_lo and step > 0):
        raise ConfigurationError(f"linear sweep needs 0 <= f_lo <= f_hi and step > 0, got {(f_lo, f_hi, step)}")
    n = int(np.floor((f_hi - f_lo) / step + 1e-9)) + 1
    return f_lo + step * np.arange(n, dtype=float)


def standard_sweep(mode: str) -> np.ndarray:
    """
    Common defaults.
    - bass:    20..200 Hz, 24 per octave
    - sub:     15..120 Hz, 24 per octave
    - third:   20..200 Hz, third octaves
    - linear:  20..200 Hz, 1 Hz steps
    """
    mode = str(mode).lower()
    if mode == "sub":
        return log_sweep(15.0, 120.0, 24)
    if mode == "third":
        return log_sweep(*BASS_RANGE, 3)
    if mode == "linear":
        return linear_sweep(*BASS_RANGE, 1.0)
    # fallback
    return log_sweep(*BASS_RANGE, 24)
