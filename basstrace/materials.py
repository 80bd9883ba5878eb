# basstrace/materials.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

from .errors import GeometryError

@dataclass(frozen=True)
class Material:
    name: str
    absorption: float            # broadband, representative of 63..125 Hz

    def __post_init__(self) -> None:
        if not (0.0 <= self.absorption <= 1.0):
            raise GeometryError(f"material {self.name!r}: absorption {self.absorption} outside [0, 1]")

def builtin_library() -> Dict[str, Material]:
    """Small seed library; values are illustrative low-frequency coefficients."""
    base: List[Material] = [
        # --- Hard surfaces ---
        Material("Concrete", 0.01),
        Material("Brick (painted)", 0.01),
        Material("Plaster on masonry", 0.02),
        # --- Lightweight constructions (panel absorption at bass) ---
        Material("Plasterboard on studs", 0.20),
        Material("Wood panelling", 0.25),
        Material("Glass (single pane)", 0.30),
        # --- Floors ---
        Material("Wood floor", 0.15),
        Material("Carpet (heavy, on pad)", 0.08),
        # --- Treatment ---
        Material("Acoustic tile (mineral fiber)", 0.40),
        Material("Bass trap (membrane)", 0.70),
        Material("Open window", 1.00),
    ]
    return {m.name: m for m in base}

def absorption_of(name: str) -> float:
    lib = builtin_library()
    try:
        return lib[name].absorption
    except KeyError:
        raise GeometryError(f"unknown material {name!r}; known: {sorted(lib)}") from None
