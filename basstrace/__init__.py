# basstrace/__init__.py
from __future__ import annotations
import logging

# ---- Public config / errors ----
from .config import (
    SolverConfig,
    SPEED_OF_SOUND,
    SPEED_OF_SOUND_25C,
)
from .errors import (
    BasstraceError,
    GeometryError,
    ConfigurationError,
    SweepCancelled,
)

# ---- Geometry model ----
from .geometry import (
    Point3,
    Surface,
    Room,
    shoebox,
    extrude,
    half_space,
    build_trimesh,
)

# ---- Physics helpers (vectors, spreading, phasors, levels) ----
from .physics import (
    unit,
    mirror_point,
    pressure_spread,
    air_lin,
    path_amplitude,
    path_phase,
    path_contribution,
    to_db,
)

# ---- Image-source tracing ----
from .tracing import (
    Source,
    ReflectionPath,
    ImageTree,
    build_image_tree,
    enumerate_paths,
    paths_from_tree,
    trace_preview_paths,
)

# ---- Synthesis ----
from .response import FrequencyResponse, frequency_response
from .field import GridSpec, InterferenceField, sample_field
from .scene import Scene

# ---- Sweeps / materials ----
from .bands import log_sweep, linear_sweep, standard_sweep
from .materials import Material, builtin_library, absorption_of

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Config / errors
    "SolverConfig", "SPEED_OF_SOUND", "SPEED_OF_SOUND_25C",
    "BasstraceError", "GeometryError", "ConfigurationError", "SweepCancelled",
    # Geometry
    "Point3", "Surface", "Room", "shoebox", "extrude", "half_space", "build_trimesh",
    # Physics
    "unit", "mirror_point", "pressure_spread", "air_lin",
    "path_amplitude", "path_phase", "path_contribution", "to_db",
    # Tracing
    "Source", "ReflectionPath", "ImageTree", "build_image_tree",
    "enumerate_paths", "paths_from_tree", "trace_preview_paths",
    # Synthesis
    "FrequencyResponse", "frequency_response",
    "GridSpec", "InterferenceField", "sample_field", "Scene",
    # Sweeps / materials
    "log_sweep", "linear_sweep", "standard_sweep",
    "Material", "builtin_library", "absorption_of",
]
