# basstrace/caching.py
from __future__ import annotations

import streamlit as st

from .config import SolverConfig
from .field import GridSpec, InterferenceField
from .geometry import SHOEBOX_FACES, shoebox
from .response import FrequencyResponse
from .scene import Scene
from .tracing import Source

# Cache keys are plain tuples so streamlit can hash them:
#   dims       = (lx, ly, lz)
#   absorption = one value per SHOEBOX_FACES entry
#   sources    = ((x, y, z, amplitude, name), ...)
#   cfg_key    = SolverConfig.key()


@st.cache_resource(show_spinner=False)
def build_scene_cached(dims: tuple, absorption: tuple, sources: tuple, cfg_key: tuple) -> Scene:
    room = shoebox(*dims, absorption=dict(zip(SHOEBOX_FACES, absorption)))
    srcs = tuple(Source((x, y, z), amp, name) for x, y, z, amp, name in sources)
    return Scene(room, srcs, SolverConfig(*cfg_key))


@st.cache_data(show_spinner=True)
def response_cached(dims: tuple, absorption: tuple, sources: tuple, cfg_key: tuple,
                    listener: tuple, freqs: tuple) -> FrequencyResponse:
    scene = build_scene_cached(dims, absorption, sources, cfg_key)
    return scene.response(listener, list(freqs))


@st.cache_data(show_spinner=True)
def field_cached(dims: tuple, absorption: tuple, sources: tuple, cfg_key: tuple,
                 grid: tuple, freqs: tuple) -> InterferenceField:
    """``grid`` is ``(lower, upper, spacing)``."""
    scene = build_scene_cached(dims, absorption, sources, cfg_key)
    lower, upper, spacing = grid
    return scene.interference_field(GridSpec(lower, upper, spacing), list(freqs))
