from __future__ import annotations

import logging
import numpy as np
import streamlit as st

from basstrace import (
    # Config & errors
    SolverConfig, SPEED_OF_SOUND, BasstraceError,
    # Geometry / tracing
    shoebox, Source, enumerate_paths,
    # Sweeps / materials
    standard_sweep, builtin_library,
)
from basstrace.geometry import SHOEBOX_FACES
from basstrace.caching import build_scene_cached, response_cached, field_cached
from basstrace.logging_config import setup_logging
from basstrace.viz import make_fig, add_source_listener, add_paths, response_figure, field_figure

# ===== Streamlit setup =====
st.set_page_config(page_title="Basstrace", layout="wide")
logger = setup_logging(logging.INFO)

# ===== Style =====
st.markdown("""
<style>
:root{ --bg:#0d0f12; --panel:#12161c; --text:#e6edf3; --line:#2a2f36; --accent:#4bd0e0; }
html, body, [data-testid=stAppViewContainer], [data-testid=stHeader]{ background:var(--bg)!important; color:var(--text)!important; }
[data-testid=stSidebar]{ background:var(--panel)!important; color:var(--text)!important; box-shadow: inset 0 0 0 1px var(--line); }
.stButton>button{ background:#141a22; color:var(--text); border:1px solid var(--line); border-radius:8px; }
.js-plotly-plot .colorbar text { fill: #e6edf3 !important; }
</style>
""", unsafe_allow_html=True)

CUSTOM = "(custom α)"


# ===== Main UI =====
def main():
    st.title("Basstrace - Low-Frequency Room Response")
    st.caption("Image-source paths summed coherently: peaks and dips of the bass response, and where they sit in the room.")

    lib = builtin_library()
    mat_names = [CUSTOM] + list(lib.keys())

    # --- Sidebar forms ---
    with st.sidebar:
        with st.form("room_form"):
            st.subheader("1) Room (m)")
            lx = st.number_input("Length X", 0.5, 100.0, 5.0, 0.1)
            ly = st.number_input("Width Y", 0.5, 100.0, 4.0, 0.1)
            lz = st.number_input("Height Z", 0.5, 30.0, 2.5, 0.1)
            st.form_submit_button("Apply room", use_container_width=True)

        with st.form("mat_form"):
            st.subheader("2) Surfaces")
            absorption = []
            for face in SHOEBOX_FACES:
                c1, c2 = st.columns([3, 2])
                with c1:
                    mat = st.selectbox(f"{face.capitalize()}", mat_names, index=0, key=f"mat_{face}")
                with c2:
                    a = st.number_input("α", 0.0, 1.0, 0.10, 0.01, key=f"alpha_{face}")
                absorption.append(lib[mat].absorption if mat != CUSTOM else float(a))
            st.form_submit_button("Apply surfaces", use_container_width=True)

        with st.form("pos_form"):
            st.subheader("3) Positions (m)")
            n_src = st.radio("Sources", [1, 2], index=0, horizontal=True)
            S1 = (st.number_input("Source 1 X", value=0.5), st.number_input("Source 1 Y", value=0.5),
                  st.number_input("Source 1 Z", value=0.3))
            S2 = (st.number_input("Source 2 X", value=4.5), st.number_input("Source 2 Y", value=0.5),
                  st.number_input("Source 2 Z", value=0.3))
            gain2 = st.slider("Source 2 gain", 0.0, 2.0, 1.0, 0.05)
            L = (st.number_input("Listener X", value=2.5), st.number_input("Listener Y", value=2.8),
                 st.number_input("Listener Z", value=1.2))
            st.form_submit_button("Apply positions", use_container_width=True)

        with st.form("sim_form"):
            st.subheader("4) Solver")
            c = st.number_input("Speed of sound (m/s)", 300.0, 400.0, SPEED_OF_SOUND, 0.1)
            max_order = st.slider("Max reflection order", 0, 8, 3)
            max_distance = st.number_input("Max path length (m, 0 = unlimited)", 0.0, 1000.0, 0.0, 1.0)
            air_dbm = st.slider("Air attenuation (dB/m)", 0.0, 0.1, 0.0, 0.001)
            pruning = st.selectbox("Pruning", ["permissive", "strict"], index=0)
            workers = st.slider("Worker threads (field)", 0, 16, 4)
            sweep = st.selectbox("Sweep", ["bass", "sub", "third", "linear"], index=0)
            st.form_submit_button("Apply solver", use_container_width=True)

        with st.form("field_form"):
            st.subheader("5) Interference map")
            slice_z = st.slider("Slice height (m)", 0.05, float(lz) - 0.05, min(1.2, float(lz) / 2), 0.05)
            spacing = st.select_slider("Grid spacing (m)", [0.02, 0.05, 0.1, 0.2, 0.25], value=0.1)
            field_f = st.number_input("Map frequency (Hz)", 1.0, 500.0, 60.0, 1.0)
            dyn_range = st.slider("Dynamic range (dB)", 10.0, 80.0, 40.0, 5.0)
            st.form_submit_button("Apply map", use_container_width=True)

        with st.form("viz_form"):
            st.subheader("6) Visualization")
            vis_paths = st.slider("Path preview count", 0, 300, 40, 10)
            mesh_opacity = st.slider("Room opacity", 0.0, 1.0, 0.12, 0.02)
            st.form_submit_button("Apply viz", use_container_width=True)

    # --- Cache keys ---
    dims = (float(lx), float(ly), float(lz))
    absorption = tuple(float(a) for a in absorption)
    sources = [(*map(float, S1), 1.0, "Source 1")]
    if n_src == 2:
        sources.append((*map(float, S2), float(gain2), "Source 2"))
    sources = tuple(sources)
    listener = tuple(map(float, L))

    try:
        cfg = SolverConfig(
            c=float(c),
            air_db_per_m=float(air_dbm),
            max_order=int(max_order),
            max_distance=float(max_distance) if max_distance > 0 else float("inf"),
            pruning=str(pruning),
            workers=int(workers),
        )
        scene = build_scene_cached(dims, absorption, sources, cfg.key())
    except BasstraceError as e:
        st.error(f"Invalid setup: {e}")
        return

    freqs = tuple(map(float, standard_sweep(sweep)))

    scene_tab, response_tab, field_tab = st.tabs(["Scene", "Response", "Interference"])

    # ===== Scene =====
    with scene_tab:
        fig = make_fig(scene.room, mesh_opacity=float(mesh_opacity))
        add_source_listener(fig, scene.sources, listener)
        try:
            paths = enumerate_paths(scene.room, scene.sources[0], listener, cfg, tree=scene.trees[0])
        except BasstraceError as e:
            st.error(f"Listener rejected: {e}")
            paths = []
        if vis_paths > 0:
            add_paths(fig, paths, max_paths=int(vis_paths))
        st.plotly_chart(fig, use_container_width=True)
        counts = [len(t) for t in scene.trees]
        st.caption(f"Volume: {scene.room.volume:.2f} m³ · Image sources: {', '.join(map(str, counts))} · "
                   f"Paths to listener (source 1): {len(paths)}")
        if paths:
            rows = [{
                "Order": p.order,
                "Surfaces": " → ".join(s.name for s in p.surfaces) or "direct",
                "Length (m)": round(p.length, 3),
                "Delay (ms)": round(1e3 * p.travel_time(cfg.c), 2),
                "Attenuation": round(p.attenuation, 3),
            } for p in paths[:200]]
            st.dataframe(rows, use_container_width=True, hide_index=True)

    # ===== Response =====
    with response_tab:
        try:
            resp = response_cached(dims, absorption, sources, cfg.key(), listener, freqs)
        except BasstraceError as e:
            st.error(f"Response failed: {e}")
        else:
            ref = scene.reference_level(float(np.median(freqs)))
            st.plotly_chart(response_figure([resp], reference=ref, names=["Listener"],
                                            title="Level re 1 m in front of the sources"),
                            use_container_width=True)
            db = resp.level_db(ref)
            k_lo, k_hi = int(np.argmin(db)), int(np.argmax(db))
            st.caption(f"{resp.path_count} paths · deepest dip {db[k_lo]:.1f} dB at {resp.frequencies[k_lo]:.1f} Hz · "
                       f"highest peak {db[k_hi]:.1f} dB at {resp.frequencies[k_hi]:.1f} Hz")

    # ===== Interference =====
    with field_tab:
        if st.button("Compute interference map", type="primary", use_container_width=True):
            grid = ((0.0, 0.0, float(slice_z)), (dims[0], dims[1], float(slice_z)), float(spacing))
            try:
                fld = field_cached(dims, absorption, sources, cfg.key(), grid, (float(field_f),))
            except BasstraceError as e:
                st.error(f"Field sweep failed: {e}")
            else:
                ref = scene.reference_level(float(field_f))
                st.plotly_chart(field_figure(fld, 0, reference=ref, dynamic_range_db=float(dyn_range)),
                                use_container_width=True)
                n_out = int(np.sum(fld.not_evaluated))
                st.caption(f"Grid {fld.grid.shape[0]}×{fld.grid.shape[1]} · {n_out} cells not evaluated"
                           + (f" ({len(fld.errors)} rejected)" if fld.errors else ""))
        else:
            st.info("Pick a slice in the sidebar and press the button to sample the field.")


if __name__ == "__main__":
    main()
