# basstrace/viz.py
from __future__ import annotations
from typing import Optional, Sequence
import numpy as np
import plotly.graph_objects as go

from .field import InterferenceField
from .geometry import Room, build_trimesh
from .response import FrequencyResponse
from .tracing import ReflectionPath, Source


# -----------------------------
# Colors / styles
# -----------------------------

MESH_GREEN = "rgb(0,255,128)"
MESH_GREEN_FAINT = "rgba(0,255,128,0.45)"
GRID_C = "rgba(120,160,130,0.18)"
RAY_NEON_ORANGE = "rgba(255,120,0,0.8)"
TEXT_C = "#e6edf3"

_DARK_AXIS = dict(showbackground=True, backgroundcolor="#000",
                  gridcolor=GRID_C, zerolinecolor=GRID_C, color="#cfd8dc")


def _dark_layout(fig: "go.Figure", title: str = "") -> None:
    fig.update_layout(
        title=title,
        paper_bgcolor="#000", plot_bgcolor="#000",
        font=dict(color=TEXT_C),
        margin=dict(l=50, r=20, t=40, b=40),
        legend=dict(font=dict(color=TEXT_C)),
    )


# -----------------------------
# Room wireframe
# -----------------------------

def _surface_edge_lines(room: Room):
    xs, ys, zs = [], [], []
    for s in room.surfaces:
        V = list(s.vertices) + [s.vertices[0]]
        for p in V:
            xs.append(p.x); ys.append(p.y); zs.append(p.z)
        xs.append(None); ys.append(None); zs.append(None)
    return xs, ys, zs


def make_fig(room: Room, mesh_opacity: float = 0.12) -> "go.Figure":
    mesh = room.mesh if room.mesh is not None else build_trimesh(room.surfaces)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)
    fig = go.Figure()

    fig.add_trace(go.Mesh3d(
        x=V[:, 0], y=V[:, 1], z=V[:, 2],
        i=F[:, 0], j=F[:, 1], k=F[:, 2],
        color=MESH_GREEN,
        opacity=mesh_opacity,
        flatshading=True,
        name="Room"
    ))

    xe, ye, ze = _surface_edge_lines(room)
    fig.add_trace(go.Scatter3d(
        x=xe, y=ye, z=ze,
        mode="lines",
        line=dict(width=2, color=MESH_GREEN_FAINT),
        name="Surfaces"
    ))

    _dark_layout(fig)
    fig.update_layout(
        scene=dict(xaxis=_DARK_AXIS, yaxis=_DARK_AXIS, zaxis=_DARK_AXIS,
                   bgcolor="#000", aspectmode="data"),
        margin=dict(l=0, r=0, b=0, t=30),
    )
    return fig


def add_source_listener(fig: "go.Figure", sources: Sequence[Source], listener=None):
    S = np.asarray([s.position for s in sources], dtype=float).reshape(-1, 3)
    fig.add_trace(go.Scatter3d(
        x=S[:, 0], y=S[:, 1], z=S[:, 2],
        mode="markers",
        marker=dict(size=6, color="rgb(255,32,64)"),
        text=[s.name for s in sources],
        name="Sources"
    ))
    if listener is not None:
        L = np.asarray(listener, dtype=float)
        fig.add_trace(go.Scatter3d(
            x=[L[0]], y=[L[1]], z=[L[2]],
            mode="markers",
            marker=dict(size=6, color="rgb(255,255,255)"),
            name="Listener"
        ))


def add_paths(fig: "go.Figure", paths: Sequence[ReflectionPath], max_paths: int = 40):
    xs, ys, zs = [], [], []
    for p in list(paths)[:int(max_paths)]:
        for q in p.points:
            xs.append(q.x); ys.append(q.y); zs.append(q.z)
        xs.append(None); ys.append(None); zs.append(None)
    if xs:
        fig.add_trace(go.Scatter3d(
            x=xs, y=ys, z=zs,
            mode="lines",
            line=dict(width=2, color=RAY_NEON_ORANGE),
            name=f"Paths ({min(len(paths), int(max_paths))})"
        ))


# -----------------------------
# Frequency response
# -----------------------------

def response_figure(responses: Sequence[FrequencyResponse], reference: float = 1.0,
                    names: Optional[Sequence[str]] = None, title: str = "Frequency response") -> "go.Figure":
    fig = go.Figure()
    for k, r in enumerate(responses):
        name = names[k] if names is not None else f"({r.listener.x:.2f}, {r.listener.y:.2f}, {r.listener.z:.2f})"
        fig.add_trace(go.Scatter(x=r.frequencies, y=r.level_db(reference), mode="lines", name=name))
    _dark_layout(fig, title)
    fig.update_layout(
        xaxis=dict(title="Frequency (Hz)", type="log", color=TEXT_C, gridcolor=GRID_C),
        yaxis=dict(title="Level (dB)", color=TEXT_C, gridcolor=GRID_C),
    )
    return fig


# -----------------------------
# Interference map
# -----------------------------

_AXIS_NAMES = ("x (m)", "y (m)", "z (m)")


def field_figure(field: InterferenceField, frequency_index: int = 0, reference: float = 1.0,
                 dynamic_range_db: float = 40.0, title: Optional[str] = None) -> "go.Figure":
    """
    Heatmap of a 2-D field slice in dB. Not-evaluated cells stay NaN so they
    render blank rather than as silence.
    """
    axes = field.grid.axes()
    keep = [i for i, a in enumerate(axes) if a.size > 1]
    if len(keep) != 2:
        raise ValueError(f"field_figure needs a 2-D slice, grid shape is {field.grid.shape}")
    db = np.squeeze(field.to_db(reference)[frequency_index])
    a0, a1 = keep
    top = float(np.nanmax(db)) if np.any(np.isfinite(db)) else 0.0

    fig = go.Figure(data=[go.Heatmap(
        x=axes[a0], y=axes[a1], z=db.T,
        colorscale="Cividis",
        colorbar=dict(title="dB"),
        zmin=top - float(dynamic_range_db), zmax=top,
        hoverongaps=False,
    )])
    f = float(field.frequencies[frequency_index])
    _dark_layout(fig, title or f"Interference at {f:.1f} Hz")
    fig.update_layout(
        xaxis=dict(title=_AXIS_NAMES[a0], color=TEXT_C),
        yaxis=dict(title=_AXIS_NAMES[a1], color=TEXT_C, scaleanchor="x"),
    )
    return fig
