import numpy as np
import plotly.graph_objects as go
import pytest

from ..config import SolverConfig
from ..field import GridSpec, sample_field
from ..geometry import shoebox
from ..response import frequency_response
from ..tracing import Source, enumerate_paths
from ..viz import add_paths, add_source_listener, field_figure, make_fig, response_figure


ROOM = shoebox(4.0, 3.0, 2.5, absorption=0.2)
SRC = Source((1.0, 1.0, 1.2), name="sub")
LIS = (3.0, 2.0, 1.2)
CFG = SolverConfig(max_order=1)


def test_scene_figure() -> None:
    fig = make_fig(ROOM)
    assert isinstance(fig, go.Figure)
    assert len(fig.data) == 2
    add_source_listener(fig, [SRC], LIS)
    add_paths(fig, enumerate_paths(ROOM, SRC, LIS, CFG), max_paths=3)
    assert [t.name for t in fig.data][2:] == ["Sources", "Listener", "Paths (3)"]


def test_response_figure() -> None:
    resp = frequency_response(ROOM, SRC, LIS, np.linspace(20, 200, 10), CFG)
    fig = response_figure([resp], reference=1.0, names=["seat"])
    assert fig.data[0].name == "seat"
    assert fig.layout.xaxis.type == "log"


def test_field_figure_needs_a_slice() -> None:
    flat = sample_field(ROOM, SRC, GridSpec.horizontal(0.5, 3.5, 0.5, 2.5, 1.0, 0.5), [50.0], CFG)
    fig = field_figure(flat, 0)
    assert np.asarray(fig.data[0].z).shape == (5, 7)

    box = sample_field(ROOM, SRC, GridSpec((0.5, 0.5, 0.5), (1.5, 1.5, 1.5), 0.5), [50.0], CFG)
    with pytest.raises(ValueError):
        field_figure(box, 0)
