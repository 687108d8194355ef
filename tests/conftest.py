"""Shared builders for small hand-made cell graphs."""

import numpy as np
import pytest

from py_rivers.core.features import Feature
from py_rivers.core.graph import CellGraph


def make_graph(points, neighbors, heights, border=None, width=100.0, height=100.0, **kwargs):
    """Build a CellGraph from plain lists."""
    n_cells = len(heights)
    return CellGraph(
        points=np.array(points, dtype=np.float64),
        cell_neighbors=[list(nb) for nb in neighbors],
        cell_border_flags=np.array(border or [0] * n_cells, dtype=np.uint8),
        heights=np.array(heights, dtype=np.uint8),
        graph_width=width,
        graph_height=height,
        **kwargs,
    )


def chain_graph(heights, border=None, spacing=10.0, **kwargs):
    """Cells in one row, each connected to its left and right neighbor."""
    n_cells = len(heights)
    points = [(10 + k * spacing, 50.0) for k in range(n_cells)]
    neighbors = [[c for c in (k - 1, k + 1) if 0 <= c < n_cells] for k in range(n_cells)]
    width = 20 + (n_cells - 1) * spacing
    return make_graph(points, neighbors, heights, border=border, width=width, height=100.0, **kwargs)


def with_hydrology(graph):
    graph.reset_hydrology()
    return graph


@pytest.fixture
def river_chain():
    """Five land cells descending to the map edge."""
    return chain_graph([60, 50, 40, 30, 25], border=[0, 0, 0, 0, 1])


@pytest.fixture
def tributary_graph():
    """Two tributaries (A: 0-1, B: 2-3) joining at cell 4, draining 4-5-6 off the map."""
    points = [(10, 10), (20, 20), (50, 10), (40, 20), (30, 30), (30, 40), (30, 50)]
    neighbors = [[1], [0, 4], [3], [2, 4], [1, 3, 5], [4, 6], [5]]
    heights = [70, 60, 68, 58, 40, 30, 25]
    border = [0, 0, 0, 0, 0, 0, 1]
    graph = make_graph(points, neighbors, heights, border=border, width=60.0, height=60.0)
    precipitation = np.array([30, 30, 50, 50, 10, 10, 10])
    return graph, precipitation


@pytest.fixture
def lake_graph():
    """A river crossing a one-cell lake (cell 2) before reaching the ocean (cell 6)."""
    heights = [60, 50, 10, 30, 25, 22, 5]
    border = [0, 0, 0, 0, 0, 0, 1]
    lake = Feature(id=1, type="lake", land=False, border=False, cells=1, first_cell=2)
    island = Feature(id=2, type="island", land=True, border=False, cells=5, first_cell=0)
    ocean = Feature(id=3, type="ocean", land=False, border=True, cells=1, first_cell=6)
    graph = chain_graph(
        heights,
        border=border,
        features=[None, lake, island, ocean],
        feature_ids=np.array([2, 2, 1, 2, 2, 2, 3], dtype=np.uint16),
    )
    precipitation = np.array([40, 40, 0, 40, 40, 40, 0])
    return graph, precipitation
