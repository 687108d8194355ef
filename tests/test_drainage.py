"""Tests for water drainage and raw river tracing."""

import numpy as np
import pytest

from py_rivers.core.drainage import OFF_MAP, FlowRouter
from py_rivers.core.features import Feature

from .conftest import chain_graph, make_graph, with_hydrology


def trace(segments, river):
    return [s.cell for s in segments if s.river == river]


class TestDrainWater:
    """Test downhill flow and river formation."""

    def test_chain_forms_single_river(self, river_chain):
        graph = with_hydrology(river_chain)
        h = graph.heights.astype(np.float64)
        precipitation = np.full(5, 50)

        segments = FlowRouter(graph, h, precipitation).drain_water()

        assert {s.river for s in segments} == {1}
        assert trace(segments, 1) == [0, 1, 2, 3, 4, OFF_MAP]
        assert [s.flux for s in segments] == [50, 50, 100, 150, 200, 250]
        assert graph.flux.tolist() == [50, 100, 150, 200, 250]
        assert graph.river_ids.tolist() == [1, 1, 1, 1, 1]

    def test_weak_flux_accumulates_before_forming_river(self, river_chain):
        graph = with_hydrology(river_chain)
        h = graph.heights.astype(np.float64)
        precipitation = np.full(5, 10)

        segments = FlowRouter(graph, h, precipitation).drain_water()

        assert trace(segments, 1) == [2, 3, 4, OFF_MAP]
        assert graph.river_ids.tolist() == [0, 0, 1, 1, 1]
        assert graph.flux.tolist() == [10, 20, 30, 40, 50]

    def test_no_river_below_threshold(self, river_chain):
        graph = with_hydrology(river_chain)
        h = graph.heights.astype(np.float64)

        segments = FlowRouter(graph, h, np.full(5, 1)).drain_water()

        assert segments == []
        assert not graph.river_ids.any()

    def test_flux_is_conserved_without_rivers(self, river_chain):
        graph = with_hydrology(river_chain)
        h = graph.heights.astype(np.float64)

        FlowRouter(graph, h, np.full(5, 5), min_flux_to_form_river=1000).drain_water()

        # all precipitation ends up in the lowest cell
        assert graph.flux[4] == 25

    def test_depressed_cell_keeps_its_water(self):
        graph = with_hydrology(chain_graph([60, 30, 50], border=[0, 0, 1]))
        h = graph.heights.astype(np.float64)

        segments = FlowRouter(graph, h, np.array([50, 50, 0])).drain_water()

        # cell 1 is a pit: the river from cell 0 ends there
        assert trace(segments, 1) == [0, 1]
        assert graph.flux[1] == 100

    def test_haven_overrides_lowest_neighbor(self):
        graph = chain_graph([25, 50, 30, 10], border=[0, 0, 0, 1], haven=np.array([0, 2, 0, 0]))
        graph = with_hydrology(graph)
        h = graph.heights.astype(np.float64)

        segments = FlowRouter(graph, h, np.array([0, 40, 0, 0])).drain_water()

        assert trace(segments, 1)[:2] == [1, 2]

    def test_tributary_becomes_child_of_larger_river(self, tributary_graph):
        graph, precipitation = tributary_graph
        graph = with_hydrology(graph)
        h = graph.heights.astype(np.float64)

        segments = FlowRouter(graph, h, precipitation).drain_water()

        assert trace(segments, 1) == [0, 1, 4]
        assert trace(segments, 2) == [2, 3, 4, 5, 6, OFF_MAP]
        first = {s.river: s for s in reversed(segments)}
        assert first[1].parent == 2
        assert first[2].parent is None
        assert graph.river_ids[4] == 2
        assert graph.confluences[4] == 60
        assert graph.flux[4] == 170

    def test_tie_goes_to_incoming_river(self, tributary_graph):
        graph, _ = tributary_graph
        graph = with_hydrology(graph)
        h = graph.heights.astype(np.float64)
        precipitation = np.array([30, 30, 30, 30, 10, 10, 10])

        segments = FlowRouter(graph, h, precipitation).drain_water()

        first = {s.river: s for s in reversed(segments)}
        assert first[1].parent == 2
        assert graph.river_ids[4] == 2


class TestFlowDown:
    """Test confluence resolution when rivers meet."""

    def make_router(self, river_chain):
        graph = with_hydrology(river_chain)
        h = graph.heights.astype(np.float64)
        return FlowRouter(graph, h, np.zeros(5))

    def test_stronger_incoming_river_takes_cell(self, river_chain):
        router = self.make_router(river_chain)
        graph = router.graph
        router._record(2, 2, 40)
        graph.river_ids[2] = 2
        graph.flux[2] = 40
        router._record(1, 1, 50)

        router.flow_down(2, 50, 1)

        assert graph.river_ids[2] == 1
        assert graph.confluences[2] == 40
        assert graph.flux[2] == 90
        assert router._first_segments[2].parent == 1

    def test_weaker_incoming_river_becomes_tributary(self, river_chain):
        router = self.make_router(river_chain)
        graph = router.graph
        router._record(2, 2, 80)
        graph.river_ids[2] = 2
        graph.flux[2] = 80
        router._record(1, 1, 30)

        router.flow_down(2, 30, 1)

        assert graph.river_ids[2] == 2
        assert graph.confluences[2] == 30
        assert graph.flux[2] == 110
        assert router._first_segments[1].parent == 2
        assert router._first_segments[2].parent is None

    def test_same_river_is_not_a_confluence(self, river_chain):
        router = self.make_router(river_chain)
        graph = router.graph
        router._record(1, 1, 30)
        graph.river_ids[2] = 1

        router.flow_down(2, 30, 1)

        assert graph.confluences[2] == 0
        assert graph.flux[2] == 30

    def test_river_flowing_into_lake_updates_lake(self, lake_graph):
        graph, precipitation = lake_graph
        graph = with_hydrology(graph)
        h = graph.heights.astype(np.float64)
        router = FlowRouter(graph, h, precipitation)
        lake = graph.features[1]
        router._record(1, 1, 80)

        router.flow_down(2, 80, 1)
        router._record(2, 3, 90)
        router.flow_down(2, 90, 2)

        assert lake.river == 2
        assert lake.entering_flux == 90
        assert lake.flux == 170
        assert lake.inlets == [1, 2]
        # water cells never accumulate channel flux
        assert graph.flux[2] == 0


class RecordingRouter(FlowRouter):
    """Router remembering each processed cell and its flux at that moment."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.visits = []

    def _downhill_cell(self, cell_id, lakes):
        self.visits.append((cell_id, int(self.graph.flux[cell_id])))
        return super()._downhill_cell(cell_id, lakes)


@pytest.fixture
def twin_lakes():
    """Lakes at cells 0 and 2 both draining through cell 1, fed from cells 5 and 6."""
    lake_a = Feature(id=1, type="lake", land=False, border=False, cells=1, first_cell=0)
    lake_b = Feature(id=2, type="lake", land=False, border=False, cells=1, first_cell=2)
    island = Feature(id=3, type="island", land=True, border=False, cells=4, first_cell=1)
    ocean = Feature(id=4, type="ocean", land=False, border=True, cells=1, first_cell=4)
    graph = make_graph(
        [(10, 50), (20, 50), (30, 50), (20, 60), (20, 70), (10, 40), (30, 40)],
        [[1, 5], [0, 2, 3], [1, 6], [1, 4], [3], [0], [2]],
        [10, 30, 10, 25, 5, 60, 60],
        border=[0, 0, 0, 0, 1, 0, 0],
        features=[None, lake_a, lake_b, island, ocean],
        feature_ids=np.array([1, 3, 2, 3, 4, 3, 3], dtype=np.uint16),
    )
    for lake in (lake_a, lake_b):
        lake.evaporation = 5
        lake.out_cell = 1
    return with_hydrology(graph), lake_a, lake_b


class TestLakeOutlets:
    """Test lakes draining through their outlet cells."""

    def test_two_lakes_share_an_outlet(self, twin_lakes):
        graph, lake_a, lake_b = twin_lakes
        h = graph.heights.astype(np.float64)
        precipitation = np.array([0, 40, 0, 40, 0, 50, 35])
        router = FlowRouter(graph, h, precipitation, {1: [lake_a, lake_b]})

        segments = router.drain_water()

        assert trace(segments, 1) == [5, 0, 1, 3, 4]
        assert trace(segments, 2) == [6, 2, 1]
        assert lake_a.outlet == 1
        assert lake_b.outlet == 2
        # excess flux minus evaporation leaves each lake
        assert graph.flux[0] == 45
        assert graph.flux[2] == 30
        # the weaker outlet river joins the stronger one at the shared cell
        assert graph.river_ids[1] == 1
        assert graph.confluences[1] == 30
        assert graph.flux[1] == 115
        # inlets of both lakes are attached to the first lake's outlet river
        assert router._first_segments[1].parent == 1
        assert router._first_segments[2].parent == 1

    def test_evaporated_lake_does_not_drain(self, twin_lakes):
        graph, lake_a, lake_b = twin_lakes
        lake_a.evaporation = 1000
        lake_b.evaporation = 1000
        h = graph.heights.astype(np.float64)
        precipitation = np.array([0, 40, 0, 40, 0, 50, 35])

        FlowRouter(graph, h, precipitation, {1: [lake_a, lake_b]}).drain_water()

        assert lake_a.outlet is None
        assert lake_b.outlet is None
        assert graph.flux[0] == 0
        assert graph.flux[2] == 0


class TestProcessingOrder:
    """Test the descending-height processing invariant."""

    @pytest.mark.parametrize("scenario", ["tributaries", "lakes"])
    def test_cells_are_final_when_processed(self, scenario, tributary_graph, twin_lakes):
        if scenario == "tributaries":
            graph, precipitation = tributary_graph
            graph = with_hydrology(graph)
            lake_out_cells = None
        else:
            graph, lake_a, lake_b = twin_lakes
            precipitation = np.array([0, 40, 0, 40, 0, 50, 35])
            lake_out_cells = {1: [lake_a, lake_b]}
        h = graph.heights.astype(np.float64)
        router = RecordingRouter(graph, h, precipitation, lake_out_cells)

        router.drain_water()

        visited = [cell for cell, _ in router.visits]
        heights = [h[cell] for cell in visited]
        assert heights == sorted(heights, reverse=True)
        # nothing is added to a land cell after it has been processed
        for cell, flux in router.visits:
            assert graph.flux[cell] == flux
