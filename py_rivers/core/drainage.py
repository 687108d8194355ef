"""
Water drainage and raw river tracing.

Land cells are processed from highest to lowest so every cell is finalized
before any cell that can receive its outflow. Each accepted step of a river is
recorded as a RiverSegment; the network builder turns those traces into rivers.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import structlog

from .features import Feature
from .graph import SEA_LEVEL, CellGraph

logger = structlog.get_logger()

MIN_FLUX_TO_FORM_RIVER = 30
OFF_MAP = -1


@dataclass
class RiverSegment:
    """One recorded step of a river: (river, cell[, parent])."""
    river: int
    cell: int  # OFF_MAP when water pours out of the map
    flux: float = 0.0  # flux carried into the cell
    parent: Optional[int] = None


class FlowRouter:
    """Routes precipitation and lake outflow downhill, forming rivers."""

    def __init__(
        self,
        graph: CellGraph,
        h: np.ndarray,
        precipitation: np.ndarray,
        lake_out_cells: Optional[Dict[int, List[Feature]]] = None,
        sea_level: int = SEA_LEVEL,
        min_flux_to_form_river: float = MIN_FLUX_TO_FORM_RIVER,
    ):
        """
        Initialize the router.

        Args:
            graph: CellGraph with zeroed flux/river/confluence arrays
            h: Resolved heights
            precipitation: Precipitation per grid cell
            lake_out_cells: Outlet cell -> lakes draining through it
        """
        self.graph = graph
        self.h = h
        self.precipitation = precipitation
        self.lake_out_cells = lake_out_cells or {}
        self.sea_level = sea_level
        self.min_flux_to_form_river = min_flux_to_form_river

        self.segments: List[RiverSegment] = []
        self._first_segments: Dict[int, RiverSegment] = {}
        self.next_river_id = 1  # first river id is 1

    def drain_water(self) -> List[RiverSegment]:
        """
        Flow water downhill and record river segments.

        Port of FMG's drainWater().
        """
        graph = self.graph
        h = self.h
        flux = graph.flux
        river_ids = graph.river_ids

        land = [i for i in range(len(h)) if h[i] >= self.sea_level]
        land.sort(key=lambda i: h[i], reverse=True)

        for i in land:
            self._add_flux(i, self.precipitation[graph.grid_index(i)])

            # lakes drain through this cell if they are not evaporated entirely
            lakes = [
                lake for lake in self.lake_out_cells.get(i, [])
                if lake.out_cell == i and lake.flux > lake.evaporation
            ]
            for lake in lakes:
                self._drain_lake(i, lake)

            # tributaries of the drained lakes join the outlet river basin
            if lakes:
                outlet = lakes[0].outlet
                for lake in lakes:
                    for fork in lake.inlets or []:
                        segment = self._first_segments.get(fork)
                        if segment is not None:
                            segment.parent = outlet

            # near-border cell: pour water out of the screen
            if graph.cell_border_flags[i] and river_ids[i]:
                self._record(int(river_ids[i]), OFF_MAP, flux[i])
                continue

            target = self._downhill_cell(i, lakes)
            if target is None or h[i] <= h[target]:
                continue  # cell is depressed

            if flux[i] < self.min_flux_to_form_river:
                # flux is too small to operate as a river
                if h[target] >= self.sea_level:
                    self._add_flux(target, flux[i])
                continue

            if not river_ids[i]:
                river_ids[i] = self._new_river(i, flux[i])

            self.flow_down(target, int(flux[i]), int(river_ids[i]))

        logger.info(
            "Water drained",
            land_cells=len(land),
            segments=len(self.segments),
            raw_rivers=self.next_river_id - 1,
        )
        return self.segments

    def _drain_lake(self, outlet_cell: int, lake: Feature) -> None:
        graph = self.graph
        river_ids = graph.river_ids

        lake_cell = next(
            (c for c in graph.cell_neighbors[outlet_cell]
             if self.h[c] < self.sea_level and graph.feature_of(c) is lake),
            None,
        )
        if lake_cell is None:
            logger.warning("Lake outlet has no adjacent lake cell", lake=lake.id, cell=outlet_cell)
            return

        self._add_flux(lake_cell, max(lake.flux - lake.evaporation, 0))

        # allow chain lakes to retain identity
        if lake.river is None or river_ids[lake_cell] != lake.river:
            same_river = lake.river is not None and any(
                river_ids[c] == lake.river for c in graph.cell_neighbors[lake_cell]
            )
            if same_river:
                river_ids[lake_cell] = lake.river
                self._record(lake.river, lake_cell, graph.flux[lake_cell])
            else:
                river_ids[lake_cell] = self._new_river(lake_cell, graph.flux[lake_cell])

        lake.outlet = int(river_ids[lake_cell])
        self.flow_down(outlet_cell, int(graph.flux[lake_cell]), lake.outlet)

    def _downhill_cell(self, cell_id: int, lakes: List[Feature]) -> Optional[int]:
        graph = self.graph
        neighbors = graph.cell_neighbors[cell_id]

        if cell_id in self.lake_out_cells:
            # make sure water does not flow back into the source lake
            lake_ids = {lake.id for lake in lakes}
            neighbors = [
                c for c in neighbors
                if graph.feature_ids is None or int(graph.feature_ids[c]) not in lake_ids
            ]
        else:
            haven = graph.haven_of(cell_id)
            if haven is not None:
                return haven

        if not neighbors:
            return None
        return min(neighbors, key=lambda c: self.h[c])

    def flow_down(self, to_cell: int, from_flux: int, river: int) -> None:
        """
        Pass flux into the downhill cell, resolving confluences.

        Port of FMG's flowDown(). The larger-flux river keeps the cell and the
        other one becomes its tributary; ties favor the incoming river.
        """
        graph = self.graph
        flux = graph.flux
        confluences = graph.confluences
        river_ids = graph.river_ids
        on_land = self.h[to_cell] >= self.sea_level

        to_flux = int(flux[to_cell]) - int(confluences[to_cell])
        to_river = int(river_ids[to_cell])

        if to_river and to_river != river:
            if from_flux >= to_flux:
                confluences[to_cell] += flux[to_cell]
                if on_land:
                    self._set_parent(to_river, river)
                river_ids[to_cell] = river
            else:
                confluences[to_cell] += from_flux
                if on_land:
                    self._set_parent(river, to_river)
        elif not to_river:
            river_ids[to_cell] = river

        if on_land:
            self._add_flux(to_cell, from_flux)
        else:
            self._pour_into_water_body(to_cell, from_flux, river)

        self._record(river, to_cell, from_flux)

    def _pour_into_water_body(self, cell_id: int, from_flux: float, river: int) -> None:
        water_body = self.graph.feature_of(cell_id)
        if water_body is None or not water_body.is_lake:
            return

        if water_body.river is None or from_flux > water_body.entering_flux:
            water_body.river = river
            water_body.entering_flux = from_flux
        water_body.flux += from_flux
        if water_body.inlets is None:
            water_body.inlets = []
        water_body.inlets.append(river)

    def _set_parent(self, river: int, parent: int) -> None:
        segment = self._first_segments.get(river)
        if segment is not None:
            segment.parent = parent

    def _new_river(self, cell_id: int, cell_flux: float) -> int:
        river = self.next_river_id
        self.next_river_id += 1
        self._record(river, cell_id, cell_flux)
        return river

    def _record(self, river: int, cell_id: int, cell_flux: float) -> None:
        segment = RiverSegment(river=int(river), cell=int(cell_id), flux=float(cell_flux))
        self.segments.append(segment)
        self._first_segments.setdefault(segment.river, segment)

    def _add_flux(self, cell_id: int, amount: float) -> None:
        self.graph.flux[cell_id] = int(self.graph.flux[cell_id]) + int(amount)
