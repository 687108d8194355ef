"""
Water-body features and the lake bookkeeping used by river generation.

This module handles:
- The Feature record produced by feature markup (ocean, lake, island)
- Lake shorelines and initial surface heights
- Lake climate data: shoreline flux, temperature, evaporation and outlet cell
- Cleanup of transient lake fields once rivers are defined
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, Field

from ..utils.numbers import rn
from .graph import SEA_LEVEL, CellGraph

logger = structlog.get_logger()


@dataclass
class Feature:
    """Represents a geographic feature (ocean, lake, island)."""

    id: int
    type: str  # "ocean", "lake", "island"
    land: bool
    border: bool  # touches map edge
    cells: int  # total cells in feature
    first_cell: int
    height: Optional[float] = None  # lake surface height
    shoreline: Optional[List[int]] = None  # land cells around a lake

    # Lake hydrology bookkeeping
    flux: float = 0.0
    evaporation: float = 0.0
    temp: Optional[float] = None
    out_cell: Optional[int] = None
    closed: bool = False
    river: Optional[int] = None  # dominant inflow river
    entering_flux: float = 0.0
    inlets: Optional[List[int]] = None
    outlet: Optional[int] = None

    @property
    def is_lake(self) -> bool:
        return self.type == "lake"


class LakeOptions(BaseModel):
    """Lake bookkeeping options matching FMG's parameters."""

    elevation_limit: float = Field(
        default=20, description="Height above the lake a drainage path may climb; 80 disables the check"
    )
    height_exponent: float = Field(default=2.0, description="Exponent converting height to meters")
    default_temperature: float = Field(
        default=15.0, description="Lake temperature when no temperature grid is given"
    )

    @classmethod
    def from_settings(cls, settings) -> "LakeOptions":
        return cls(
            elevation_limit=settings.lake_elevation_limit,
            height_exponent=settings.height_exponent,
        )


class Lakes:
    """Prepares and cleans up lake data around a river generation pass."""

    def __init__(self, graph: CellGraph, options: Optional[LakeOptions] = None):
        self.graph = graph
        self.options = options or LakeOptions()

    @property
    def lakes(self) -> List[Feature]:
        if not self.graph.features:
            return []
        return [f for f in self.graph.features if f is not None and f.is_lake]

    def lake_cells(self, lake: Feature) -> np.ndarray:
        if self.graph.feature_ids is None:
            return np.array([], dtype=np.int64)
        return np.flatnonzero(self.graph.feature_ids == lake.id)

    def get_shoreline(self, lake: Feature) -> List[int]:
        """Collect the land cells bordering a lake."""
        shoreline: Dict[int, None] = {}
        for cell_id in self.lake_cells(lake):
            for neighbor_id in self.graph.cell_neighbors[cell_id]:
                if self.graph.is_land(neighbor_id):
                    shoreline[neighbor_id] = None
        lake.shoreline = list(shoreline)
        return lake.shoreline

    def prepare_lake_data(self, h: np.ndarray) -> None:
        """
        Reset lake bookkeeping and set initial surface heights.

        Port of FMG's Lakes.prepareLakeData(). A lake is marked closed when it
        sits in a deep depression that cannot pour into the ocean or a lower
        lake without climbing above the elevation limit.
        """
        for lake in self.lakes:
            lake.flux = 0.0
            lake.inlets = None
            lake.outlet = None
            lake.height = None
            lake.closed = False
            lake.river = None
            lake.entering_flux = 0.0
            if not lake.shoreline:
                self.get_shoreline(lake)
            if not lake.shoreline:
                lake.closed = True
                continue

            lowest = min(lake.shoreline, key=lambda c: h[c])
            lake.height = float(h[lowest]) - 0.1

            if self.options.elevation_limit == 80:
                continue
            lake.closed = self._is_deep(lake, lowest, h)

        logger.debug("Lake data prepared", lakes=len(self.lakes))

    def _is_deep(self, lake: Feature, start: int, h: np.ndarray) -> bool:
        threshold = lake.height + self.options.elevation_limit
        queue = [start]
        checked = {start}

        while queue:
            cell_id = queue.pop()
            for neighbor_id in self.graph.cell_neighbors[cell_id]:
                if neighbor_id in checked or h[neighbor_id] >= threshold:
                    continue
                if h[neighbor_id] < SEA_LEVEL:
                    other = self.graph.feature_of(neighbor_id)
                    if other is not None and (
                        other.type == "ocean"
                        or (other.height is not None and lake.height > other.height)
                    ):
                        return False
                checked.add(neighbor_id)
                queue.append(neighbor_id)
        return True

    def set_climate_data(
        self,
        h: np.ndarray,
        precipitation: np.ndarray,
        temperatures: Optional[np.ndarray] = None,
    ) -> Dict[int, List[Feature]]:
        """
        Compute lake flux, temperature and evaporation, and pick outlet cells.

        Port of FMG's Lakes.defineClimateData().

        Returns:
            Dictionary mapping outlet cell IDs to the lakes draining through them
        """
        lake_out_cells: Dict[int, List[Feature]] = {}

        for lake in self.lakes:
            shoreline = lake.shoreline or []
            lake.flux = float(sum(precipitation[self.graph.grid_index(c)] for c in shoreline))
            lake.temp = self._lake_temperature(lake, temperatures)
            lake.evaporation = self._lake_evaporation(lake)
            if lake.closed or not shoreline:
                continue  # no outlet for lakes in depressed areas

            lake.out_cell = int(min(shoreline, key=lambda c: h[c]))
            lake_out_cells.setdefault(lake.out_cell, []).append(lake)

        return lake_out_cells

    def _lake_temperature(self, lake: Feature, temperatures: Optional[np.ndarray]) -> float:
        if temperatures is None:
            return self.options.default_temperature
        if lake.cells < 6 or not lake.shoreline:
            return float(temperatures[self.graph.grid_index(lake.first_cell)])
        values = [temperatures[self.graph.grid_index(c)] for c in lake.shoreline]
        return rn(float(np.mean(values)), 1)

    def _lake_evaporation(self, lake: Feature) -> float:
        # Penman-style estimate, height converted to meters
        height = max(lake.height - 18, 0) ** self.options.height_exponent if lake.height is not None else 0
        evaporation = ((700 * (lake.temp + 0.006 * height)) / 50 + 75) / (80 - lake.temp)
        return rn(evaporation * lake.cells)

    def cleanup_lake_data(self, rivers: List) -> None:
        """Drop transient fields and keep only inlets/outlets that became rivers."""
        river_ids = {river.id for river in rivers}
        for lake in self.lakes:
            lake.river = None
            lake.entering_flux = 0.0
            lake.out_cell = None
            lake.closed = False
            if lake.height is not None:
                lake.height = rn(lake.height, 3)

            inlets = [r for r in (lake.inlets or []) if r in river_ids]
            lake.inlets = inlets or None
            if lake.outlet not in river_ids:
                lake.outlet = None
