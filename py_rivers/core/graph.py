"""Cell graph state shared by every stage of river generation."""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

SEA_LEVEL = 20  # cells below this height are water


@dataclass
class CellGraph:
    """Packed cell graph matching FMG's pack.cells layout.

    Inputs are provided by the graph/feature collaborators. The hydrology
    arrays (flux, river_ids, confluences) and the river list are owned and
    rewritten by the river pipeline during a generation pass.
    """
    points: np.ndarray                # cells.p[i] = [x, y]
    cell_neighbors: List[List[int]]   # cells.c[i] = neighbor cell IDs
    cell_border_flags: np.ndarray     # cells.b[i] = 1 if near map edge
    heights: np.ndarray               # cells.h[i] = base height, 0-100
    graph_width: float
    graph_height: float

    distance_field: Optional[np.ndarray] = field(default=None)  # cells.t - distance to coast
    feature_ids: Optional[np.ndarray] = field(default=None)     # cells.f - feature ID for each cell
    features: Optional[List] = field(default=None)              # features[0] is reserved
    haven: Optional[np.ndarray] = field(default=None)           # forced outlet, 0 = none
    cultures: Optional[np.ndarray] = field(default=None)        # cells.culture
    grid_indices: Optional[np.ndarray] = field(default=None)    # cells.g - precipitation grid cell

    # Hydrology results
    flux: Optional[np.ndarray] = field(default=None)            # cells.fl
    river_ids: Optional[np.ndarray] = field(default=None)       # cells.r
    confluences: Optional[np.ndarray] = field(default=None)     # cells.conf
    rivers: List = field(default_factory=list)

    @property
    def n_cells(self) -> int:
        return len(self.heights)

    def is_land(self, cell_id: int) -> bool:
        """Check if a cell is land (height >= 20)."""
        return self.heights[cell_id] >= SEA_LEVEL

    def grid_index(self, cell_id: int) -> int:
        """Precipitation grid cell for a packed cell."""
        if self.grid_indices is None:
            return cell_id
        return int(self.grid_indices[cell_id])

    def feature_of(self, cell_id: int):
        """Feature owning a cell, or None when features are not marked up."""
        if self.feature_ids is None or self.features is None:
            return None
        return self.features[int(self.feature_ids[cell_id])]

    def haven_of(self, cell_id: int) -> Optional[int]:
        if self.haven is None or not self.haven[cell_id]:
            return None
        return int(self.haven[cell_id])

    def reset_hydrology(self) -> None:
        """Allocate zeroed flux, river and confluence arrays."""
        self.flux = np.zeros(self.n_cells, dtype=np.uint32)
        self.river_ids = np.zeros(self.n_cells, dtype=np.uint32)
        self.confluences = np.zeros(self.n_cells, dtype=np.uint32)
        self.rivers = []
