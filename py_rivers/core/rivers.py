"""
River generation following FMG's river-generator.js.

This module implements:
- The full generation pass (heights, depressions, drainage, rivers)
- River network building from raw segment traces
- Confluence flux calculation
- River classification, naming and cascading removal
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, Field

from ..utils.numbers import rn
from .alea_prng import AleaPRNG
from .drainage import MIN_FLUX_TO_FORM_RIVER, OFF_MAP, FlowRouter, RiverSegment
from .features import Lakes
from .graph import SEA_LEVEL, CellGraph
from .heights import DepressionResult, alter_heights, resolve_depressions
from .river_layer import SvgRiverLayer
from .river_paths import add_meandering, get_river_path

logger = structlog.get_logger()

SMALL_RIVER_TYPES = {"Creek": 9, "River": 3, "Brook": 3, "Stream": 1}


class RiverOptions(BaseModel):
    """River generation options matching FMG's parameters."""

    seed: str = Field(default="default", description="Seed for meandering and river types")
    resolve_depressions_steps: int = Field(
        default=250, ge=0, description="Iteration budget for depression resolution"
    )
    allow_erosion: bool = Field(
        default=True, description="Commit resolved heights back as base heights"
    )
    sea_level: int = Field(default=SEA_LEVEL, description="Heights below are water")
    min_flux_to_form_river: float = Field(
        default=MIN_FLUX_TO_FORM_RIVER, description="Minimum flux to proclaim a river"
    )
    meandering: float = Field(default=0.5, description="Base meander intensity")
    min_river_segments: int = Field(
        default=3, ge=2, description="Rivers with fewer recorded segments are dropped"
    )
    small_river_percentile: float = Field(
        default=0.15, description="Length percentile below which rivers are small"
    )

    @classmethod
    def from_settings(cls, settings) -> "RiverOptions":
        return cls(
            seed=settings.seed,
            resolve_depressions_steps=settings.resolve_depressions_steps,
            allow_erosion=settings.allow_erosion,
        )


@dataclass
class River:
    """A defined river with its geometry and classification."""
    id: int
    source: int
    mouth: int
    discharge: float  # flux at the mouth
    length: float
    width: float  # mouth width in km
    width_factor: float
    parent: int = 0  # 0 or own id = basin root
    cells: List[int] = field(default_factory=list)
    source_width: float = 0.0
    basin: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return not self.parent or self.parent == self.id


class Rivers:
    """Generates and maintains the river network of a cell graph."""

    def __init__(
        self,
        graph: CellGraph,
        precipitation: np.ndarray,
        options: Optional[RiverOptions] = None,
        lakes: Optional[Lakes] = None,
        renderer: Optional[SvgRiverLayer] = None,
        name_lookup: Optional[Callable[[int], str]] = None,
        temperatures: Optional[np.ndarray] = None,
    ):
        """
        Initialize river generation.

        Args:
            graph: CellGraph with heights, neighbors and feature markup
            precipitation: Precipitation per grid cell
            options: River generation options
            lakes: Lake bookkeeping collaborator
            renderer: Sink receiving (path, river id) pairs
            name_lookup: Culture id -> river name
            temperatures: Temperature per grid cell, used for lake evaporation
        """
        if precipitation is None:
            raise ValueError("Precipitation is required to generate rivers")

        self.graph = graph
        self.precipitation = precipitation
        self.options = options or RiverOptions()
        self.lakes = lakes or Lakes(graph)
        self.renderer = renderer or SvgRiverLayer()
        self.name_lookup = name_lookup
        self.temperatures = temperatures

        self.prng = AleaPRNG(self.options.seed)
        self.heights: Optional[np.ndarray] = None
        self.depressions: Optional[DepressionResult] = None

    @property
    def rivers(self) -> List[River]:
        return self.graph.rivers

    def generate(self, allow_erosion: Optional[bool] = None) -> List[River]:
        """
        Run the full river generation pass.

        Port of FMG's Rivers.generate().

        Returns:
            List of defined rivers
        """
        logger.info("Starting river generation")
        if allow_erosion is None:
            allow_erosion = self.options.allow_erosion

        self.prng = AleaPRNG(self.options.seed)
        self.graph.reset_hydrology()

        h = self.alter_heights()
        self.lakes.prepare_lake_data(h)
        self.resolve_depressions(h)
        segments = self.drain_water(h)
        self.define_rivers(segments)
        self.calculate_confluence_flux(h)
        self.lakes.cleanup_lake_data(self.rivers)

        if allow_erosion:
            # apply changed heights as basic ones
            self.graph.heights = np.clip(np.floor(h), 0, 255).astype(np.uint8)

        self.heights = h
        logger.info("Rivers generated", count=len(self.rivers))
        return self.rivers

    def alter_heights(self) -> np.ndarray:
        return alter_heights(self.graph, self.options.sea_level)

    def resolve_depressions(self, h: np.ndarray) -> DepressionResult:
        self.depressions = resolve_depressions(
            self.graph,
            h,
            self.options.resolve_depressions_steps,
            lakes=self.lakes.lakes,
            sea_level=self.options.sea_level,
        )
        return self.depressions

    def drain_water(self, h: np.ndarray) -> List[RiverSegment]:
        lake_out_cells = self.lakes.set_climate_data(h, self.precipitation, self.temperatures)
        router = FlowRouter(
            self.graph,
            h,
            self.precipitation,
            lake_out_cells,
            sea_level=self.options.sea_level,
            min_flux_to_form_river=self.options.min_flux_to_form_river,
        )
        return router.drain_water()

    def define_rivers(self, segments: List[RiverSegment]) -> List[River]:
        """
        Turn raw segment traces into river records and paths.

        Tiny traces are dropped, river and confluence arrays are re-derived
        from the surviving rivers, and every river gets a meandered outline.
        """
        graph = self.graph
        graph.river_ids = np.zeros(graph.n_cells, dtype=np.uint32)
        graph.confluences = np.zeros(graph.n_cells, dtype=np.uint32)
        graph.rivers = []
        river_paths = []

        by_river: Dict[int, List[RiverSegment]] = defaultdict(list)
        for segment in segments:
            by_river[segment.river].append(segment)

        dropped = 0
        for river_id in sorted(by_river):
            river_data = by_river[river_id]
            if len(river_data) < self.options.min_river_segments:
                dropped += 1
                continue

            for segment in river_data:
                i = segment.cell
                if i < 0 or not graph.is_land(i):
                    continue
                # mark real confluences and assign river to cells
                if graph.river_ids[i]:
                    graph.confluences[i] = 1
                else:
                    graph.river_ids[i] = river_id

            source = river_data[0].cell
            mouth = river_data[-2].cell
            parent = river_data[0].parent or 0

            river_cells = [segment.cell for segment in river_data]
            width_factor = 1.2 if not parent or parent == river_id else 1.0
            init_step = 1 if graph.is_land(source) else 10
            meandered = add_meandering(graph, river_cells, self.prng, init_step, self.options.meandering)
            path, length, offset = get_river_path(meandered, width_factor)
            river_paths.append((path, river_id))

            graph.rivers.append(
                River(
                    id=river_id,
                    source=source,
                    mouth=mouth,
                    discharge=river_data[-1].flux,
                    length=length,
                    width=rn((offset / 1.4) ** 2, 2),
                    width_factor=width_factor,
                    parent=parent,
                    cells=[c for c in river_cells if c != OFF_MAP],
                )
            )

        self.renderer.draw(river_paths)
        logger.info("Rivers defined", rivers=len(graph.rivers), dropped=dropped)
        return graph.rivers

    def calculate_confluence_flux(self, h: np.ndarray) -> None:
        """Store at each confluence the flux brought by all but the main inflow."""
        graph = self.graph
        for i in np.flatnonzero(graph.confluences):
            influx = sorted(
                (int(graph.flux[c]) for c in graph.cell_neighbors[i] if graph.river_ids[c] and h[c] > h[i]),
                reverse=True,
            )
            graph.confluences[i] = sum(influx[1:])

    def specify(self) -> None:
        """Assign basin, name and type to every river."""
        rivers = self.rivers
        if not rivers:
            return

        self.prng = AleaPRNG(self.options.seed)
        threshold_element = math.ceil(len(rivers) * self.options.small_river_percentile)
        lengths = sorted(r.length or 0 for r in rivers)
        small_length = lengths[threshold_element] if threshold_element < len(lengths) else None

        for river in rivers:
            river.basin = self.get_basin(river.id)
            river.name = self.get_name(river.mouth)
            small = small_length is not None and river.length < small_length
            if not river.is_root and river.id % 6:
                river.type = "Branch" if small else "Fork"
            elif small:
                river.type = self.prng.weighted_choice(SMALL_RIVER_TYPES)
            else:
                river.type = "River"

        logger.info("Rivers specified", count=len(rivers))

    def get_name(self, cell_id: int) -> Optional[str]:
        if self.name_lookup is None:
            return None
        culture = int(self.graph.cultures[cell_id]) if self.graph.cultures is not None else 0
        return self.name_lookup(culture)

    def get_river(self, river_id: int) -> River:
        for river in self.rivers:
            if river.id == river_id:
                return river
        raise KeyError(f"River {river_id} not found")

    def get_basin(self, river_id: int) -> int:
        """Walk parent links up to the root river."""
        parents = {r.id: r.parent for r in self.rivers}
        visited = set()
        current = river_id
        while current not in visited:
            visited.add(current)
            parent = parents.get(current)
            if not parent or parent == current:
                return current
            current = parent

        logger.warning("River parent cycle detected", river=river_id)
        return current

    def remove(self, river_id: int) -> List[int]:
        """
        Remove a river together with its tributaries and basin relatives.

        Member cells lose their river and confluence marks and their flux is
        reset to the raw precipitation.

        Returns:
            Sorted list of removed river ids
        """
        graph = self.graph
        to_remove = sorted(
            r.id for r in self.rivers if river_id in (r.id, r.parent, r.basin)
        )
        removed = set(to_remove)
        self.renderer.remove(to_remove)

        for i in range(graph.n_cells):
            r = int(graph.river_ids[i])
            if not r or r not in removed:
                continue
            graph.river_ids[i] = 0
            graph.flux[i] = int(self.precipitation[graph.grid_index(i)])
            graph.confluences[i] = 0

        graph.rivers = [r for r in self.rivers if r.id not in removed]
        logger.info("Rivers removed", river=river_id, removed=to_remove)
        return to_remove
