"""
River geometry: meandering and width-varying polygon paths.

Port of FMG's addMeandering() and getRiverPath(). The polygon outline is drawn
with a Catmull-Rom spline (alpha 0.1) and emitted as an SVG path description.
"""

import math
from typing import List, Sequence, Tuple

from ..utils.numbers import rn, round_path
from .alea_prng import AleaPRNG
from .drainage import OFF_MAP
from .graph import CellGraph

MeanderPoint = Tuple[float, float, float]  # x, y, flux

FLUX_FACTOR = 500
MAX_FLUX_WIDTH = 2
WIDTH_FACTOR = 200
STEP_WIDTH = 1 / WIDTH_FACTOR
LENGTH_PROGRESSION = [n / WIDTH_FACTOR for n in (1, 1, 2, 3, 5, 8, 13, 21, 34)]
MAX_PROGRESSION = LENGTH_PROGRESSION[-1]

EPSILON = 1e-12


def get_border_point(graph: CellGraph, cell_id: int) -> Tuple[float, float]:
    """Project a cell onto the nearest map edge."""
    x, y = float(graph.points[cell_id][0]), float(graph.points[cell_id][1])
    width, height = graph.graph_width, graph.graph_height
    nearest = min(y, height - y, x, width - x)
    if nearest == y:
        return x, 0.0
    if nearest == height - y:
        return x, float(height)
    if nearest == x:
        return 0.0, y
    return float(width), y


def add_meandering(
    graph: CellGraph,
    river_cells: Sequence[int],
    prng: AleaPRNG,
    step: int = 1,
    meandering: float = 0.5,
) -> List[MeanderPoint]:
    """
    Add points at 1/3 and 2/3 (or 1/2) of the segments between river cells.

    The step counter grows once per river cell, so meander offsets shrink
    along the river. Close cells on long rivers get no extra points.

    Args:
        graph: CellGraph with flux and confluence arrays
        river_cells: Ordered cells, possibly ending with the off-map sentinel
        prng: Random source for meander offsets
        step: Initial step (10 suppresses meandering right after a lake)
        meandering: Base meander intensity

    Returns:
        List of (x, y, flux) points
    """
    points = graph.points
    flux = graph.flux
    confluences = graph.confluences

    meandered: List[MeanderPoint] = []
    cells_count = len(river_cells)
    last_step = cells_count - 1
    flux_prev = 0.0

    def get_flux(index: int, cell_id: int) -> float:
        # water cells hold no channel flux: keep the upstream value at the mouth
        if index == last_step and index > 0 and not graph.is_land(cell_id):
            return flux_prev
        return float(flux[cell_id])

    for i in range(cells_count):
        cell = river_cells[i]
        x1, y1 = float(points[cell][0]), float(points[cell][1])
        flux1 = get_flux(i, cell)
        flux_prev = flux1

        meandered.append((x1, y1, flux1))
        if i == last_step:
            break

        next_cell = river_cells[i + 1]
        if next_cell == OFF_MAP:
            x, y = get_border_point(graph, cell)
            meandered.append((x, y, flux_prev))
            break

        x2, y2 = float(points[next_cell][0]), float(points[next_cell][1])
        dist2 = (x2 - x1) ** 2 + (y2 - y1) ** 2  # square distance between cells
        if dist2 <= 25 and cells_count >= 6:
            step += 1
            continue

        flux2 = get_flux(i + 1, next_cell)
        keep_initial_flux = bool(confluences[next_cell]) or flux1 == flux2

        meander = meandering + 1 / step + prng.random() * max(meandering - step / 100, 0)
        angle = math.atan2(y2 - y1, x2 - x1)
        sin_meander = math.sin(angle) * meander
        cos_meander = math.cos(angle) * meander

        if step < 10 and (dist2 > 64 or (dist2 > 36 and cells_count < 5)):
            # long segment or small river: extra points at 1/3 and 2/3
            p1x = (x1 * 2 + x2) / 3 - sin_meander
            p1y = (y1 * 2 + y2) / 3 + cos_meander
            p2x = (x1 + x2 * 2) / 3 + sin_meander
            p2y = (y1 + y2 * 2) / 3 + cos_meander
            if keep_initial_flux:
                p1fl, p2fl = flux1, flux1
            else:
                p1fl, p2fl = (flux1 * 2 + flux2) / 3, (flux1 + flux2 * 2) / 3
            meandered.append((p1x, p1y, p1fl))
            meandered.append((p2x, p2y, p2fl))
        elif dist2 > 25 or cells_count < 6:
            # medium segment or small river: one extra middle point
            p1x = (x1 + x2) / 2 - sin_meander
            p1y = (y1 + y2) / 2 + cos_meander
            p1fl = flux1 if keep_initial_flux else (flux1 + flux2) / 2
            meandered.append((p1x, p1y, p1fl))

        step += 1

    return meandered


class CatmullRomLine:
    """Centripetal-family Catmull-Rom line generator (d3 curveCatmullRom)."""

    def __init__(self, alpha: float = 0.1):
        self.alpha = alpha

    def __call__(self, points: Sequence[Tuple[float, float]]) -> str:
        self._parts: List[str] = []
        self._x0 = self._x1 = self._x2 = math.nan
        self._y0 = self._y1 = self._y2 = math.nan
        self._l01_a = self._l12_a = self._l23_a = 0.0
        self._l01_2a = self._l12_2a = self._l23_2a = 0.0
        self._point = 0

        for x, y in points:
            self._add_point(float(x), float(y))

        if self._point == 2:
            self._parts.append(f"L{self._x2},{self._y2}")
        elif self._point == 3:
            self._add_point(self._x2, self._y2)
        if self._point == 1:
            self._parts.append("Z")

        return "".join(self._parts)

    def _add_point(self, x: float, y: float) -> None:
        if self._point:
            x23 = self._x2 - x
            y23 = self._y2 - y
            self._l23_2a = (x23 * x23 + y23 * y23) ** self.alpha
            self._l23_a = math.sqrt(self._l23_2a)

        if self._point == 0:
            self._point = 1
            self._parts.append(f"M{x},{y}")
        elif self._point == 1:
            self._point = 2
        else:
            self._point = 3
            self._bezier(x, y)

        self._l01_a, self._l12_a = self._l12_a, self._l23_a
        self._l01_2a, self._l12_2a = self._l12_2a, self._l23_2a
        self._x0, self._x1, self._x2 = self._x1, self._x2, x
        self._y0, self._y1, self._y2 = self._y1, self._y2, y

    def _bezier(self, x: float, y: float) -> None:
        x1, y1 = self._x1, self._y1
        x2, y2 = self._x2, self._y2

        if self._l01_a > EPSILON:
            a = 2 * self._l01_2a + 3 * self._l01_a * self._l12_a + self._l12_2a
            n = 3 * self._l01_a * (self._l01_a + self._l12_a)
            x1 = (x1 * a - self._x0 * self._l12_2a + self._x2 * self._l01_2a) / n
            y1 = (y1 * a - self._y0 * self._l12_2a + self._y2 * self._l01_2a) / n

        if self._l23_a > EPSILON:
            b = 2 * self._l23_2a + 3 * self._l23_a * self._l12_a + self._l12_2a
            m = 3 * self._l23_a * (self._l23_a + self._l12_a)
            x2 = (x2 * b + self._x1 * self._l23_2a - x * self._l12_2a) / m
            y2 = (y2 * b + self._y1 * self._l23_2a - y * self._l12_2a) / m

        self._parts.append(f"C{x1},{y1},{x2},{y2},{self._x2},{self._y2}")


line_gen = CatmullRomLine(alpha=0.1)


def get_river_path(
    points: Sequence[MeanderPoint],
    width_factor: float = 1.0,
    starting_width: float = 0.0,
) -> Tuple[str, float, float]:
    """
    Build a closed river polygon from meandered points.

    Each point is offset perpendicular to its local direction by a half-width
    made of a flux part and a position part growing along the river.

    Returns:
        (SVG path, river length, width at the last point)
    """
    if not points:
        raise ValueError("Cannot build a river path without points")

    river_length = sum(
        math.hypot(points[i][0] - points[i - 1][0], points[i][1] - points[i - 1][1])
        for i in range(1, len(points))
    )
    width = 0.0

    left: List[Tuple[float, float]] = []
    right: List[Tuple[float, float]] = []

    for p in range(len(points)):
        x0, y0 = points[p - 1][:2] if p > 0 else points[p][:2]
        x1, y1, flux = points[p]
        x2, y2 = points[p + 1][:2] if p + 1 < len(points) else points[p][:2]

        flux_width = min(flux ** 0.9 / FLUX_FACTOR, MAX_FLUX_WIDTH)
        progression = LENGTH_PROGRESSION[p] if p < len(LENGTH_PROGRESSION) else MAX_PROGRESSION
        length_width = p * STEP_WIDTH + progression
        width = width_factor * (length_width + flux_width) + starting_width

        angle = math.atan2(y0 - y2, x0 - x2)
        sin_offset = math.sin(angle) * width
        cos_offset = math.cos(angle) * width

        left.append((x1 - sin_offset, y1 + cos_offset))
        right.append((x1 + sin_offset, y1 - cos_offset))

    right_path = line_gen(right[::-1])
    left_path = line_gen(left)
    curve_start = left_path.find("C")
    if curve_start >= 0:
        left_path = left_path[curve_start:]

    return round_path(right_path + left_path, 2), rn(river_length, 2), width
