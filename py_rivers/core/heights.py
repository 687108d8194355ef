"""
Height preparation for water flow.

This module implements:
- Height normalization (tie-breaking on flat terrain)
- Iterative depression resolution with lake level handling
"""

from collections import deque
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import structlog

from .graph import SEA_LEVEL, CellGraph

logger = structlog.get_logger()


@dataclass
class DepressionResult:
    """Outcome of a depression resolution call."""
    iterations: int
    depressions: int  # unresolved cells/lakes in the last iteration
    converged: bool
    rolled_back: bool = False


def alter_heights(graph: CellGraph, sea_level: int = SEA_LEVEL) -> np.ndarray:
    """
    Add distance to water to land heights so the map is less depressed.

    Port of FMG's Rivers.alterHeights():
    h + t[i] / 100 + mean(t[neighbors]) / 10000

    Returns:
        New float heights; the graph is not modified
    """
    heights = graph.heights.astype(np.float64)
    relief = graph.distance_field
    if relief is None:
        return heights

    for i in range(len(heights)):
        if heights[i] < sea_level or relief[i] < 1:
            continue
        neighbors = graph.cell_neighbors[i]
        mean_relief = np.mean([relief[c] for c in neighbors]) if neighbors else 0
        heights[i] += relief[i] / 100 + mean_relief / 10000

    return heights


def resolve_depressions(
    graph: CellGraph,
    h: np.ndarray,
    max_iterations: int,
    lakes: Optional[List] = None,
    sea_level: int = SEA_LEVEL,
    lake_increment: float = 0.2,
    depression_increment: float = 0.1,
    progress_window: int = 5,
) -> DepressionResult:
    """
    Raise depressed cells and lakes until every land cell can drain.

    Port of FMG's Rivers.resolveDepressions(). Works on a scratch copy of h
    and writes it back into h unless bad progress forces a rollback, in which
    case h and the lake levels are left as they were on entry.

    Args:
        graph: Cell graph with base heights and feature markup
        h: Normalized heights, updated in place on success
        max_iterations: Iteration budget
        lakes: Lake features to level; all graph lakes when omitted
        progress_window: Number of count deltas that must not trend upwards

    Returns:
        DepressionResult describing convergence
    """
    if lakes is None:
        lakes = [f for f in (graph.features or []) if f is not None and f.type == "lake"]

    check_lake_max_iteration = max_iterations * 0.85
    elevate_lake_max_iteration = max_iterations * 0.75

    heights = h.copy()
    saved_lakes = [(lake.height, lake.closed) for lake in lakes]

    def height(i: int) -> float:
        # height of the lake surface or of the cell itself
        feature = graph.feature_of(i)
        if feature is not None and feature.type == "lake" and feature.height is not None:
            return feature.height
        return heights[i]

    land = [i for i in range(len(heights)) if heights[i] >= sea_level and not graph.cell_border_flags[i]]
    land.sort(key=lambda i: heights[i])  # lowest cells go first

    progress = deque(maxlen=progress_window)
    depressions = 0
    prev_depressions = None
    iteration = 0

    while iteration < max_iterations:
        if len(progress) == progress_window and sum(progress) > 0:
            # bad progress, abort and set heights back
            for lake, (lake_height, closed) in zip(lakes, saved_lakes):
                lake.height = lake_height
                lake.closed = closed
            logger.warning(
                "Bad progress resolving depressions, heights reverted",
                iteration=iteration,
                depressions=depressions,
            )
            return DepressionResult(iteration, depressions, converged=False, rolled_back=True)

        depressions = 0

        if iteration < check_lake_max_iteration:
            for lake in lakes:
                if lake.closed or not lake.shoreline:
                    continue
                min_height = min(heights[s] for s in lake.shoreline)
                lake_height = lake.height if lake.height is not None else 0
                if min_height >= 100 or lake_height > min_height:
                    continue

                if iteration > elevate_lake_max_iteration:
                    for s in lake.shoreline:
                        heights[s] = graph.heights[s]
                    lake.height = min(heights[s] for s in lake.shoreline) - 1
                    lake.closed = True
                    continue

                depressions += 1
                lake.height = min_height + lake_increment

        for i in land:
            neighbors = graph.cell_neighbors[i]
            if not neighbors:
                continue
            min_height = min(height(c) for c in neighbors)
            if min_height >= 100 or heights[i] > min_height:
                continue

            depressions += 1
            heights[i] = min_height + depression_increment

        iteration += 1
        if prev_depressions is not None:
            progress.append(depressions - prev_depressions)
        prev_depressions = depressions

        if depressions == 0:
            break

    h[:] = heights
    converged = iteration > 0 and depressions == 0
    if converged:
        logger.info("Depressions resolved", iterations=iteration)
    else:
        logger.warning("Unresolved depressions. Edit heightmap to fix", depressions=depressions)

    return DepressionResult(iteration, depressions, converged=converged)
