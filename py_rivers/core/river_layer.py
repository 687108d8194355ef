"""Rendering sink collecting river outlines as SVG paths."""

from typing import Dict, Iterable, List, Tuple


class SvgRiverLayer:
    """Keeps one SVG path per river id, like FMG's #rivers group."""

    def __init__(self):
        self.paths: Dict[int, str] = {}

    def draw(self, river_paths: List[Tuple[str, int]]) -> None:
        """Replace the layer content with (path, river id) pairs."""
        self.paths = {river_id: path for path, river_id in river_paths}

    def remove(self, river_ids: Iterable[int]) -> None:
        for river_id in river_ids:
            self.paths.pop(river_id, None)

    def to_svg(self) -> str:
        return "".join(f'<path id="river{r}" d="{d}"/>' for r, d in self.paths.items())
