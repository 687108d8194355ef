"""Number rounding helpers shared by the path builders."""

import math
import re

_NUMBER_PATTERN = re.compile(r"[\d\.-][\d\.e-]*")


def rn(value: float, digits: int = 0) -> float:
    """Round half up to the given number of decimals (FMG's rn)."""
    multiplier = 10 ** digits
    return math.floor(value * multiplier + 0.5) / multiplier


def format_number(value: float) -> str:
    """Shortest string for a number, integers without a trailing '.0'."""
    if value == int(value):
        return str(int(value))
    return repr(float(value))


def round_path(path: str, digits: int = 1) -> str:
    """Round every number inside an SVG path description."""
    return _NUMBER_PATTERN.sub(lambda m: format_number(rn(float(m.group(0)), digits)), path)
