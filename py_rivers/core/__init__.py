"""
Core river generation functionality.
"""

from .alea_prng import AleaPRNG
from .graph import CellGraph, SEA_LEVEL
from .features import Feature, Lakes, LakeOptions
from .heights import DepressionResult, alter_heights, resolve_depressions
from .drainage import FlowRouter, RiverSegment, OFF_MAP, MIN_FLUX_TO_FORM_RIVER
from .river_paths import CatmullRomLine, add_meandering, get_border_point, get_river_path
from .river_layer import SvgRiverLayer
from .rivers import River, RiverOptions, Rivers

__all__ = ['AleaPRNG', 'CellGraph', 'SEA_LEVEL', 'Feature', 'Lakes', 'LakeOptions',
           'DepressionResult', 'alter_heights', 'resolve_depressions',
           'FlowRouter', 'RiverSegment', 'OFF_MAP', 'MIN_FLUX_TO_FORM_RIVER',
           'CatmullRomLine', 'add_meandering', 'get_border_point', 'get_river_path',
           'SvgRiverLayer', 'River', 'RiverOptions', 'Rivers']
