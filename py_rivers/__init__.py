"""Hydrological network synthesis: depressions, drainage and river paths."""

__version__ = "0.1.0"
