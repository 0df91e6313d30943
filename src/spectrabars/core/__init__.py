"""Spectrum processing stages."""

from spectrabars.core.mapper import build_bar_ranges, map_bins
from spectrabars.core.normalizer import normalize
from spectrabars.core.smoother import Bar, update
from spectrabars.core.transformer import transform

__all__ = ["Bar", "build_bar_ranges", "map_bins", "normalize", "transform", "update"]
