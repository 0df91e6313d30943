"""Serialization helpers."""

from spectrabars.io.exporter import SpectrumExporter

__all__ = ["SpectrumExporter"]
