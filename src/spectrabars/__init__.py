"""Real-time spectrum bars for audio visualizers."""

from spectrabars.config import (
    BarAggregation,
    BarSpacing,
    CompensationCurve,
    InterpolationMode,
    SpectrumConfig,
    WindowKind,
)
from spectrabars.core.smoother import Bar
from spectrabars.errors import ConfigurationError, NumericDegenerateInput, SpectrumError
from spectrabars.io.exporter import SpectrumExporter
from spectrabars.pipeline import SpectrumPipeline, SpectrumSnapshot
from spectrabars.stream import ArraySource, SampleSource, SineSource, SpectrumStream

__version__ = "0.1.0"
__all__ = [
    "ArraySource",
    "Bar",
    "BarAggregation",
    "BarSpacing",
    "CompensationCurve",
    "ConfigurationError",
    "InterpolationMode",
    "NumericDegenerateInput",
    "SampleSource",
    "SineSource",
    "SpectrumConfig",
    "SpectrumError",
    "SpectrumExporter",
    "SpectrumPipeline",
    "SpectrumSnapshot",
    "SpectrumStream",
    "WindowKind",
]
