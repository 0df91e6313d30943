"""
Bin-to-bar frequency mapping.

Raw FFT bins are linearly spaced in frequency. Bars cover caller-defined
frequency ranges, usually logarithmic, so low bars are often narrower
than a single bin and need interpolation while high bars span many bins
and need aggregation.
"""

import math

import librosa
import numpy as np

from spectrabars.config import (
    BarAggregation,
    BarSpacing,
    InterpolationMode,
    SpectrumConfig,
    coerce_enum,
)
from spectrabars.errors import ConfigurationError

FrequencyRange = tuple[float, float]

# Samples used to integrate a position distribution
_DENSE_STEPS = 4096


def build_bar_ranges(
    min_hz: float,
    max_hz: float,
    resolution: int,
    spacing: BarSpacing | str = BarSpacing.LOGARITHMIC,
    distribution=None,
) -> list[FrequencyRange]:
    """
    Split [min_hz, max_hz] into ``resolution`` contiguous bar ranges.

    Args:
        min_hz: Lower edge of the first bar.
        max_hz: Upper edge of the last bar.
        resolution: Number of bars.
        spacing: Edge distribution (linear, logarithmic or mel).
        distribution: Optional (frequency_hz, scale) points. The bar space
            around each frequency is stretched by its (linearly
            interpolated) scale, so regions with a larger scale get more,
            narrower bars.

    Returns:
        List of (low_hz, high_hz) tuples, ascending and non-overlapping.
    """
    spacing = coerce_enum(BarSpacing, spacing, "bar_spacing")
    if resolution < 1:
        raise ConfigurationError(f"resolution must be >= 1, got {resolution}")
    if not min_hz < max_hz:
        raise ConfigurationError(f"min_hz must be < max_hz, got ({min_hz}, {max_hz})")

    if spacing is BarSpacing.LOGARITHMIC and min_hz <= 0:
        raise ConfigurationError("logarithmic bar spacing requires min_hz > 0")

    if distribution is None:
        edges = _spaced_edges(min_hz, max_hz, resolution, spacing)
    else:
        edges = _distributed_edges(min_hz, max_hz, resolution, spacing, distribution)

    # Pin the outer edges against rounding
    edges[0] = min_hz
    edges[-1] = max_hz

    ranges = [(float(edges[i]), float(edges[i + 1])) for i in range(resolution)]
    validate_bar_ranges(ranges)
    return ranges


def _spaced_edges(min_hz: float, max_hz: float, count: int, spacing: BarSpacing) -> np.ndarray:
    if spacing is BarSpacing.LINEAR:
        return np.linspace(min_hz, max_hz, count + 1)
    if spacing is BarSpacing.LOGARITHMIC:
        return np.geomspace(min_hz, max_hz, count + 1)
    return librosa.mel_frequencies(n_mels=count + 1, fmin=min_hz, fmax=max_hz, htk=True)


def _distributed_edges(
    min_hz: float,
    max_hz: float,
    resolution: int,
    spacing: BarSpacing,
    distribution,
) -> np.ndarray:
    """
    Edges that split the scale-weighted bar space evenly.

    The range is sampled densely with the base spacing; each step is
    weighted by the distribution scale at its midpoint (clamped beyond
    the outer points) and the cumulative weight is inverted.
    """
    try:
        points = np.asarray(distribution, dtype=np.float64).reshape(-1, 2)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"position_distribution must be (frequency_hz, scale) pairs, got {distribution!r}"
        ) from None
    if len(points) == 0 or np.any(points[:, 1] <= 0) or np.any(np.diff(points[:, 0]) <= 0):
        raise ConfigurationError(
            "position_distribution needs ascending frequencies with positive scales"
        )

    grid = _spaced_edges(min_hz, max_hz, max(_DENSE_STEPS, 16 * resolution), spacing)
    scales = np.interp((grid[:-1] + grid[1:]) / 2.0, points[:, 0], points[:, 1])

    position = np.concatenate([[0.0], np.cumsum(scales)])
    position /= position[-1]
    return np.interp(np.linspace(0.0, 1.0, resolution + 1), position, grid)


def bar_ranges_for(config: SpectrumConfig) -> list[FrequencyRange]:
    """Bar ranges described by a config."""
    min_hz, max_hz = config.frequency_range
    return build_bar_ranges(
        min_hz, max_hz, config.resolution, config.bar_spacing, config.position_distribution
    )


def validate_bar_ranges(ranges: list[FrequencyRange]) -> None:
    """
    Ensure ranges are non-empty, ascending and non-overlapping.

    Raises:
        ConfigurationError: On the first offending range.
    """
    if not ranges:
        raise ConfigurationError("At least one bar range is required")

    previous_high = -math.inf
    for index, (low, high) in enumerate(ranges):
        if not low < high:
            raise ConfigurationError(f"Bar {index} has empty range ({low}, {high})")
        if low < previous_high:
            raise ConfigurationError(
                f"Bar {index} range ({low}, {high}) overlaps or precedes the previous bar"
            )
        previous_high = high


def bar_centers(ranges: list[FrequencyRange]) -> np.ndarray:
    """Arithmetic center frequency of each range."""
    return np.array([(low + high) / 2.0 for low, high in ranges], dtype=np.float64)


def _interpolate_step(bins: np.ndarray, x: float) -> float:
    index = int(math.floor(x + 0.5))
    return float(bins[min(max(index, 0), len(bins) - 1)])


def _interpolate_linear(bins: np.ndarray, x: float) -> float:
    i0 = min(max(int(math.floor(x)), 0), len(bins) - 2)
    t = min(max(x - i0, 0.0), 1.0)
    return float(bins[i0] * (1.0 - t) + bins[i0 + 1] * t)


def _interpolate_cubic(bins: np.ndarray, x: float) -> float:
    i1 = int(math.floor(x))
    if i1 < 1 or i1 + 2 > len(bins) - 1:
        return _interpolate_linear(bins, x)

    y0, y1, y2, y3 = (float(v) for v in bins[i1 - 1:i1 + 3])
    t = x - i1
    t2 = t * t

    # Catmull-Rom segment between y1 (t=0) and y2 (t=1)
    a0 = -0.5 * y0 + 1.5 * y1 - 1.5 * y2 + 0.5 * y3
    a1 = y0 - 2.5 * y1 + 2.0 * y2 - 0.5 * y3
    a2 = -0.5 * y0 + 0.5 * y2
    a3 = y1
    return a0 * t * t2 + a1 * t2 + a2 * t + a3


def _interpolate_gaps(bins: np.ndarray, x: float) -> float:
    return 0.0


_INTERPOLATORS = {
    InterpolationMode.STEP: _interpolate_step,
    InterpolationMode.LINEAR: _interpolate_linear,
    InterpolationMode.CUBIC: _interpolate_cubic,
    InterpolationMode.GAPS: _interpolate_gaps,
}

_AGGREGATORS = {
    BarAggregation.MEAN: np.mean,
    BarAggregation.PEAK: np.max,
}


def map_bins(
    bins,
    bar_ranges: list[FrequencyRange],
    sample_rate: int,
    interpolation: InterpolationMode | str = InterpolationMode.CUBIC,
    aggregation: BarAggregation | str = BarAggregation.MEAN,
) -> np.ndarray:
    """
    Map magnitude bins onto bars.

    Bars covering one or more bin centers in [low_hz, high_hz) take the
    mean (or peak) of those bins. Bars covering none are estimated at
    their center frequency with the interpolation mode.

    Args:
        bins: Magnitudes from ``transform`` (N // 2 + 1 values).
        bar_ranges: (low_hz, high_hz) per bar; not validated here.
        sample_rate: Sample rate the bins were computed at.
        interpolation: Strategy for bars without bins.
        aggregation: Strategy for bars with several bins.

    Returns:
        float32 array with one non-negative value per bar.
    """
    bins = np.asarray(bins, dtype=np.float64)
    if bins.ndim != 1 or len(bins) < 2:
        raise ConfigurationError(f"Expected at least two magnitude bins, got shape {bins.shape}")

    interpolate = _INTERPOLATORS[coerce_enum(InterpolationMode, interpolation, "interpolation_mode")]
    aggregate = _AGGREGATORS[coerce_enum(BarAggregation, aggregation, "bar_aggregation")]

    buffer_size = 2 * (len(bins) - 1)
    bin_width = sample_rate / buffer_size
    frequencies = np.arange(len(bins)) * bin_width

    values = np.zeros(len(bar_ranges), dtype=np.float64)
    for k, (low, high) in enumerate(bar_ranges):
        start = int(np.searchsorted(frequencies, low, side="left"))
        stop = int(np.searchsorted(frequencies, high, side="left"))
        if stop > start:
            values[k] = aggregate(bins[start:stop])
        else:
            values[k] = interpolate(bins, (low + high) / 2.0 / bin_width)

    # Cubic overshoot can dip below zero
    return np.maximum(values, 0.0).astype(np.float32)
