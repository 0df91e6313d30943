"""
Volume normalization for bar values.

Natural audio carries less energy at high frequencies, so an unweighted
spectrum looks bass-heavy. A parameterized compensation curve lifts the
highs before the overall gain is applied and the result is clipped.
"""

import numpy as np

from spectrabars.config import CompensationCurve, SpectrumConfig
from spectrabars.core.mapper import bar_centers, bar_ranges_for
from spectrabars.errors import ConfigurationError

# 20 * log10(2): decibels per doubling of amplitude
_DB_PER_DOUBLING = 6.0206

# Lowest frequency the tilt curve is evaluated at, keeps DC finite
_MIN_TILT_HZ = 1.0


def compensation_weights(centers_hz, config: SpectrumConfig) -> np.ndarray:
    """
    Per-bar gain factors of the configured compensation curve.

    ``compensation_strength`` blends between a flat response (0.0) and the
    full curve (1.0); values above 1.0 exaggerate it.

    Args:
        centers_hz: Center frequency of each bar.
        config: Spectrum configuration.

    Returns:
        Non-negative weights, one per bar.
    """
    centers = np.asarray(centers_hz, dtype=np.float64)
    curve = config.frequency_compensation_curve

    if curve is CompensationCurve.NONE:
        return np.ones_like(centers)

    if curve is CompensationCurve.TILT:
        ratio = np.maximum(centers, _MIN_TILT_HZ) / config.compensation_reference_hz
        weights = ratio ** (config.compensation_db_per_octave / _DB_PER_DOUBLING)
    else:
        # Position of each bar across the spectrum, 0 at DC, 1 at Nyquist
        position = np.clip(centers / config.nyquist, 0.0, 1.0)
        exponential = np.sqrt(position)
        logarithmic = np.log2(1.0 + position)

        if curve is CompensationCurve.EXPONENTIAL:
            weights = exponential
        elif curve is CompensationCurve.LOGARITHMIC:
            weights = logarithmic
        else:
            weights = (exponential + logarithmic) / 2.0

    weights = 1.0 + config.compensation_strength * (weights - 1.0)
    return np.maximum(weights, 0.0)


def normalize(raw_values, config: SpectrumConfig, centers_hz=None) -> np.ndarray:
    """
    Rescale raw bar magnitudes into [0, max_volume].

    Args:
        raw_values: Per-bar magnitudes from the mapper.
        config: Spectrum configuration.
        centers_hz: Bar center frequencies; derived from the config when omitted.

    Returns:
        float32 array of normalized values.
    """
    raw = np.asarray(raw_values, dtype=np.float64)
    if centers_hz is None:
        centers_hz = bar_centers(bar_ranges_for(config))
    if len(centers_hz) != len(raw):
        raise ConfigurationError(
            f"Got {len(raw)} bar values for {len(centers_hz)} bar centers"
        )

    weighted = raw * compensation_weights(centers_hz, config) * config.gain
    return np.clip(weighted, 0.0, config.max_volume).astype(np.float32)
