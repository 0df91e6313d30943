"""Tests for volume normalization."""

import numpy as np
import pytest

from spectrabars.config import CompensationCurve, SpectrumConfig
from spectrabars.core.normalizer import compensation_weights, normalize
from spectrabars.errors import ConfigurationError


def flat(**kwargs) -> SpectrumConfig:
    return SpectrumConfig(frequency_compensation_curve="none", **kwargs)


class TestCompensationWeights:
    """Tests for compensation_weights()."""

    def test_none_is_flat(self):
        weights = compensation_weights([100.0, 1000.0, 10000.0], flat())

        assert np.all(weights == 1.0)

    def test_tilt_is_unity_at_reference(self):
        """The tilt curve passes through 1.0 at the reference frequency."""
        config = SpectrumConfig(compensation_reference_hz=1000.0)

        weights = compensation_weights([1000.0], config)

        assert weights[0] == pytest.approx(1.0)

    def test_tilt_db_per_octave(self):
        """One octave up should gain the configured number of decibels."""
        config = SpectrumConfig(compensation_db_per_octave=6.0)

        low, high = compensation_weights([1000.0, 2000.0], config)

        assert 20.0 * np.log10(high / low) == pytest.approx(6.0, abs=1e-3)

    def test_tilt_survives_dc(self):
        """A bar centered at 0Hz still gets a finite weight."""
        weights = compensation_weights([0.0], SpectrumConfig())

        assert np.isfinite(weights[0])
        assert weights[0] > 0.0

    @pytest.mark.parametrize("curve", ["exponential", "logarithmic", "mixture"])
    def test_shaped_curves_rise_with_frequency(self, curve):
        """Position-based curves boost highs and end at 1.0 at Nyquist."""
        config = SpectrumConfig(frequency_compensation_curve=curve)
        centers = [100.0, 1000.0, 10000.0, config.nyquist]

        weights = compensation_weights(centers, config)

        assert np.all(np.diff(weights) > 0.0)
        assert weights[-1] == pytest.approx(1.0)

    def test_zero_strength_is_flat(self):
        """Strength 0 disables any curve."""
        config = SpectrumConfig(
            frequency_compensation_curve=CompensationCurve.EXPONENTIAL,
            compensation_strength=0.0,
        )

        weights = compensation_weights([50.0, 5000.0], config)

        assert np.allclose(weights, 1.0)

    def test_weights_never_negative(self):
        """Exaggerated strength may flatten lows to zero, not below."""
        config = SpectrumConfig(frequency_compensation_curve="exponential", compensation_strength=5.0)

        weights = compensation_weights([20.0, 20000.0], config)

        assert np.all(weights >= 0.0)


class TestNormalize:
    """Tests for normalize()."""

    def test_gain(self):
        """Flat response scales by gain only."""
        values = normalize([0.1, 0.2], flat(gain=2.0), centers_hz=[100.0, 200.0])

        assert np.allclose(values, [0.2, 0.4])

    def test_clipped_to_max_volume(self):
        """Loud input should saturate at max_volume."""
        values = normalize([10.0, 0.05], flat(gain=4.0, max_volume=1.0), centers_hz=[100.0, 200.0])

        assert values[0] == pytest.approx(1.0)
        assert values[1] == pytest.approx(0.2)

    def test_bounds(self, white_noise):
        """Normalized values stay within [0, max_volume]."""
        config = SpectrumConfig(gain=50.0, max_volume=0.5)
        raw = np.abs(white_noise[: config.resolution]) * 10.0

        values = normalize(raw, config)

        assert np.all(values >= 0.0)
        assert np.all(values <= 0.5)

    def test_zero_stays_zero(self):
        values = normalize(np.zeros(32), SpectrumConfig())

        assert np.all(values == 0.0)

    def test_centers_derived_from_config(self):
        """Without explicit centers the configured layout is used."""
        config = SpectrumConfig(resolution=8)

        values = normalize(np.full(8, 0.01), config)

        assert values.shape == (8,)
        # Tilt boosts the high bars
        assert values[-1] > values[0]

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError):
            normalize([0.1, 0.2, 0.3], flat(), centers_hz=[100.0, 200.0])

    def test_dtype(self):
        values = normalize([0.1], flat(), centers_hz=[100.0])

        assert values.dtype == np.float32
