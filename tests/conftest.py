"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from spectrabars.config import SpectrumConfig

# Defaults for test buffers
TEST_SR = 44100
TEST_N = 1024


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def buffer_size() -> int:
    """Default FFT buffer length for tests."""
    return TEST_N


@pytest.fixture
def pure_sine(sample_rate: int, buffer_size: int) -> np.ndarray:
    """
    One buffer of a 440Hz sine wave (A4) at amplitude 0.8.
    """
    t = np.arange(buffer_size) / sample_rate
    y = 0.8 * np.sin(2 * np.pi * 440.0 * t)
    return y.astype(np.float32)


@pytest.fixture
def silence(buffer_size: int) -> np.ndarray:
    """All-zero buffer."""
    return np.zeros(buffer_size, dtype=np.float32)


@pytest.fixture
def white_noise(buffer_size: int) -> np.ndarray:
    """Reproducible white noise buffer."""
    rng = np.random.default_rng(42)
    y = rng.standard_normal(buffer_size) * 0.3
    return np.clip(y, -1.0, 1.0).astype(np.float32)


@pytest.fixture
def scenario_config(sample_rate: int, buffer_size: int) -> SpectrumConfig:
    """16 logarithmic bars over 20Hz-20kHz."""
    return SpectrumConfig(
        sample_rate=sample_rate,
        buffer_size=buffer_size,
        resolution=16,
        frequency_range=(20.0, 20000.0),
    )
