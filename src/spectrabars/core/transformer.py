"""
Windowed Fourier transform stage.

Applies an apodization window to a fixed-length sample buffer and
returns the magnitude spectrum. Stateless apart from a window cache.
"""

from functools import lru_cache

import librosa
import numpy as np
from scipy import signal as scipy_signal

from spectrabars.config import WindowKind, coerce_enum, is_power_of_two
from spectrabars.errors import ConfigurationError, NumericDegenerateInput

# scipy names for each supported window
_SCIPY_WINDOWS = {
    WindowKind.HANN: "hann",
    WindowKind.HAMMING: "hamming",
    WindowKind.BLACKMAN: "blackman",
    WindowKind.RECTANGULAR: "boxcar",
}


@lru_cache(maxsize=32)
def get_window(kind: WindowKind, length: int) -> np.ndarray:
    """
    Return the (read-only) window of the given kind and length.

    Periodic windows are used since the buffer is analysed with an FFT.
    """
    window = scipy_signal.get_window(_SCIPY_WINDOWS[kind], length, fftbins=True)
    window = np.asarray(window, dtype=np.float32)
    window.setflags(write=False)
    return window


def validate_samples(samples, buffer_size: int | None = None) -> np.ndarray:
    """
    Check a sample buffer and return it as a float32 array.

    Args:
        samples: Single-channel samples.
        buffer_size: Expected length, if known.

    Raises:
        ConfigurationError: Wrong shape, length mismatch or non-power-of-two length.
        NumericDegenerateInput: NaN or infinite samples.
    """
    samples = np.asarray(samples, dtype=np.float32)
    if samples.ndim != 1:
        raise ConfigurationError(
            f"Sample buffer must be one-dimensional (mono), got shape {samples.shape}"
        )

    n = len(samples)
    if buffer_size is not None and n != buffer_size:
        raise ConfigurationError(
            f"Sample buffer length {n} does not match configured buffer_size {buffer_size}"
        )
    if n < 2 or not is_power_of_two(n):
        raise ConfigurationError(f"Sample buffer length must be a power of two >= 2, got {n}")

    if not np.all(np.isfinite(samples)):
        raise NumericDegenerateInput("Sample buffer contains NaN or infinite values")

    return samples


def transform(
    samples,
    window: WindowKind | str = WindowKind.HANN,
    buffer_size: int | None = None,
    scale: bool = True,
) -> np.ndarray:
    """
    Compute the windowed magnitude spectrum of a sample buffer.

    Args:
        samples: Mono samples, length N (power of two).
        window: Apodization window kind.
        buffer_size: Expected N; a mismatch is a configuration error.
        scale: Divide magnitudes by N so levels do not depend on buffer size.

    Returns:
        float32 array of N // 2 + 1 magnitudes; bin i is at i * sample_rate / N.
    """
    samples = validate_samples(samples, buffer_size)
    kind = coerce_enum(WindowKind, window, "window")

    windowed = samples * get_window(kind, len(samples))
    magnitudes = np.abs(np.fft.rfft(windowed))

    if scale:
        magnitudes = magnitudes / len(samples)

    return magnitudes.astype(np.float32)


def bin_frequencies(buffer_size: int, sample_rate: int) -> np.ndarray:
    """Center frequency of every bin produced by ``transform``."""
    return librosa.fft_frequencies(sr=sample_rate, n_fft=buffer_size)
