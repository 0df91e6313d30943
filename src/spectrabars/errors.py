"""
Exception types raised by the spectrum pipeline.
"""


class SpectrumError(Exception):
    """Base class for all spectrabars errors."""


class ConfigurationError(SpectrumError, ValueError):
    """
    Malformed or inconsistent configuration.

    Raised for buffer length mismatches, non-power-of-two buffer sizes,
    invalid frequency ranges and unknown option values. These are always
    caller-correctable and never retried.
    """


class NumericDegenerateInput(SpectrumError, ValueError):
    """Sample buffer contains NaN or infinite values."""
