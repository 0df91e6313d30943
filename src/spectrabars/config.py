"""
Configuration for the spectrum pipeline.

A single immutable SpectrumConfig carries every option consumed by the
processing stages. Live reconfiguration replaces the whole value.
"""

import math
from dataclasses import dataclass, fields
from enum import Enum

from spectrabars.errors import ConfigurationError


class InterpolationMode(str, Enum):
    """How bars that contain no FFT bin are estimated."""

    LINEAR = "linear"
    CUBIC = "cubic"
    STEP = "step"
    GAPS = "gaps"  # Empty bars stay at zero


class BarAggregation(str, Enum):
    """How several bins falling into one bar are combined."""

    MEAN = "mean"
    PEAK = "peak"


class BarSpacing(str, Enum):
    """Distribution of bar edges across the frequency range."""

    LINEAR = "linear"
    LOGARITHMIC = "logarithmic"
    MEL = "mel"


class CompensationCurve(str, Enum):
    """Frequency-dependent gain curve applied before the overall gain."""

    NONE = "none"
    TILT = "tilt"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"
    MIXTURE = "mixture"


class WindowKind(str, Enum):
    """Apodization window applied before the transform."""

    HANN = "hann"
    HAMMING = "hamming"
    BLACKMAN = "blackman"
    RECTANGULAR = "rectangular"


_ENUM_FIELDS = {
    "bar_spacing": BarSpacing,
    "window": WindowKind,
    "interpolation_mode": InterpolationMode,
    "bar_aggregation": BarAggregation,
    "frequency_compensation_curve": CompensationCurve,
}


def is_power_of_two(n: int) -> bool:
    """Return True for 1, 2, 4, 8, ..."""
    return n > 0 and (n & (n - 1)) == 0


def coerce_enum(enum_cls: type[Enum], value, name: str = "option") -> Enum:
    """Convert a string (or enum member) into ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(
            f"Unknown {name} {value!r} (expected one of: {valid})"
        ) from None


@dataclass(frozen=True)
class SpectrumConfig:
    """
    Process-wide spectrum settings.

    Instances are immutable; use ``dataclasses.replace`` (or
    ``SpectrumPipeline.update_config``) to derive a modified copy.
    Enum-valued options also accept their string names.
    """

    # Transform
    sample_rate: int = 44100
    buffer_size: int = 2048
    window: WindowKind = WindowKind.HANN
    amplitude_scaling: bool = True  # Scale magnitudes by 1/N

    # Bar layout
    resolution: int = 32
    frequency_range: tuple[float, float] = (50.0, 20000.0)
    bar_spacing: BarSpacing = BarSpacing.LOGARITHMIC
    interpolation_mode: InterpolationMode = InterpolationMode.CUBIC
    bar_aggregation: BarAggregation = BarAggregation.MEAN
    # (frequency_hz, scale) points; scale > 1 gives a region more bars
    position_distribution: tuple[tuple[float, float], ...] | None = None

    # Normalization
    gain: float = 4.0
    max_volume: float = 1.0
    frequency_compensation_curve: CompensationCurve = CompensationCurve.TILT
    compensation_strength: float = 1.0
    compensation_db_per_octave: float = 3.0
    compensation_reference_hz: float = 1000.0

    # Smoothing
    attack_rate: float = math.inf  # Instant rise
    gravity_acceleration: float = 4.0
    max_fall_speed: float = 2.0
    rest_epsilon: float = 1e-4

    def __post_init__(self):
        for name, enum_cls in _ENUM_FIELDS.items():
            object.__setattr__(
                self, name, coerce_enum(enum_cls, getattr(self, name), name)
            )
        try:
            low, high = self.frequency_range
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"frequency_range must be a (min_hz, max_hz) pair, got {self.frequency_range!r}"
            ) from None
        object.__setattr__(self, "frequency_range", (float(low), float(high)))
        if self.position_distribution is not None:
            object.__setattr__(
                self, "position_distribution", _coerce_points(self.position_distribution)
            )

    @property
    def nyquist(self) -> float:
        """Highest representable frequency."""
        return self.sample_rate / 2.0

    @property
    def layout_key(self) -> tuple:
        """Options that determine bar ranges; a change resets smoothing state."""
        return (self.resolution, self.frequency_range, self.bar_spacing, self.position_distribution)

    def validate(self) -> "SpectrumConfig":
        """
        Check option consistency.

        Returns:
            self, to allow chaining.

        Raises:
            ConfigurationError: On the first inconsistent option.
        """
        if not isinstance(self.sample_rate, int) or self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be a positive integer, got {self.sample_rate!r}")

        if not isinstance(self.buffer_size, int) or not is_power_of_two(self.buffer_size) or self.buffer_size < 2:
            raise ConfigurationError(f"buffer_size must be a power of two >= 2, got {self.buffer_size!r}")

        if not isinstance(self.resolution, int) or self.resolution < 1:
            raise ConfigurationError(f"resolution must be a positive integer, got {self.resolution!r}")

        min_hz, max_hz = self.frequency_range
        if not (math.isfinite(min_hz) and math.isfinite(max_hz)):
            raise ConfigurationError("frequency_range bounds must be finite")
        if min_hz < 0.0:
            raise ConfigurationError(f"frequency_range lower bound must be >= 0, got {min_hz}")
        if min_hz >= max_hz:
            raise ConfigurationError(
                f"frequency_range must satisfy min_hz < max_hz, got ({min_hz}, {max_hz})"
            )
        if max_hz > self.nyquist:
            raise ConfigurationError(
                f"frequency_range upper bound {max_hz} exceeds Nyquist frequency {self.nyquist}"
            )
        if self.bar_spacing is BarSpacing.LOGARITHMIC and min_hz <= 0.0:
            raise ConfigurationError("logarithmic bar spacing requires min_hz > 0")
        if self.position_distribution is not None:
            _validate_points(self.position_distribution)

        _require_finite_at_least(self.gain, 0.0, "gain")
        _require_positive(self.max_volume, "max_volume", allow_inf=False)
        _require_finite_at_least(self.compensation_strength, 0.0, "compensation_strength")
        _require_positive(self.compensation_reference_hz, "compensation_reference_hz", allow_inf=False)
        if not math.isfinite(self.compensation_db_per_octave):
            raise ConfigurationError("compensation_db_per_octave must be finite")

        _require_positive(self.attack_rate, "attack_rate", allow_inf=True)
        _require_positive(self.gravity_acceleration, "gravity_acceleration", allow_inf=True)
        _require_positive(self.max_fall_speed, "max_fall_speed", allow_inf=True)
        _require_finite_at_least(self.rest_epsilon, 0.0, "rest_epsilon")

        return self

    @classmethod
    def field_names(cls) -> list[str]:
        """Names of all recognized options."""
        return [f.name for f in fields(cls)]


def _require_positive(value: float, name: str, allow_inf: bool) -> None:
    if math.isnan(value) or value <= 0.0 or (math.isinf(value) and not allow_inf):
        raise ConfigurationError(f"{name} must be positive, got {value!r}")


def _require_finite_at_least(value: float, floor: float, name: str) -> None:
    if not math.isfinite(value) or value < floor:
        raise ConfigurationError(f"{name} must be finite and >= {floor}, got {value!r}")


def _coerce_points(points) -> tuple[tuple[float, float], ...]:
    try:
        return tuple((float(freq), float(scale)) for freq, scale in points)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"position_distribution must be (frequency_hz, scale) pairs, got {points!r}"
        ) from None


def _validate_points(points: tuple[tuple[float, float], ...]) -> None:
    if not points:
        raise ConfigurationError("position_distribution needs at least one point")

    previous = -math.inf
    for freq, scale in points:
        if not math.isfinite(freq) or freq < 0.0 or freq <= previous:
            raise ConfigurationError(
                "position_distribution frequencies must be finite, >= 0 and strictly ascending"
            )
        if not math.isfinite(scale) or scale <= 0.0:
            raise ConfigurationError(f"position_distribution scale must be positive, got {scale!r}")
        previous = freq
