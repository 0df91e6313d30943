"""
Temporal smoothing with gravity decay.

Bars jump (or ease) up to louder targets and fall back down with
accelerating speed, like objects under gravity, instead of flickering
from frame to frame. All motion is expressed per second so results do
not depend on how often ``update`` is called.
"""

import math
from dataclasses import dataclass, field

import numpy as np

from spectrabars.config import SpectrumConfig
from spectrabars.errors import ConfigurationError


@dataclass(frozen=True)
class Bar:
    """One output bar of the spectrum."""

    frequency_range: tuple[float, float]
    raw_value: float = 0.0  # Magnitude before normalization
    value: float = 0.0  # Displayed value in [0, max_volume]

    # Gravity state, internal to the smoother
    fall_velocity: float = field(default=0.0, repr=False, compare=False)

    @property
    def low_hz(self) -> float:
        return self.frequency_range[0]

    @property
    def high_hz(self) -> float:
        return self.frequency_range[1]

    @property
    def center_hz(self) -> float:
        return (self.frequency_range[0] + self.frequency_range[1]) / 2.0


def reset_bars(
    bar_ranges: list[tuple[float, float]],
    values,
    raw_values=None,
    max_volume: float | None = None,
) -> list[Bar]:
    """
    Build bars that sit exactly at ``values`` with no motion.

    Used when there is no meaningful previous state: the first buffer, or
    after the bar layout changed.
    """
    values = np.asarray(values, dtype=np.float64)
    if len(values) != len(bar_ranges):
        raise ConfigurationError(f"Got {len(values)} values for {len(bar_ranges)} bars")
    if raw_values is None:
        raw_values = np.zeros(len(values))
    if max_volume is not None:
        values = np.clip(values, 0.0, max_volume)

    return [
        Bar(frequency_range=tuple(r), raw_value=float(raw), value=float(v))
        for r, raw, v in zip(bar_ranges, raw_values, values)
    ]


def fall_distance(
    velocity: float,
    dt: float,
    acceleration: float,
    max_speed: float,
) -> float:
    """
    Distance covered in ``dt`` seconds starting at ``velocity``.

    Speed grows linearly with ``acceleration`` until it reaches
    ``max_speed`` and stays there. The integral is exact, so two steps of
    ``t`` cover the same distance as one step of ``2t``.
    """
    if dt <= 0.0:
        return 0.0
    if math.isinf(acceleration):
        return math.inf if math.isinf(max_speed) else max_speed * dt

    # Time until the speed cap is reached
    t_cap = max((max_speed - velocity) / acceleration, 0.0)
    if dt <= t_cap:
        return velocity * dt + 0.5 * acceleration * dt * dt

    velocity = min(velocity, max_speed)
    return velocity * t_cap + 0.5 * acceleration * t_cap * t_cap + max_speed * (dt - t_cap)


def step_bar(
    value: float,
    velocity: float,
    target: float,
    dt: float,
    config: SpectrumConfig,
) -> tuple[float, float]:
    """
    Advance one bar by ``dt`` seconds towards ``target``.

    Returns:
        Tuple of (new_value, new_fall_velocity).
    """
    target = min(max(target, 0.0), config.max_volume)
    value = min(value, config.max_volume)

    # Rest
    if abs(value - target) <= config.rest_epsilon:
        return target, 0.0

    # Rise
    if target > value:
        if math.isinf(config.attack_rate):
            return target, 0.0
        value = target - (target - value) * math.exp(-config.attack_rate * dt)
        if target - value <= config.rest_epsilon:
            value = target
        return value, 0.0

    # Fall
    value -= fall_distance(velocity, dt, config.gravity_acceleration, config.max_fall_speed)
    if value <= target:
        return target, 0.0

    if math.isinf(config.gravity_acceleration):
        velocity = config.max_fall_speed
    else:
        velocity = min(velocity + config.gravity_acceleration * dt, config.max_fall_speed)
    return value, velocity


def update(
    previous_bars: list[Bar],
    new_values,
    config: SpectrumConfig,
    elapsed: float,
    raw_values=None,
) -> list[Bar]:
    """
    Move displayed bar values towards newly normalized targets.

    Args:
        previous_bars: Bars returned by the previous call (or ``reset_bars``).
        new_values: Normalized target per bar.
        config: Smoothing parameters (attack, gravity, fall speed cap).
        elapsed: Seconds since the previous call.
        raw_values: Pre-normalization magnitudes to record on the bars.

    Returns:
        New list of bars with the same frequency ranges.
    """
    if math.isnan(elapsed) or elapsed < 0.0:
        raise ConfigurationError(f"elapsed must be >= 0 seconds, got {elapsed!r}")

    targets = np.asarray(new_values, dtype=np.float64)
    if len(targets) != len(previous_bars):
        raise ConfigurationError(
            f"Got {len(targets)} values for {len(previous_bars)} bars; reset state after a layout change"
        )
    if raw_values is None:
        raw_values = [bar.raw_value for bar in previous_bars]
    elif len(raw_values) != len(previous_bars):
        raise ConfigurationError(
            f"Got {len(raw_values)} raw values for {len(previous_bars)} bars"
        )

    bars = []
    for bar, target, raw in zip(previous_bars, targets, raw_values):
        value, velocity = step_bar(bar.value, bar.fall_velocity, float(target), elapsed, config)
        bars.append(
            Bar(
                frequency_range=bar.frequency_range,
                raw_value=float(raw),
                value=value,
                fall_velocity=velocity,
            )
        )
    return bars
