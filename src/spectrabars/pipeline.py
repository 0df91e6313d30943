"""
Main spectrum processing pipeline.

Orchestrates the flow from a raw sample buffer to smoothed spectrum bars
and shares the result with consumer threads.
"""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

from spectrabars.config import SpectrumConfig
from spectrabars.core import mapper, normalizer, smoother, transformer
from spectrabars.core.smoother import Bar
from spectrabars.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpectrumSnapshot:
    """Bars together with the configuration they were computed with."""

    config: SpectrumConfig
    bars: tuple[Bar, ...]
    sequence: int  # Number of buffers processed so far


Subscriber = Callable[[SpectrumSnapshot], None]


class SpectrumPipeline:
    """
    Complete samples-to-bars processing pipeline.

    Combines transform, frequency mapping, normalization and gravity
    smoothing. ``process`` is meant to be called from one producer thread;
    configuration and results may be accessed from any thread.
    """

    def __init__(
        self,
        config: SpectrumConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Initial configuration (defaults when omitted).
            clock: Monotonic time source used when ``process`` is not given
                an explicit elapsed time.
        """
        config = (config or SpectrumConfig()).validate()
        self._clock = clock

        # Guards config, smoothing state and latest bars as one unit
        self._lock = threading.Lock()
        # Serializes process() calls; re-entrant so subscribers may call back in
        self._process_lock = threading.RLock()

        self._config = config
        self._bars_config = config
        self._bars = tuple(smoother.reset_bars(mapper.bar_ranges_for(config), np.zeros(config.resolution)))
        self._needs_reset = True
        self._resets = 0  # Bumped by reset(), checked when committing
        self._last_time: float | None = None
        self._sequence = 0
        self._subscribers: list[Subscriber] = []

    def get_config(self) -> SpectrumConfig:
        """Configuration that the next ``process`` call will use."""
        with self._lock:
            return self._config

    def set_config(self, config: SpectrumConfig) -> None:
        """
        Replace the configuration.

        Takes effect on the next ``process`` call. Changing the bar layout
        (resolution, frequency range or spacing) discards smoothing state.

        Raises:
            ConfigurationError: If the new configuration is inconsistent.
        """
        config.validate()
        with self._lock:
            previous = self._config
            self._config = config

        if config.layout_key != previous.layout_key:
            logger.info(
                "Spectrum layout changed: %d bars over %.1f-%.1f Hz (%s)",
                config.resolution,
                config.frequency_range[0],
                config.frequency_range[1],
                config.bar_spacing.value,
            )
        else:
            logger.debug("Spectrum config updated")

    def update_config(self, **changes) -> SpectrumConfig:
        """
        Change individual options, keeping the rest.

        Returns:
            The new configuration.

        Raises:
            ConfigurationError: On unknown option names or invalid values.
        """
        unknown = sorted(set(changes) - set(SpectrumConfig.field_names()))
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")

        # Derive under the lock so concurrent partial updates are not lost
        with self._lock:
            config = dataclasses.replace(self._config, **changes).validate()
            previous = self._config
            self._config = config

        if config.layout_key != previous.layout_key:
            logger.info("Spectrum layout changed: %d bars", config.resolution)
        else:
            logger.debug("Spectrum config updated: %s", ", ".join(sorted(changes)))
        return config

    def get_bars(self) -> list[Bar]:
        """Latest bar sequence."""
        with self._lock:
            return list(self._bars)

    def get_snapshot(self) -> SpectrumSnapshot:
        """Latest bars with their configuration and sequence number."""
        with self._lock:
            return SpectrumSnapshot(self._bars_config, self._bars, self._sequence)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback invoked with every new snapshot.

        Callbacks run on the processing thread, in processing order.

        Returns:
            Function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def reset(self) -> None:
        """Drop smoothing state; the next buffer is shown without transition."""
        with self._lock:
            self._needs_reset = True
            self._resets += 1
            self._last_time = None
        logger.debug("Smoothing state reset")

    def compute_targets(
        self,
        samples,
        config: SpectrumConfig,
        bar_ranges: list[tuple[float, float]],
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Stateless part of the pipeline: transform, map and normalize.

        Returns:
            Tuple of (raw_values, normalized_values), one entry per bar.
        """
        bins = transformer.transform(
            samples,
            window=config.window,
            buffer_size=config.buffer_size,
            scale=config.amplitude_scaling,
        )
        raw_values = mapper.map_bins(
            bins,
            bar_ranges,
            config.sample_rate,
            interpolation=config.interpolation_mode,
            aggregation=config.bar_aggregation,
        )
        normalized = normalizer.normalize(raw_values, config, mapper.bar_centers(bar_ranges))
        return raw_values, normalized

    def process(self, samples, elapsed: float | None = None) -> list[Bar]:
        """
        Process one sample buffer into a new bar sequence.

        Args:
            samples: Mono samples; length must equal ``buffer_size``.
            elapsed: Seconds since the previous buffer. Measured with the
                pipeline clock when omitted.

        Returns:
            Exactly ``resolution`` bars.

        Raises:
            ConfigurationError: Buffer length mismatch or invalid elapsed time.
            NumericDegenerateInput: Non-finite samples.
        """
        if elapsed is not None and not elapsed >= 0.0:
            raise ConfigurationError(f"elapsed must be >= 0 seconds, got {elapsed!r}")

        with self._process_lock:
            now = self._clock()
            with self._lock:
                config = self._config
                bars_config = self._bars_config
                previous = self._bars
                needs_reset = self._needs_reset or config.layout_key != bars_config.layout_key
                last_time = self._last_time
                resets = self._resets

            if needs_reset:
                bar_ranges = mapper.bar_ranges_for(config)
            else:
                bar_ranges = [bar.frequency_range for bar in previous]

            raw_values, normalized = self.compute_targets(samples, config, bar_ranges)

            if needs_reset:
                bars = smoother.reset_bars(bar_ranges, normalized, raw_values, config.max_volume)
                logger.debug("Smoothing state initialized for %d bars", len(bars))
            else:
                if elapsed is None:
                    elapsed = max(now - last_time, 0.0) if last_time is not None else 0.0
                bars = smoother.update(list(previous), normalized, config, elapsed, raw_values)

            with self._lock:
                self._bars = tuple(bars)
                self._bars_config = config
                # A reset() that arrived mid-computation applies to the next buffer
                self._needs_reset = self._resets != resets
                self._last_time = now
                self._sequence += 1
                snapshot = SpectrumSnapshot(config, self._bars, self._sequence)
                subscribers = list(self._subscribers)

            for callback in subscribers:
                try:
                    callback(snapshot)
                except Exception:
                    logger.exception("Spectrum subscriber %r failed", callback)

        return list(bars)
