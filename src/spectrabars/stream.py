"""
Live streaming around the spectrum pipeline.

Producers push arbitrarily sized sample chunks into a bounded channel;
a worker thread keeps the most recent ``buffer_size`` samples and runs
the pipeline on them. Consumers read pipeline snapshots or subscribe.
Old audio is dropped rather than queued: a visualizer only ever needs
the latest state.
"""

import logging
import queue
import threading
from typing import Protocol

import librosa
import numpy as np

from spectrabars.errors import ConfigurationError, SpectrumError
from spectrabars.pipeline import SpectrumPipeline

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    """Anything that yields mono float32 samples at a known rate."""

    sample_rate: int

    def read(self, frames: int) -> np.ndarray:
        """Return up to ``frames`` samples; an empty array when exhausted."""
        ...


class ArraySource:
    """Serve samples from an in-memory array, optionally looping."""

    def __init__(self, samples, sample_rate: int, loop: bool = False):
        self.samples = to_mono(samples)
        self.sample_rate = sample_rate
        self.loop = loop
        self._position = 0

    def read(self, frames: int) -> np.ndarray:
        if len(self.samples) == 0:
            return np.zeros(0, dtype=np.float32)

        if not self.loop:
            chunk = self.samples[self._position:self._position + frames]
            self._position += len(chunk)
            return chunk

        indices = (self._position + np.arange(frames)) % len(self.samples)
        self._position = (self._position + frames) % len(self.samples)
        return self.samples[indices]


class SineSource:
    """Endless phase-continuous sine tone."""

    def __init__(self, frequency: float, sample_rate: int = 44100, amplitude: float = 0.8):
        if frequency <= 0 or frequency >= sample_rate / 2:
            raise ConfigurationError(
                f"Tone frequency must be within (0, {sample_rate / 2}) Hz, got {frequency}"
            )
        self.frequency = frequency
        self.sample_rate = sample_rate
        self.amplitude = amplitude
        self._offset = 0

    def read(self, frames: int) -> np.ndarray:
        # librosa.tone is a cosine; -pi/2 turns it into a sine
        phase = 2.0 * np.pi * self.frequency * self._offset / self.sample_rate
        tone = librosa.tone(
            self.frequency,
            sr=self.sample_rate,
            length=frames,
            phi=np.mod(phase, 2.0 * np.pi) - np.pi / 2.0,
        )
        self._offset += frames
        return (self.amplitude * tone).astype(np.float32)


def to_mono(samples, channel_count: int | None = None) -> np.ndarray:
    """
    Reduce audio to a single channel by averaging.

    Args:
        samples: 1-D (mono or interleaved) or 2-D ``(frames, channels)`` audio.
        channel_count: Channels in interleaved 1-D input; a trailing
            partial frame is discarded.

    Returns:
        1-D float32 array.
    """
    samples = np.asarray(samples, dtype=np.float32)

    if samples.ndim == 2:
        return samples.mean(axis=1, dtype=np.float32)
    if samples.ndim != 1:
        raise ConfigurationError(f"Cannot reduce audio of shape {samples.shape} to mono")

    if channel_count is None or channel_count == 1:
        return samples
    if channel_count < 1:
        raise ConfigurationError(f"channel_count must be >= 1, got {channel_count}")

    frames = len(samples) // channel_count
    interleaved = samples[:frames * channel_count].reshape(frames, channel_count)
    return interleaved.mean(axis=1, dtype=np.float32)


class SampleWindow:
    """
    Sliding window over the most recent ``size`` samples.

    Older samples are discarded as new ones arrive, so a slow consumer
    always analyses the freshest audio.
    """

    def __init__(self, size: int):
        self.size = size
        self._buffer = np.zeros(0, dtype=np.float32)

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def ready(self) -> bool:
        """True once a full window of samples is available."""
        return len(self._buffer) >= self.size

    def push(self, chunk) -> None:
        chunk = np.asarray(chunk, dtype=np.float32).ravel()
        self._buffer = np.concatenate([self._buffer, chunk])[-self.size:]

    def resize(self, size: int) -> None:
        """Change the window length, keeping as much recent audio as fits."""
        self.size = size
        self._buffer = self._buffer[-size:]

    def latest(self) -> np.ndarray | None:
        """Copy of the last ``size`` samples, or None if not yet filled."""
        if not self.ready:
            return None
        return self._buffer[-self.size:].copy()

    def clear(self) -> None:
        self._buffer = np.zeros(0, dtype=np.float32)


class SampleChannel:
    """Bounded queue of sample chunks that drops the oldest chunk when full."""

    def __init__(self, capacity: int = 8):
        if capacity < 1:
            raise ConfigurationError(f"capacity must be >= 1, got {capacity}")
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        """Chunks discarded because the channel was full."""
        with self._dropped_lock:
            return self._dropped

    def put(self, chunk: np.ndarray) -> bool:
        """
        Enqueue without blocking.

        Returns:
            False if an older chunk had to be dropped to make room.
        """
        try:
            self._queue.put_nowait(chunk)
            return True
        except queue.Full:
            pass

        # Drop oldest and retry; the consumer may race us to the queue
        try:
            self._queue.get_nowait()
        except queue.Empty:
            pass
        with self._dropped_lock:
            self._dropped += 1
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1
        logger.debug("Sample channel full, dropped oldest chunk")
        return False

    def get(self, timeout: float | None = None) -> np.ndarray | None:
        """Next chunk, or None if none arrived within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[np.ndarray]:
        """Remove and return every queued chunk."""
        chunks = []
        while True:
            try:
                chunks.append(self._queue.get_nowait())
            except queue.Empty:
                return chunks


class SpectrumStream:
    """
    Background worker feeding a SpectrumPipeline from a SampleChannel.

    Usage:
        with SpectrumStream(pipeline) as stream:
            stream.push(chunk)          # producer thread
            bars = pipeline.get_bars()  # consumer threads
    """

    def __init__(
        self,
        pipeline: SpectrumPipeline,
        capacity: int = 8,
        channel_count: int | None = None,
        poll_interval: float = 0.05,
    ):
        """
        Initialize the stream.

        Args:
            pipeline: Pipeline to run on every window.
            capacity: Chunks the channel holds before dropping the oldest.
            channel_count: Channels of interleaved input passed to ``push``.
            poll_interval: Seconds the worker waits for data before
                re-checking the stop flag.
        """
        self.pipeline = pipeline
        self.channel = SampleChannel(capacity)
        self.channel_count = channel_count
        self.poll_interval = poll_interval
        self.window = SampleWindow(pipeline.get_config().buffer_size)

        self.errors = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def push(self, chunk) -> bool:
        """Hand a chunk of captured audio to the worker (producer side)."""
        return self.channel.put(to_mono(chunk, self.channel_count))

    def feed(self, chunk) -> bool:
        """
        Add a mono chunk to the window and process it if full.

        Called by the worker thread; may also be called directly for
        synchronous use without ``start``.

        Returns:
            True if the pipeline produced new bars.
        """
        buffer_size = self.pipeline.get_config().buffer_size
        if buffer_size != self.window.size:
            self.window.resize(buffer_size)

        self.window.push(chunk)
        samples = self.window.latest()
        if samples is None:
            return False

        try:
            self.pipeline.process(samples)
        except SpectrumError as exc:
            self.errors += 1
            logger.warning("Skipping sample window: %s", exc)
            return False
        return True

    def start(self) -> "SpectrumStream":
        if self.running:
            # A worker still finishing after stop() carries on instead
            self._stop_event.clear()
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="spectrabars-stream", daemon=True)
        self._thread.start()
        logger.info("Spectrum stream started (buffer_size=%d)", self.window.size)
        return self

    def stop(self, timeout: float | None = 2.0) -> None:
        """Stop the worker; an in-flight ``process`` call runs to completion."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                # Keep the handle so start() cannot spawn a second worker
                logger.warning("Spectrum stream worker still busy after %s s", timeout)
                return
            self._thread = None
        logger.info("Spectrum stream stopped (dropped=%d, errors=%d)", self.channel.dropped, self.errors)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            chunk = self.channel.get(timeout=self.poll_interval)
            if chunk is None:
                continue
            # Coalesce backlog: only the newest window matters
            for extra in self.channel.drain():
                chunk = np.concatenate([chunk, extra])
            self.feed(chunk)

    def __enter__(self) -> "SpectrumStream":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
