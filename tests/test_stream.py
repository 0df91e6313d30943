"""Tests for sample sources and the threaded stream."""

import threading
import time

import numpy as np
import pytest

from spectrabars.core.transformer import transform
from spectrabars.errors import ConfigurationError
from spectrabars.pipeline import SpectrumPipeline
from spectrabars.stream import (
    ArraySource,
    SampleChannel,
    SampleWindow,
    SineSource,
    SpectrumStream,
    to_mono,
)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestToMono:
    """Tests for to_mono()."""

    def test_mono_passthrough(self):
        samples = np.arange(4, dtype=np.float32)

        assert np.array_equal(to_mono(samples), samples)

    def test_two_dimensional(self):
        """(frames, channels) input is averaged across channels."""
        stereo = np.array([[1.0, 3.0], [0.0, -2.0]])

        assert np.allclose(to_mono(stereo), [2.0, -1.0])

    def test_interleaved(self):
        """Interleaved input drops a trailing partial frame."""
        interleaved = np.array([1.0, 3.0, 0.0, -2.0, 5.0])

        assert np.allclose(to_mono(interleaved, channel_count=2), [2.0, -1.0])

    def test_rejects_higher_dimensions(self):
        with pytest.raises(ConfigurationError):
            to_mono(np.zeros((2, 2, 2)))


class TestSources:
    """Tests for ArraySource and SineSource."""

    def test_array_source_exhausts(self):
        source = ArraySource(np.arange(5), sample_rate=8)

        assert len(source.read(3)) == 3
        assert len(source.read(3)) == 2
        assert len(source.read(3)) == 0

    def test_array_source_loops(self):
        source = ArraySource(np.arange(4), sample_rate=8, loop=True)

        source.read(3)
        assert np.array_equal(source.read(3), [3.0, 0.0, 1.0])

    def test_sine_is_phase_continuous(self, sample_rate):
        """Chunked reads match one long read."""
        chunked = SineSource(440.0, sample_rate)
        whole = SineSource(440.0, sample_rate)

        pieces = np.concatenate([chunked.read(300), chunked.read(724)])

        assert np.allclose(pieces, whole.read(1024), atol=1e-4)

    def test_sine_starts_at_zero_phase(self, sample_rate):
        """Output is a sine, not a cosine."""
        samples = SineSource(440.0, sample_rate, amplitude=0.5).read(8)
        t = np.arange(8) / sample_rate

        assert np.allclose(samples, 0.5 * np.sin(2 * np.pi * 440.0 * t), atol=1e-5)

    def test_sine_frequency(self, sample_rate, buffer_size):
        samples = SineSource(1000.0, sample_rate).read(buffer_size)

        peak = int(np.argmax(transform(samples)))
        assert peak == round(1000.0 * buffer_size / sample_rate)

    def test_sine_rejects_frequency_above_nyquist(self):
        with pytest.raises(ConfigurationError):
            SineSource(30000.0, 44100)


class TestSampleWindow:
    """Tests for SampleWindow."""

    def test_fills_then_slides(self):
        window = SampleWindow(4)

        window.push([1, 2, 3])
        assert not window.ready
        assert window.latest() is None

        window.push([4, 5])
        assert window.ready
        assert np.array_equal(window.latest(), [2, 3, 4, 5])

    def test_latest_is_a_copy(self):
        window = SampleWindow(2)
        window.push([1, 2])

        window.latest()[0] = 99.0

        assert np.array_equal(window.latest(), [1, 2])

    def test_resize_keeps_recent_audio(self):
        window = SampleWindow(4)
        window.push([1, 2, 3, 4])

        window.resize(2)

        assert np.array_equal(window.latest(), [3, 4])

    def test_clear(self):
        window = SampleWindow(2)
        window.push([1, 2])

        window.clear()

        assert len(window) == 0


class TestSampleChannel:
    """Tests for SampleChannel."""

    def test_drops_oldest_when_full(self):
        """A full channel discards the oldest chunk, never blocks."""
        channel = SampleChannel(capacity=2)

        assert channel.put(np.array([1.0]))
        assert channel.put(np.array([2.0]))
        assert not channel.put(np.array([3.0]))

        assert channel.dropped == 1
        assert [c[0] for c in channel.drain()] == [2.0, 3.0]

    def test_get_timeout(self):
        channel = SampleChannel()

        assert channel.get(timeout=0.01) is None

    def test_invalid_capacity(self):
        with pytest.raises(ConfigurationError):
            SampleChannel(capacity=0)


class TestSpectrumStream:
    """Tests for SpectrumStream."""

    def test_feed_waits_for_full_window(self, scenario_config, pure_sine):
        pipeline = SpectrumPipeline(scenario_config)
        stream = SpectrumStream(pipeline)

        assert not stream.feed(pure_sine[:600])
        assert stream.feed(pure_sine[600:])
        assert pipeline.get_snapshot().sequence == 1

    def test_feed_counts_bad_windows(self, scenario_config, silence, caplog):
        """Degenerate windows are skipped and logged, not raised."""
        stream = SpectrumStream(SpectrumPipeline(scenario_config))
        bad = silence.copy()
        bad[0] = np.inf

        assert not stream.feed(bad)
        assert stream.errors == 1
        assert "Skipping sample window" in caplog.text

    def test_feed_follows_buffer_size(self, scenario_config, white_noise):
        """The window tracks buffer_size changes."""
        pipeline = SpectrumPipeline(scenario_config)
        stream = SpectrumStream(pipeline)
        stream.feed(white_noise)

        pipeline.update_config(buffer_size=512)

        assert stream.feed(white_noise[:16])
        assert stream.window.size == 512

    def test_threaded_stream(self, scenario_config, sample_rate):
        """Pushed audio is processed on the worker thread."""
        pipeline = SpectrumPipeline(scenario_config)
        source = SineSource(440.0, sample_rate)

        with SpectrumStream(pipeline, poll_interval=0.01) as stream:
            assert stream.running
            for _ in range(8):
                stream.push(source.read(256))
            assert wait_for(lambda: pipeline.get_snapshot().sequence > 0)

        assert not stream.running
        bars = pipeline.get_bars()
        peak = max(bars, key=lambda bar: bar.value)
        assert peak.low_hz <= 440.0 < peak.high_hz

    def test_stereo_push(self, scenario_config):
        """Interleaved stereo is mixed down before windowing."""
        pipeline = SpectrumPipeline(scenario_config)
        stream = SpectrumStream(pipeline, channel_count=2)

        stream.push(np.zeros(2048, dtype=np.float32))

        assert len(stream.channel.drain()[0]) == 1024

    def test_stop_keeps_busy_worker(self, scenario_config, white_noise, caplog):
        """A worker that outlives stop() is resumed, never duplicated."""
        pipeline = SpectrumPipeline(scenario_config)
        entered = threading.Event()
        release = threading.Event()

        def hold(snapshot):
            entered.set()
            release.wait(5.0)

        pipeline.subscribe(hold)
        stream = SpectrumStream(pipeline, poll_interval=0.01).start()
        stream.push(white_noise)
        assert entered.wait(5.0)

        stream.stop(timeout=0.05)
        assert stream.running
        assert "still busy" in caplog.text

        worker = stream._thread
        stream.start()
        assert stream._thread is worker
        assert sum(t.name == "spectrabars-stream" for t in threading.enumerate()) == 1

        release.set()
        stream.stop()
        assert not stream.running
