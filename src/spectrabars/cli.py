"""
Command-line demo for the spectrum pipeline.

Usage:
    spectrabars-demo [--tone HZ ...] [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

from spectrabars.config import BarAggregation, BarSpacing, InterpolationMode, SpectrumConfig
from spectrabars.errors import SpectrumError
from spectrabars.io.exporter import SpectrumExporter
from spectrabars.pipeline import SpectrumPipeline, SpectrumSnapshot
from spectrabars.stream import SineSource, SpectrumStream

BLOCKS = " ▁▂▃▄▅▆▇█"


class FrameClock:
    """Clock that advances by one frame each time it is read."""

    def __init__(self, fps: float):
        self.step = 1.0 / fps
        self.now = 0.0

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class ToneMix:
    """Sum of sine tones plus optional white noise."""

    def __init__(self, tones: list[float], sample_rate: int, amplitude: float, noise: float = 0.0, seed: int = 0):
        self.sample_rate = sample_rate
        self.sources = [SineSource(f, sample_rate, amplitude / max(len(tones), 1)) for f in tones]
        self.noise = noise
        self.rng = np.random.default_rng(seed)

    def read(self, frames: int) -> np.ndarray:
        mix = np.zeros(frames, dtype=np.float32)
        for source in self.sources:
            mix += source.read(frames)
        if self.noise > 0:
            mix += (self.rng.standard_normal(frames) * self.noise).astype(np.float32)
        return mix


def render_bars(snapshot: SpectrumSnapshot) -> str:
    """One-line block rendering of a snapshot."""
    ceiling = snapshot.config.max_volume
    levels = len(BLOCKS) - 1
    return "".join(
        BLOCKS[int(round(min(bar.value / ceiling, 1.0) * levels))]
        for bar in snapshot.bars
    )


def _show(line: str, sequence: int, total: int):
    if sys.stdout.isatty():
        sys.stdout.write(f"\r|{line}| {sequence}/{total}")
        sys.stdout.flush()
        if sequence >= total:
            sys.stdout.write("\n")
    else:
        print(f"|{line}| {sequence}/{total}", flush=True)


def _distribution_point(text: str) -> tuple[float, float]:
    try:
        freq, scale = text.split(":")
        return float(freq), float(scale)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected HZ:SCALE, got {text!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spectrabars-demo",
        description="Render spectrum bars for a synthetic test signal",
    )

    parser.add_argument(
        "-t", "--tone",
        type=float,
        action="append",
        default=None,
        help="Sine tone frequency in Hz; repeat for several tones (default: 440)",
    )
    parser.add_argument("--amplitude", type=float, default=0.8, help="Total tone amplitude (default: 0.8)")
    parser.add_argument("--noise", type=float, default=0.0, help="White noise level (default: 0)")

    parser.add_argument("-n", "--frames", type=int, default=120, help="Frames to render (default: 120)")
    parser.add_argument("-f", "--fps", type=float, default=60.0, help="Frames per second (default: 60)")

    # Spectrum
    parser.add_argument("-s", "--sample-rate", type=int, default=44100, help="Sample rate (default: 44100)")
    parser.add_argument("-b", "--buffer-size", type=int, default=2048, help="FFT size (default: 2048)")
    parser.add_argument("-r", "--resolution", type=int, default=32, help="Number of bars (default: 32)")
    parser.add_argument("--min-hz", type=float, default=50.0, help="Lowest bar edge (default: 50)")
    parser.add_argument("--max-hz", type=float, default=20000.0, help="Highest bar edge (default: 20000)")
    parser.add_argument(
        "--interpolation",
        choices=[m.value for m in InterpolationMode],
        default=InterpolationMode.CUBIC.value,
        help="Estimate for bars narrower than a bin (default: cubic)",
    )
    parser.add_argument(
        "--aggregation",
        choices=[m.value for m in BarAggregation],
        default=BarAggregation.MEAN.value,
        help="Combine bins within a bar (default: mean)",
    )
    parser.add_argument(
        "--spacing",
        choices=[m.value for m in BarSpacing],
        default=BarSpacing.LOGARITHMIC.value,
        help="Bar edge distribution (default: logarithmic)",
    )
    parser.add_argument(
        "--distribution",
        type=_distribution_point,
        action="append",
        default=None,
        metavar="HZ:SCALE",
        help="Give the bars around HZ SCALE times more room; repeat for a curve",
    )
    parser.add_argument("--gain", type=float, default=4.0, help="Overall gain (default: 4.0)")
    parser.add_argument("--gravity", type=float, default=4.0, help="Fall acceleration per second^2 (default: 4.0)")

    # Output
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write a manifest (.json, or .npz for NumPy)",
    )
    parser.add_argument("--live", action="store_true", help="Run through the threaded stream in real time")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not draw bars")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.frames < 1 or args.fps <= 0:
        print("Error: --frames and --fps must be positive", file=sys.stderr)
        return 1

    try:
        config = SpectrumConfig(
            sample_rate=args.sample_rate,
            buffer_size=args.buffer_size,
            resolution=args.resolution,
            frequency_range=(args.min_hz, args.max_hz),
            bar_spacing=args.spacing,
            interpolation_mode=args.interpolation,
            bar_aggregation=args.aggregation,
            position_distribution=args.distribution,
            gain=args.gain,
            gravity_acceleration=args.gravity,
        ).validate()
        source = ToneMix(args.tone or [440.0], args.sample_rate, args.amplitude, args.noise)
    except SpectrumError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    clock = time.monotonic if args.live else FrameClock(args.fps)
    pipeline = SpectrumPipeline(config, clock=clock)

    snapshots: list[SpectrumSnapshot] = []
    pipeline.subscribe(snapshots.append)
    if not args.quiet:
        pipeline.subscribe(lambda s: _show(render_bars(s), s.sequence, args.frames))

    hop = max(1, int(round(args.sample_rate / args.fps)))
    stream = SpectrumStream(pipeline)

    # Pre-fill so the first frame already has a full window
    stream.feed(source.read(max(config.buffer_size - hop, 0)))

    if args.live:
        with stream:
            for _ in range(args.frames):
                stream.push(source.read(hop))
                time.sleep(1.0 / args.fps)
    else:
        for _ in range(args.frames):
            stream.feed(source.read(hop))

    if stream.errors:
        print(f"Error: {stream.errors} window(s) could not be processed", file=sys.stderr)
        return 1

    if args.output is not None and snapshots:
        exporter = SpectrumExporter()
        if args.output.suffix == ".npz":
            written = exporter.export_numpy(snapshots, args.output)
        else:
            written = exporter.export_json(snapshots, args.fps, args.output)
        if not args.quiet:
            print(f"Frames: {len(snapshots)}")
            print(f"Output: {written}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
