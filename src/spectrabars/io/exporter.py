"""
Spectrum serialization module.

Converts bars, snapshots and configurations into plain dictionaries,
JSON manifests and NumPy archives for renderers and tooling.
"""

import json
import math
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Union

import numpy as np

from spectrabars.config import SpectrumConfig
from spectrabars.core.smoother import Bar
from spectrabars.errors import ConfigurationError
from spectrabars.pipeline import SpectrumSnapshot


@dataclass
class ManifestMetadata:
    """Metadata header for a bar manifest."""

    fps: float
    n_frames: int
    resolution: int
    sample_rate: int
    schema_version: str = "1.0"


def _encode_float(value: float) -> float | str:
    """JSON has no infinity; spell it out."""
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return value


class SpectrumExporter:
    """
    Exports bars and configurations to serializable formats.

    Each manifest frame holds one snapshot: its sequence number and the
    value of every bar.
    """

    def __init__(self, precision: int = 4):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def bar_to_dict(self, bar: Bar) -> dict[str, Any]:
        """Public fields of a bar; smoother state is left out."""
        return {
            "low_hz": self._round(bar.low_hz),
            "high_hz": self._round(bar.high_hz),
            "raw_value": self._round(bar.raw_value),
            "value": self._round(bar.value),
        }

    def config_to_dict(self, config: SpectrumConfig) -> dict[str, Any]:
        """Configuration as JSON-compatible values."""
        data: dict[str, Any] = {}
        for f in fields(config):
            value = getattr(config, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = [list(v) if isinstance(v, tuple) else v for v in value]
            elif isinstance(value, float):
                value = _encode_float(value)
            data[f.name] = value
        return data

    def config_from_dict(self, data: dict[str, Any]) -> SpectrumConfig:
        """
        Rebuild a configuration from ``config_to_dict`` output.

        Missing options take their defaults.

        Raises:
            ConfigurationError: Unknown options or invalid values.
        """
        known = set(SpectrumConfig.field_names())
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")

        kwargs = dict(data)
        for name, value in kwargs.items():
            if isinstance(value, str) and value in ("inf", "-inf"):
                kwargs[name] = float(value)
        if "frequency_range" in kwargs:
            kwargs["frequency_range"] = tuple(kwargs["frequency_range"])

        return SpectrumConfig(**kwargs).validate()

    def _build_frame(self, index: int, snapshot: SpectrumSnapshot) -> dict[str, Any]:
        return {
            "frame_index": index,
            "sequence": snapshot.sequence,
            "values": [self._round(bar.value) for bar in snapshot.bars],
            "raw_values": [self._round(bar.raw_value) for bar in snapshot.bars],
        }

    def build_manifest(
        self,
        snapshots: Iterable[SpectrumSnapshot],
        fps: float,
    ) -> dict[str, Any]:
        """
        Build a manifest dictionary from consecutive snapshots.

        All snapshots must share one bar layout; the layout is written once
        in the header.

        Args:
            snapshots: Snapshots in processing order.
            fps: Rate the snapshots were taken at.

        Returns:
            Manifest dictionary ready for serialization.
        """
        snapshots = list(snapshots)
        if not snapshots:
            raise ConfigurationError("Cannot build a manifest without snapshots")

        config = snapshots[0].config
        ranges = [bar.frequency_range for bar in snapshots[0].bars]
        for snapshot in snapshots[1:]:
            if [bar.frequency_range for bar in snapshot.bars] != ranges:
                raise ConfigurationError("Snapshots in one manifest must share a bar layout")

        metadata = ManifestMetadata(
            fps=fps,
            n_frames=len(snapshots),
            resolution=len(ranges),
            sample_rate=config.sample_rate,
        )

        return {
            "metadata": asdict(metadata),
            "config": self.config_to_dict(config),
            "bars": [
                {"low_hz": self._round(low), "high_hz": self._round(high)}
                for low, high in ranges
            ],
            "frames": [self._build_frame(i, s) for i, s in enumerate(snapshots)],
        }

    def export_json(
        self,
        snapshots: Iterable[SpectrumSnapshot],
        fps: float,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Export a manifest to a JSON file.

        Returns:
            Path to written file.
        """
        manifest = self.build_manifest(snapshots, fps)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=indent)

        return output_path

    def export_numpy(
        self,
        snapshots: Iterable[SpectrumSnapshot],
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export bar values as a NumPy .npz archive.

        Arrays: ``values`` and ``raw_values`` with shape (n_frames, resolution),
        ``frequency_ranges`` with shape (resolution, 2) and ``sequence``.

        Returns:
            Path to written file.
        """
        snapshots = list(snapshots)
        if not snapshots:
            raise ConfigurationError("Cannot export without snapshots")
        output_path = Path(output_path)

        np.savez_compressed(
            output_path,
            values=np.array([[b.value for b in s.bars] for s in snapshots], dtype=np.float32),
            raw_values=np.array([[b.raw_value for b in s.bars] for s in snapshots], dtype=np.float32),
            frequency_ranges=np.array([b.frequency_range for b in snapshots[0].bars], dtype=np.float64),
            sequence=np.array([s.sequence for s in snapshots], dtype=np.int64),
        )

        return output_path

    def to_dict(self, snapshot: SpectrumSnapshot) -> dict[str, Any]:
        """Single snapshot as a dictionary (for in-memory use)."""
        return {
            "sequence": snapshot.sequence,
            "config": self.config_to_dict(snapshot.config),
            "bars": [self.bar_to_dict(bar) for bar in snapshot.bars],
        }
