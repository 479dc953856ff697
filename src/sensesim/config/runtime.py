"""Runtime configuration for the simulator, spectrum loop and analysis worker."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import numpy as np
import yaml

_METHODS = ("zoh", "tustin")


@dataclass(slots=True)
class SimulatorConfig:
    """
    Tuning knobs for sample generation, spectra and the debounced analysis.

    The defaults describe a 5 s window at 100 Hz refreshed by a ~30 Hz UI.
    """

    sample_rate_hz: float = 100.0
    buffer_seconds: float = 5.0

    fft_max_hz: float = 10.0
    spectrum_interval_s: float = 0.1
    frame_interval_s: float = 0.033
    peak_count: int = 5

    analysis_settle_s: float = 0.2
    bode_points: int = 256
    bode_min_hz: float = 1.0
    discretization: str = "zoh"
    normalize_weights: bool = True

    @property
    def samples_per_buffer(self) -> int:
        return max(1, int(round(self.sample_rate_hz * self.buffer_seconds)))

    def sanitized(self) -> SimulatorConfig:
        """Return a copy with derived limits applied."""
        method = str(self.discretization).strip().lower()
        if method not in _METHODS:
            method = "zoh"
        sample_rate = max(1.0, float(self.sample_rate_hz))
        return SimulatorConfig(
            sample_rate_hz=sample_rate,
            buffer_seconds=max(0.1, float(self.buffer_seconds)),
            fft_max_hz=max(1.0, float(self.fft_max_hz)),
            spectrum_interval_s=max(0.001, float(self.spectrum_interval_s)),
            frame_interval_s=max(0.001, float(self.frame_interval_s)),
            peak_count=max(1, int(self.peak_count)),
            analysis_settle_s=max(0.0, float(self.analysis_settle_s)),
            bode_points=max(2, int(self.bode_points)),
            bode_min_hz=min(max(1e-3, float(self.bode_min_hz)), sample_rate / 4.0),
            discretization=method,
            normalize_weights=bool(self.normalize_weights),
        )


def bode_frequencies(config: SimulatorConfig | None = None) -> np.ndarray:
    """Log-spaced Bode grid from ``bode_min_hz`` up to the Nyquist frequency."""
    cfg = (config or SimulatorConfig()).sanitized()
    nyquist = cfg.sample_rate_hz / 2.0
    return np.logspace(np.log10(cfg.bode_min_hz), np.log10(nyquist), cfg.bode_points)


def _recognized_fields() -> set[str]:
    """Return the dataclass field names accepted by :class:`SimulatorConfig`."""
    return {f.name for f in fields(SimulatorConfig)}


def _normalize_mapping(data: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Flatten a top-level ``simulator`` block into the root mapping."""
    if "simulator" in data and isinstance(data["simulator"], Mapping):
        merged: MutableMapping[str, Any] = {}
        for key, value in data.items():
            if key == "simulator":
                merged.update(value)
            else:
                merged[key] = value
        return merged
    return dict(data)


def config_from_mapping(data: Mapping[str, Any] | None) -> SimulatorConfig:
    """Build :class:`SimulatorConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return SimulatorConfig()
    normalized = _normalize_mapping(data)
    known = _recognized_fields()
    payload = {key: normalized[key] for key in normalized.keys() & known}
    return SimulatorConfig(**payload).sanitized()


def load_config(path: str | Path | None) -> SimulatorConfig:
    """
    Load configuration from ``path``.

    Missing files fall back to default :class:`SimulatorConfig`.
    """
    if path is None:
        return SimulatorConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return SimulatorConfig()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = ["SimulatorConfig", "bode_frequencies", "config_from_mapping", "load_config"]
