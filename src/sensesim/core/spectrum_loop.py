"""Periodic loop that pulls channel windows from the engine and computes spectra."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ..analysis.spectrum import FftPeaks, SpectralEngine, SpectrumBlock, extract_peaks
from .models import CHANNEL_ORDER, HARD_CLIP_LIMIT, Channel
from .signal_engine import SignalEngine

logger = logging.getLogger(__name__)

INVALID_RATIO_THRESHOLD = 0.01
DEFAULT_TICK_S = 0.033
DEFAULT_FFT_INTERVAL_S = 0.1

# Smallest vertical span shown for each channel's time plot.
MIN_AXIS_SPAN = {
    Channel.ORIENTATION: 1.0,
    Channel.FORCE: 0.5,
    Channel.STRAIN: 0.02,
    Channel.EMG: 1.0,
}

AxisRange = Tuple[float, float]
FrameCallback = Callable[["SpectrumFrame"], None]


def default_axis_range(channel: Channel) -> AxisRange:
    half = MIN_AXIS_SPAN[channel] / 2.0
    return (-half, half)


def robust_axis_range(channel: Channel, data: np.ndarray) -> AxisRange:
    """5th-95th percentile range with a 10 % margin, never narrower than the channel minimum."""
    values = np.asarray(data, dtype=np.float64)
    if values.size == 0:
        return default_axis_range(channel)

    min_span = MIN_AXIS_SPAN[channel]
    lower, upper = np.percentile(values, [5.0, 95.0])
    if np.isnan(lower) or np.isnan(upper):
        return default_axis_range(channel)
    if upper - lower < 1e-6:
        median = float(np.median(values))
        return (median - min_span / 2.0, median + min_span / 2.0)

    margin = (upper - lower) * 0.1
    low, high = float(lower - margin), float(upper + margin)
    if high - low < min_span:
        center = (low + high) / 2.0
        low, high = center - min_span / 2.0, center + min_span / 2.0
    return (low, high)


def sanitize_window(channel: Channel, data: np.ndarray) -> int:
    """
    In-place: non-finite samples become 0 and magnitudes are clipped to 1e6.

    Returns the number of touched samples; a warning is logged when more than
    1 % of the window needed fixing.
    """
    if data.size == 0:
        return 0
    non_finite = ~np.isfinite(data)
    data[non_finite] = 0.0
    over = np.abs(data) > HARD_CLIP_LIMIT
    np.clip(data, -HARD_CLIP_LIMIT, HARD_CLIP_LIMIT, out=data)

    touched = int(non_finite.sum() + over.sum())
    if over.any():
        logger.debug("%s values clipped to ±%.1e", channel.name, HARD_CLIP_LIMIT)
    if touched > data.size * INVALID_RATIO_THRESHOLD:
        logger.warning("%s sanitized %.1f%% of samples in current window", channel.name, 100.0 * touched / data.size)
    return touched


@dataclass(slots=True)
class SpectrumFrame:
    """Everything a plotting consumer needs for one refresh."""

    signals: Dict[Channel, np.ndarray] = field(default_factory=dict)
    spectra: Dict[Channel, SpectrumBlock] = field(default_factory=dict)
    peaks: Dict[Channel, FftPeaks] = field(default_factory=dict)
    axis_ranges: Dict[Channel, AxisRange] = field(default_factory=dict)
    elapsed: float = 0.0
    sample_period: float = 0.0
    samples_in_window: int = 0
    buffer_fill: float = 0.0
    window_seconds: float = 0.0
    sequence: int = 0


class SpectrumLoop:
    """
    Background thread refreshing a :class:`SpectrumFrame` at a fixed cadence.

    Signals are copied every tick; spectra are recomputed at most every
    ``fft_interval`` seconds. :meth:`tick` runs one iteration synchronously.
    """

    def __init__(
        self,
        engine: SignalEngine,
        spectral: SpectralEngine | None = None,
        *,
        tick_interval: float = DEFAULT_TICK_S,
        fft_interval: float = DEFAULT_FFT_INTERVAL_S,
        max_hz: float = 10.0,
        peak_count: int = 5,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._engine = engine
        self._spectral = spectral or SpectralEngine(clock=clock)
        self._clock = clock or time.monotonic
        self._tick_interval = max(0.001, float(tick_interval))
        self._fft_interval = max(0.0, float(fft_interval))
        self._max_hz = max_hz
        self._peak_count = peak_count

        self._window = engine.samples_per_buffer
        self._lock = threading.Lock()
        self._frame = self._blank_frame()
        self._last_fft = -float("inf")
        self._callbacks: List[FrameCallback] = []

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, engine: SignalEngine, **kwargs) -> "SpectrumLoop":
        cfg = engine.config
        return cls(
            engine,
            tick_interval=cfg.frame_interval_s,
            fft_interval=cfg.spectrum_interval_s,
            max_hz=cfg.fft_max_hz,
            peak_count=cfg.peak_count,
            **kwargs,
        )

    @property
    def spectral(self) -> SpectralEngine:
        return self._spectral

    @property
    def frame(self) -> SpectrumFrame:
        """The most recently published frame."""
        with self._lock:
            return self._frame

    def add_callback(self, callback: FrameCallback) -> None:
        self._callbacks.append(callback)

    def _blank_frame(self) -> SpectrumFrame:
        rate = self._engine.sample_rate
        return SpectrumFrame(
            signals={ch: np.zeros(self._window) for ch in CHANNEL_ORDER},
            spectra={ch: SpectrumBlock.empty(rate) for ch in CHANNEL_ORDER},
            peaks={ch: FftPeaks.EMPTY for ch in CHANNEL_ORDER},
            axis_ranges={ch: default_axis_range(ch) for ch in CHANNEL_ORDER},
            sample_period=self._engine.sample_period,
            window_seconds=self._window * self._engine.sample_period,
        )

    def reset(self) -> None:
        with self._lock:
            self._frame = self._blank_frame()
            self._last_fft = -float("inf")
        self._spectral.clear()

    def tick(self) -> SpectrumFrame:
        """Run one refresh and publish the resulting frame."""
        engine = self._engine
        produced = max(0, int(engine.produced_samples))
        in_window = min(self._window, produced)

        signals: Dict[Channel, np.ndarray] = {}
        ranges: Dict[Channel, AxisRange] = {}
        for channel in CHANNEL_ORDER:
            data = np.zeros(self._window)
            engine.copy_latest(channel, data)
            tail = data[self._window - in_window :]
            if in_window > 0:
                sanitize_window(channel, tail)
                ranges[channel] = robust_axis_range(channel, tail)
            else:
                ranges[channel] = default_axis_range(channel)
            signals[channel] = data

        with self._lock:
            previous = self._frame
            spectra = dict(previous.spectra)
            peaks = dict(previous.peaks)

        now = self._clock()
        if now - self._last_fft >= self._fft_interval:
            for channel in CHANNEL_ORDER:
                block = self._spectral.compute(signals[channel], engine.sample_rate, channel, self._max_hz)
                spectra[channel] = block
                peaks[channel] = extract_peaks(block, self._peak_count)
            self._last_fft = now

        frame = SpectrumFrame(
            signals=signals,
            spectra=spectra,
            peaks=peaks,
            axis_ranges=ranges,
            elapsed=engine.elapsed,
            sample_period=engine.sample_period,
            samples_in_window=in_window,
            buffer_fill=engine.buffer_fill,
            window_seconds=self._window * engine.sample_period,
            sequence=previous.sequence + 1,
        )
        with self._lock:
            self._frame = frame

        for callback in list(self._callbacks):
            try:
                callback(frame)
            except Exception:
                logger.exception("Spectrum frame callback failed")
        return frame

    # ------------------------------------------------------------- threading
    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Spectrum loop tick failed")
            self._stop_event.wait(self._tick_interval)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="SenseSimSpectrumLoop", daemon=True)
        self._thread.start()

    def stop(self, *, join: bool = False, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if join and thread is not None:
            thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


__all__ = [
    "SpectrumFrame",
    "SpectrumLoop",
    "robust_axis_range",
    "sanitize_window",
    "default_axis_range",
]
