"""
Cached, rate-limited magnitude spectra per channel and peak extraction.

:class:`SpectralEngine` keeps one cache entry per channel id. A recompute
happens at most once per ``1 / max_hz`` seconds for a key; calls in between
return the cached :class:`SpectrumBlock` unchanged.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, Hashable, Optional

import numpy as np
from numpy.typing import ArrayLike

from ..core.models import Channel
from .fft import compute_fft, hann_window, preferred_fft_length

logger = logging.getLogger(__name__)

DB_MAGNITUDE_FLOOR = 1e-12
DEFAULT_PEAK_COUNT = 5


def _readonly(values: ArrayLike) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(-1)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class SpectrumBlock:
    """One-sided spectrum of a channel window plus its strongest bin."""

    frequency: np.ndarray
    magnitude: np.ndarray
    magnitude_db: np.ndarray
    sample_rate: float
    peak_index: int = -1
    peak_frequency: float = 0.0
    peak_magnitude: float = -math.inf

    @classmethod
    def empty(cls, sample_rate: float = 0.0) -> "SpectrumBlock":
        return cls(_readonly([]), _readonly([]), _readonly([]), float(sample_rate))

    @classmethod
    def from_spectrum(
        cls,
        frequency: ArrayLike,
        magnitude: ArrayLike,
        magnitude_db: ArrayLike,
        sample_rate: float,
    ) -> "SpectrumBlock":
        """Build a block and locate the highest dB bin (first one wins on ties)."""
        freqs = _readonly(frequency)
        mags = _readonly(magnitude)
        db = _readonly(magnitude_db)
        if db.size == 0:
            return cls(freqs, mags, db, float(sample_rate))

        index = int(np.argmax(np.where(np.isnan(db), -np.inf, db)))
        peak_frequency = float(freqs[index]) if index < freqs.size else 0.0
        return cls(freqs, mags, db, float(sample_rate), index, peak_frequency, float(db[index]))

    @property
    def is_empty(self) -> bool:
        return self.magnitude_db.size == 0

    @property
    def bin_width(self) -> float:
        if self.frequency.size < 2:
            return 0.0
        return float(self.frequency[1] - self.frequency[0])


@dataclass(frozen=True)
class FftPeaks:
    """Top-K spectral peaks, frequency-sorted; :attr:`EMPTY` means none were found."""

    frequencies: np.ndarray
    magnitudes: np.ndarray
    min_db: float
    max_db: float
    has_peaks: bool

    EMPTY: ClassVar["FftPeaks"]

    def __len__(self) -> int:
        return int(self.frequencies.size)


FftPeaks.EMPTY = FftPeaks(_readonly([]), _readonly([]), math.nan, math.nan, False)


def extract_peaks(block: SpectrumBlock, count: int = DEFAULT_PEAK_COUNT) -> FftPeaks:
    """
    The ``count`` strongest bins of ``block`` by dB value, excluding bin 0.

    Candidates are kept in a descending list by insertion; NaN bins are
    skipped. The result is sorted by ascending frequency.
    """
    size = min(block.magnitude_db.size, block.frequency.size)
    if size <= 1 or count <= 0:
        return FftPeaks.EMPTY

    top_index = [-1] * count
    top_value = [-math.inf] * count
    for j in range(1, size):
        value = float(block.magnitude_db[j])
        if math.isnan(value):
            continue
        for k in range(count):
            if value > top_value[k]:
                top_value[k + 1 :] = top_value[k:-1]
                top_index[k + 1 :] = top_index[k:-1]
                top_value[k] = value
                top_index[k] = j
                break

    found = [(block.frequency[i], v) for i, v in zip(top_index, top_value) if i >= 0]
    if not found:
        return FftPeaks.EMPTY

    found.sort(key=lambda pair: pair[0])
    frequencies = _readonly([f for f, _ in found])
    magnitudes = _readonly([v for _, v in found])
    return FftPeaks(frequencies, magnitudes, float(magnitudes.min()), float(magnitudes.max()), True)


@dataclass(slots=True)
class _CacheEntry:
    length: int = 0
    window: np.ndarray = field(default_factory=lambda: np.zeros(0))
    block: SpectrumBlock = field(default_factory=SpectrumBlock.empty)
    last_run: float = -math.inf


def _cache_key(key: Hashable) -> Hashable:
    if isinstance(key, (Channel, int)):
        return int(key)
    if isinstance(key, str):
        return int(Channel.parse(key))
    return key


class SpectralEngine:
    """
    Hann-windowed radix-2 spectra with a per-channel cache.

    ``clock`` returns seconds and defaults to :func:`time.monotonic`; tests
    inject a fake one to control rate limiting.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._cache: Dict[Hashable, _CacheEntry] = {}

    def compute(
        self,
        samples: ArrayLike,
        sample_rate: float,
        key: Hashable,
        max_hz: float = 10,
    ) -> SpectrumBlock:
        data = np.asarray(samples, dtype=np.float64).reshape(-1)
        rate = float(sample_rate)
        if data.size == 0 or math.isnan(rate) or rate <= 0:
            return SpectrumBlock.empty(rate)

        with self._lock:
            entry = self._cache.setdefault(_cache_key(key), _CacheEntry())
            min_interval = 1.0 / max(1.0, float(max_hz))
            now = self._clock()
            if now - entry.last_run < min_interval and not entry.block.is_empty:
                return entry.block

            n = preferred_fft_length(data.size)
            if entry.length != n:
                entry.length = n
                entry.window = hann_window(n)
                logger.debug("FFT length for key %r is now %d", key, n)

            copied = min(data.size, n)
            work = np.zeros(n)
            work[n - copied :] = data[data.size - copied :]
            mean = float(np.mean(work[n - copied :]))
            work = (work - mean) * entry.window

            freqs, amplitude = compute_fft(work, rate)
            magnitude_db = 20.0 * np.log10(np.maximum(amplitude, DB_MAGNITUDE_FLOOR))

            entry.block = SpectrumBlock.from_spectrum(freqs, amplitude, magnitude_db, rate)
            entry.last_run = now
            return entry.block

    def cached(self, key: Hashable) -> Optional[SpectrumBlock]:
        with self._lock:
            entry = self._cache.get(_cache_key(key))
            return None if entry is None else entry.block

    def clear(self, key: Hashable | None = None) -> None:
        """Drop the cache for ``key``, or for every key when None."""
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(_cache_key(key), None)


__all__ = [
    "SpectrumBlock",
    "FftPeaks",
    "SpectralEngine",
    "extract_peaks",
]
