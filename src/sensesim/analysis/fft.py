"""FFT helpers."""

from __future__ import annotations

from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike
from scipy.signal import windows

MIN_FFT_LENGTH = 32
MAX_FFT_LENGTH = 4096


def next_power_of_two(value: int) -> int:
    if value < 1:
        return 1
    return 1 << (int(value) - 1).bit_length()


def preferred_fft_length(sample_count: int) -> int:
    """
    Power-of-two transform length nearest to ``sample_count``.

    The count is clamped to [32, 4096] first; a tie between the lower and
    upper power of two goes to the upper one.
    """
    capped = min(max(int(sample_count), MIN_FFT_LENGTH), MAX_FFT_LENGTH)
    upper = next_power_of_two(capped)
    lower = upper >> 1
    if lower >= MIN_FFT_LENGTH and abs(capped - lower) < abs(upper - capped):
        return lower
    return upper


def hann_window(length: int) -> np.ndarray:
    """Symmetric Hann window ``0.5·(1 - cos(2πn/(N-1)))``."""
    if length <= 0:
        return np.zeros(0)
    return windows.hann(int(length), sym=True)


def bit_reverse_indices(n: int) -> np.ndarray:
    """Bit-reversal permutation for a power-of-two length ``n``."""
    bits = int(n).bit_length() - 1
    idx = np.arange(n)
    reversed_idx = np.zeros(n, dtype=np.int64)
    for bit in range(bits):
        reversed_idx |= ((idx >> bit) & 1) << (bits - 1 - bit)
    return reversed_idx


def radix2_fft(values: ArrayLike) -> np.ndarray:
    """
    Iterative radix-2 decimation-in-time FFT.

    The input is permuted into bit-reversed order and combined in
    ``log2(N)`` butterfly stages; each stage is applied to every block at
    once. ``len(values)`` must be a power of two.
    """
    x = np.asarray(values, dtype=np.complex128).reshape(-1)
    n = x.size
    if n <= 1:
        return x.copy()
    if n & (n - 1):
        raise ValueError(f"radix-2 FFT needs a power-of-two length, got {n}")

    x = x[bit_reverse_indices(n)]
    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        blocks = x.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddle
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size <<= 1
    return x


def compute_fft(
    signal: ArrayLike,
    sample_rate_hz: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute one-sided frequency bins and normalized magnitudes.

    Parameters
    ----------
    signal:
        1-D input whose length is a power of two (already detrended and
        windowed by the caller).
    sample_rate_hz:
        Sampling rate in Hz. Must be > 0.

    Returns
    -------
    freqs : np.ndarray
        ``N/2 + 1`` frequency bins in Hz.
    magnitude : np.ndarray
        ``|X[k]| / N`` for the same bins.
    """
    if not sample_rate_hz > 0:
        raise ValueError(f"sample_rate_hz must be > 0, got {sample_rate_hz}")

    arr = np.asarray(signal, dtype=float).reshape(-1)
    if arr.size == 0:
        raise ValueError("signal must contain at least one sample")

    n = arr.size
    spectrum = radix2_fft(arr)
    bins = n // 2 + 1
    freqs = np.arange(bins) * (float(sample_rate_hz) / n)
    magnitude = np.abs(spectrum[:bins]) / n
    return freqs, magnitude


__all__ = [
    "MIN_FFT_LENGTH",
    "MAX_FFT_LENGTH",
    "next_power_of_two",
    "preferred_fft_length",
    "hann_window",
    "bit_reverse_indices",
    "radix2_fft",
    "compute_fft",
]
