from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from typing import Any, MutableSequence

import numpy as np
from numpy.typing import DTypeLike


class RingBuffer:
    """
    Fixed-size, thread-safe ring buffer of numeric samples.

    Overwrites the oldest entry once full. Every public operation takes the
    same internal lock, so a reader never sees a half-applied write.
    """

    def __init__(self, capacity: int, dtype: DTypeLike = np.float64) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = int(capacity)
        self._data = np.zeros(self._capacity, dtype=dtype)
        self._head = 0
        self._count = 0
        self._lock = threading.RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def fill_ratio(self) -> float:
        with self._lock:
            return self._count / float(self._capacity)

    def write(self, value: Any) -> None:
        with self._lock:
            self._data[self._head] = value
            self._head = (self._head + 1) % self._capacity
            if self._count < self._capacity:
                self._count += 1

    def extend(self, values: Iterable[Any]) -> None:
        """Write ``values`` in order as one atomic operation."""
        block = np.asarray(list(values) if not isinstance(values, np.ndarray) else values, dtype=self._data.dtype)
        block = block.reshape(-1)
        if block.size == 0:
            return
        with self._lock:
            total = block.size
            if total >= self._capacity:
                block = block[-self._capacity :]
            positions = (self._head + (total - block.size) + np.arange(block.size)) % self._capacity
            self._data[positions] = block
            self._head = (self._head + total) % self._capacity
            self._count = min(self._capacity, self._count + total)

    def replace(self, values: Iterable[Any]) -> None:
        """Discard the contents and write ``values`` under a single lock hold."""
        block = np.asarray(list(values) if not isinstance(values, np.ndarray) else values, dtype=self._data.dtype)
        block = block.reshape(-1)[-self._capacity :]
        with self._lock:
            self._data.fill(0)
            self._data[: block.size] = block
            self._head = block.size % self._capacity
            self._count = block.size

    def clear(self) -> None:
        with self._lock:
            self._data.fill(0)
            self._head = 0
            self._count = 0

    def snapshot(self, destination: np.ndarray | MutableSequence[Any]) -> int:
        """
        Copy the newest samples into ``destination`` in chronological order.

        The copy is tail-aligned: when fewer than ``len(destination)`` samples
        are stored, the leading slots of ``destination`` are zeroed. Returns
        the number of valid samples copied.
        """
        length = len(destination)
        with self._lock:
            to_copy = min(length, self._count)
            start = (self._head - to_copy) % self._capacity
            indices = (start + np.arange(to_copy)) % self._capacity
            values = self._data[indices]

        pad = length - to_copy
        if isinstance(destination, np.ndarray):
            destination[:pad] = 0
            destination[pad:] = values
        else:
            for i in range(pad):
                destination[i] = 0
            for i, value in enumerate(values.tolist()):
                destination[pad + i] = value
        return to_copy

    def snapshot_array(self, length: int | None = None) -> np.ndarray:
        """Return a new array holding the newest ``length`` samples (default: capacity)."""
        size = self._capacity if length is None else max(0, int(length))
        out = np.zeros(size, dtype=self._data.dtype)
        self.snapshot(out)
        return out

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: int) -> Any:
        """Support buf[i] and buf[-1] indexing over the *logical* contents."""
        with self._lock:
            size = self._count
            if size == 0:
                raise IndexError("RingBuffer is empty")

            if index < 0:
                index += size

            if index < 0 or index >= size:
                raise IndexError("RingBuffer index out of range")

            oldest = (self._head - size) % self._capacity
            return self._data[(oldest + index) % self._capacity].item()

    def __iter__(self) -> Iterator[Any]:
        with self._lock:
            values = self.snapshot_array(self._count)
        return iter(values.tolist())
