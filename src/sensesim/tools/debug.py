"""Opt-in timing instrumentation for the generation and analysis paths.

Set ``SENSESIM_DEBUG=1`` (or call :func:`enable_timing`) to record how long
each labelled block takes. Timings accumulate per label so a headless run
can print a summary at exit.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List

_TRUTHY = {"1", "true", "yes", "on"}

_logger = logging.getLogger(__name__)

_enabled = os.getenv("SENSESIM_DEBUG", "").lower() in _TRUTHY
_lock = threading.Lock()


@dataclass(slots=True)
class BlockTiming:
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def add(self, elapsed_ms: float) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        if elapsed_ms > self.max_ms:
            self.max_ms = elapsed_ms


_timings: Dict[str, BlockTiming] = {}


def debug_enabled() -> bool:
    """Return True when timing instrumentation is active."""
    return _enabled


def enable_timing(flag: bool = True) -> None:
    global _enabled
    _enabled = bool(flag)


@contextmanager
def time_block(label: str, *, logger: logging.Logger | None = None) -> Iterator[None]:
    """
    Time the enclosed block under ``label`` when instrumentation is active.

    Disabled, this costs one flag check. Enabled, the elapsed time is added
    to the per-label totals and logged at debug level.
    """
    if not _enabled:
        yield
        return

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        with _lock:
            _timings.setdefault(label, BlockTiming()).add(elapsed_ms)
        (logger or _logger).debug("%s took %.3f ms", label, elapsed_ms)


def timings() -> Dict[str, BlockTiming]:
    """Copy of the accumulated per-label timings."""
    with _lock:
        return {
            label: BlockTiming(t.count, t.total_ms, t.max_ms) for label, t in _timings.items()
        }


def timing_summary() -> List[str]:
    lines = []
    for label, t in sorted(timings().items()):
        lines.append(
            f"{label}: n={t.count} mean={t.mean_ms:.3f} ms max={t.max_ms:.3f} ms"
        )
    return lines


def reset_timings() -> None:
    with _lock:
        _timings.clear()
