"""Core simulation runtime: channels, buffers and the periodic workers.

:mod:`signal_engine` regenerates channel buffers on parameter changes,
:mod:`spectrum_loop` turns buffer snapshots into spectra and
:mod:`analysis_worker` runs the debounced linear-systems analysis. Only the
leaf data structures are re-exported here so that importing
``sensesim.core`` stays cheap.
"""

from .models import CHANNEL_ORDER, SAMPLE_RATE_HZ, SAMPLES_PER_BUFFER, Channel
from .ringbuffer import RingBuffer

__all__ = [
    "Channel",
    "CHANNEL_ORDER",
    "SAMPLE_RATE_HZ",
    "SAMPLES_PER_BUFFER",
    "RingBuffer",
]
