"""
Signal engine: parameter-driven regeneration of the four channel buffers.

Every parameter change regenerates the whole window of the affected channel
under the engine's state lock, so readers never see a half-written buffer or
a transfer-function snapshot that mixes old and new parameters.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, MutableSequence, Optional

import numpy as np

from ..analysis.transforms import TransferFunction, build_transfer_functions
from ..config.runtime import SimulatorConfig
from ..sensors.parameters import ParameterSet, ParametersStore
from ..sensors.waveforms import generate
from ..tools.debug import time_block
from .models import CHANNEL_LIMITS, CHANNEL_ORDER, HARD_CLIP_LIMIT, Channel
from .ringbuffer import RingBuffer

logger = logging.getLogger(__name__)

EngineListener = Callable[[Channel], None]

IDLE = "idle"
REGENERATING = "regenerating"


def sanitize_samples(samples: np.ndarray, limit: float) -> np.ndarray:
    """Replace non-finite values with 0 and clip to ``±limit`` then ``±HARD_CLIP_LIMIT``."""
    values = np.asarray(samples, dtype=np.float64)
    values = np.where(np.isfinite(values), values, 0.0)
    values = np.clip(values, -abs(limit), abs(limit))
    return np.clip(values, -HARD_CLIP_LIMIT, HARD_CLIP_LIMIT)


class SignalEngine:
    """
    Owns the channel parameter sets (through a :class:`ParametersStore`),
    one :class:`RingBuffer` per channel and the shared time axis.

    Listeners registered with :meth:`add_listener` are called with the
    channel that was regenerated, outside the state lock.
    """

    def __init__(
        self,
        store: ParametersStore | None = None,
        config: SimulatorConfig | None = None,
    ) -> None:
        cfg = (config or SimulatorConfig()).sanitized()
        self._config = cfg
        self._store = store if store is not None else ParametersStore()
        self._sample_rate = cfg.sample_rate_hz
        self._samples = cfg.samples_per_buffer

        self._time_axis = np.linspace(0.0, cfg.buffer_seconds, self._samples)
        self._time_axis.setflags(write=False)

        self._buffers: Dict[Channel, RingBuffer] = {
            channel: RingBuffer(self._samples) for channel in CHANNEL_ORDER
        }
        self._latest: Dict[Channel, float] = {channel: 0.0 for channel in CHANNEL_ORDER}
        self._states: Dict[Channel, str] = {channel: IDLE for channel in CHANNEL_ORDER}

        self._state_lock = threading.RLock()
        self._listeners: List[EngineListener] = []
        self._handlers: Dict[Channel, Callable[[ParameterSet, Optional[str]], None]] = {}

        self._running = False
        self._elapsed = 0.0
        self._produced = 0

        for channel in CHANNEL_ORDER:
            self._attach(channel)

    # ------------------------------------------------------------------ props
    @property
    def store(self) -> ParametersStore:
        return self._store

    @property
    def config(self) -> SimulatorConfig:
        return self._config

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @property
    def sample_period(self) -> float:
        return 1.0 / self._sample_rate

    @property
    def samples_per_buffer(self) -> int:
        return self._samples

    @property
    def time_axis(self) -> np.ndarray:
        return self._time_axis

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def produced_samples(self) -> int:
        return self._produced

    @property
    def buffer_fill(self) -> float:
        """Average fill ratio across the four channel buffers."""
        return sum(buf.fill_ratio for buf in self._buffers.values()) / len(self._buffers)

    def channel_state(self, channel: Channel | int | str) -> str:
        return self._states[Channel.parse(channel)]

    # -------------------------------------------------------------- lifecycle
    def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.debug("Signal engine started")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.debug("Signal engine stopped")

    def reset(self) -> None:
        self.stop()
        self.regenerate_all()

    def close(self) -> None:
        """Stop and unsubscribe from every parameter set."""
        self.stop()
        for channel, handler in list(self._handlers.items()):
            self._store.get(channel).unsubscribe(handler)
        self._handlers.clear()

    def __enter__(self) -> "SignalEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------------------------------------------- listeners
    def add_listener(self, callback: EngineListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: EngineListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, channel: Channel) -> None:
        for callback in list(self._listeners):
            try:
                callback(channel)
            except Exception:
                logger.exception("Engine listener %r failed for %s", callback, channel.name)

    # ------------------------------------------------------------ generation
    def _attach(self, channel: Channel) -> None:
        def handler(params: ParameterSet, name: Optional[str], _channel: Channel = channel) -> None:
            self.regenerate(_channel)

        self._store.get(channel).subscribe(handler)
        self._handlers[channel] = handler
        self._regenerate_locked(channel)

    def regenerate(self, channel: Channel | int | str) -> None:
        """Rewrite ``channel``'s whole buffer from its current parameters."""
        ch = Channel.parse(channel)
        self._regenerate_locked(ch)
        self._notify(ch)

    def regenerate_all(self) -> None:
        for channel in CHANNEL_ORDER:
            self.regenerate(channel)

    def _regenerate_locked(self, channel: Channel) -> None:
        with self._state_lock:
            self._states[channel] = REGENERATING
            try:
                with time_block(f"regenerate {channel.name.lower()}", logger=logger):
                    raw = generate(channel, self._time_axis, self._store.get(channel))
                samples = sanitize_samples(raw, CHANNEL_LIMITS[channel])
                if samples.size == 0:
                    samples = np.zeros(self._samples)

                self._buffers[channel].replace(samples)
                self._latest[channel] = float(samples[-1])
                self._elapsed = self._samples / self._sample_rate
                self._produced = self._samples
            finally:
                self._states[channel] = IDLE

    # -------------------------------------------------------------- readers
    def copy_latest(self, channel: Channel | int | str, destination: np.ndarray | MutableSequence[float]) -> int:
        """Tail-aligned copy of the newest samples; returns how many were valid."""
        return self._buffers[Channel.parse(channel)].snapshot(destination)

    def snapshot(self, channel: Channel | int | str, length: int | None = None) -> np.ndarray:
        size = self._samples if length is None else length
        return self._buffers[Channel.parse(channel)].snapshot_array(size)

    def get_latest(self, channel: Channel | int | str) -> float:
        return self._latest[Channel.parse(channel)]

    def get_transfer_functions_snapshot(self) -> List[TransferFunction]:
        """
        Build all four channel transfer functions under the state lock.

        The returned objects are independent copies.
        """
        with self._state_lock:
            transfers = build_transfer_functions(self._store, self._sample_rate)
            return [tf.copy() for tf in transfers]


__all__ = ["SignalEngine", "sanitize_samples", "IDLE", "REGENERATING"]
