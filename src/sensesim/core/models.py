"""Shared channel identifiers and buffer constants for the simulator."""

from __future__ import annotations

from enum import IntEnum


class Channel(IntEnum):
    """The four independent sensor channels, in display order."""

    ORIENTATION = 0
    FORCE = 1
    STRAIN = 2
    EMG = 3

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: "Channel | int | str") -> "Channel":
        """Resolve a channel from an enum, integer id or (case-insensitive) name."""
        if isinstance(value, Channel):
            return value
        if isinstance(value, int):
            return cls(value)
        key = str(value).strip().lower()
        alias = _ALIASES.get(key, key)
        try:
            return cls[alias.upper()]
        except KeyError:
            raise ValueError(f"Unknown channel {value!r}") from None


_LABELS = {
    Channel.ORIENTATION: "IMU Orientation",
    Channel.FORCE: "FSR Force",
    Channel.STRAIN: "Strain Gauge",
    Channel.EMG: "EMG",
}

_ALIASES = {
    "imu": "orientation",
    "fsr": "force",
    "electromyographic": "emg",
}

CHANNEL_ORDER: tuple[Channel, ...] = tuple(Channel)

SAMPLE_RATE_HZ = 100.0
BUFFER_SECONDS = 5.0
SAMPLES_PER_BUFFER = int(SAMPLE_RATE_HZ * BUFFER_SECONDS)

# Per-channel physical limits applied before the universal hard clip.
HARD_CLIP_LIMIT = 1_000_000.0
CHANNEL_LIMITS = {
    Channel.ORIENTATION: 180.0,  # degrees
    Channel.FORCE: 5.0,  # volts
    Channel.STRAIN: 0.1,  # volts
    Channel.EMG: 5.0,  # volts
}
