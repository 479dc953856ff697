"""Clamped per-channel parameter sets, snapshots and run presets.

Each channel owns one :class:`ParameterSet`. Fields are declared with
:class:`ClampedField` so every write is clamped to the documented physical
range; a write that changes a value notifies the set's subscribers. The
:class:`ParametersStore` bundles the four live sets and knows how to snapshot,
override and apply named presets.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional

from ..core.models import CHANNEL_ORDER, Channel

logger = logging.getLogger(__name__)

ParameterCallback = Callable[["ParameterSet", Optional[str]], None]


class ClampedField:
    """Float attribute clamped to ``[minimum, maximum]`` on every write."""

    def __init__(self, minimum: float, maximum: float, default: float, unit: str = "") -> None:
        if minimum > maximum:
            raise ValueError(f"minimum {minimum} exceeds maximum {maximum}")
        self.minimum = float(minimum)
        self.maximum = float(maximum)
        self.default = self.clamp(default)
        self.unit = unit
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def clamp(self, value: Any) -> float:
        number = float(value)
        if math.isnan(number):
            return getattr(self, "default", self.minimum)
        return min(max(number, self.minimum), self.maximum)

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__.get(self.name, self.default)

    def __set__(self, obj: "ParameterSet", value: Any) -> None:
        obj._assign(self.name, self.clamp(value))


def parse_flag(value: Any) -> bool:
    """Interpret YAML or env style flags; strings other than 1/true/yes/on are False."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class ToggleField:
    """Boolean attribute with change notification."""

    def __init__(self, default: bool) -> None:
        self.default = bool(default)
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def clamp(self, value: Any) -> bool:
        return parse_flag(value)

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__.get(self.name, self.default)

    def __set__(self, obj: "ParameterSet", value: Any) -> None:
        obj._assign(self.name, self.clamp(value))


class ParameterSet:
    """
    Base class for a channel's parameters.

    Subclasses declare their fields as class attributes; :meth:`fields`
    discovers them in declaration order.
    """

    channel: ClassVar[Channel]

    def __init__(self, **values: Any) -> None:
        self._subscribers: List[ParameterCallback] = []
        self._muted = 0
        if values:
            self.update(**values)

    # ----------------------------------------------------------------- fields
    @classmethod
    def fields(cls) -> Dict[str, ClampedField | ToggleField]:
        found: Dict[str, ClampedField | ToggleField] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, (ClampedField, ToggleField)):
                    found[name] = attr
        return found

    def to_mapping(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.fields()}

    def copy(self) -> "ParameterSet":
        """Return a detached copy (no subscribers) holding the same values."""
        clone = type(self)()
        clone.__dict__.update({name: getattr(self, name) for name in self.fields()})
        return clone

    def update(self, **values: Any) -> bool:
        """
        Assign several fields and notify subscribers once.

        Unknown names raise ``AttributeError``. Returns True when at least one
        value changed.
        """
        known = self.fields()
        unknown = set(values) - set(known)
        if unknown:
            raise AttributeError(
                f"{type(self).__name__} has no parameter(s) {sorted(unknown)}"
            )
        before = self.to_mapping()
        self._muted += 1
        try:
            for name, value in values.items():
                setattr(self, name, value)
        finally:
            self._muted -= 1
        changed = self.to_mapping() != before
        if changed:
            self._notify(None)
        return changed

    def reset(self) -> None:
        """Restore every field to its default value."""
        self.update(**{name: descriptor.default for name, descriptor in self.fields().items()})

    # ----------------------------------------------------------- subscribers
    def subscribe(self, callback: ParameterCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ParameterCallback) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _assign(self, name: str, value: Any) -> None:
        if name in self.__dict__ and self.__dict__[name] == value:
            return
        if name not in self.__dict__ and type(self).fields()[name].default == value:
            self.__dict__[name] = value
            return
        self.__dict__[name] = value
        if not self._muted:
            self._notify(name)

    def _notify(self, name: Optional[str]) -> None:
        for callback in list(self._subscribers):
            callback(self, name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        return type(self) is type(other) and self.to_mapping() == other.to_mapping()

    def __repr__(self) -> str:
        values = ", ".join(f"{k}={v!r}" for k, v in self.to_mapping().items())
        return f"{type(self).__name__}({values})"


class OrientationParameters(ParameterSet):
    channel = Channel.ORIENTATION

    amplitude_deg = ClampedField(0.0, 180.0, 30.0, "deg")
    offset_deg = ClampedField(-180.0, 180.0, 0.0, "deg")
    frequency_hz = ClampedField(0.0, 20.0, 2.5, "Hz")
    zeta = ClampedField(0.05, 1.5, 0.45)
    omega_n = ClampedField(1.0, 40.0, 12.0, "rad/s")


class ForceParameters(ParameterSet):
    channel = Channel.FORCE

    force_amplitude = ClampedField(0.0, 200.0, 20.0, "N")
    force_offset = ClampedField(0.0, 200.0, 2.0, "N")
    fsr_a = ClampedField(0.0, 2.0, 0.2)
    fsr_b = ClampedField(0.0, 2.5, 0.8)
    fsr_rmin = ClampedField(0.0, 5_000.0, 150.0, "ohm")
    supply_voltage = ClampedField(0.0, 12.0, 3.3, "V")
    fixed_resistor = ClampedField(1_000.0, 20_000.0, 10_000.0, "ohm")
    # 0 Hz selects the static divider; anything above pulses |sin|.
    pulse_hz = ClampedField(0.0, 10.0, 0.0, "Hz")


class StrainParameters(ParameterSet):
    channel = Channel.STRAIN

    offset_micro = ClampedField(0.0, 1_000.0, 100.0, "ue")
    amplitude_micro = ClampedField(0.0, 1_000.0, 200.0, "ue")
    gauge_factor = ClampedField(0.0, 4.0, 2.0)
    excitation_voltage = ClampedField(0.0, 10.0, 5.0, "V")
    mechanical_hz = ClampedField(0.1, 20.0, 4.5, "Hz")


class EmgParameters(ParameterSet):
    channel = Channel.EMG

    amplitude = ClampedField(0.0, 5.0, 1.0, "V")
    activation = ClampedField(0.0, 1.0, 0.5)
    bandpass_enabled = ToggleField(False)


PARAMETER_TYPES: Dict[Channel, type[ParameterSet]] = {
    Channel.ORIENTATION: OrientationParameters,
    Channel.FORCE: ForceParameters,
    Channel.STRAIN: StrainParameters,
    Channel.EMG: EmgParameters,
}


def create_default(channel: Channel) -> ParameterSet:
    return PARAMETER_TYPES[Channel.parse(channel)]()


def _default_weights() -> Dict[Channel, float]:
    return {channel: 1.0 for channel in CHANNEL_ORDER}


@dataclass
class ParametersSnapshot:
    """Detached copy of every channel's parameters plus combination weights."""

    orientation: OrientationParameters = field(default_factory=OrientationParameters)
    force: ForceParameters = field(default_factory=ForceParameters)
    strain: StrainParameters = field(default_factory=StrainParameters)
    emg: EmgParameters = field(default_factory=EmgParameters)
    weights: Dict[Channel, float] = field(default_factory=_default_weights)
    normalize_weights: bool = True

    def for_channel(self, channel: Channel) -> ParameterSet:
        return getattr(self, Channel.parse(channel).name.lower())

    def weight_list(self) -> List[float]:
        return [float(self.weights.get(channel, 0.0)) for channel in CHANNEL_ORDER]

    def to_mapping(self) -> Dict[str, Any]:
        """Serialize into a plain mapping suitable for YAML."""
        data: Dict[str, Any] = {}
        for channel in CHANNEL_ORDER:
            data[channel.name.lower()] = self.for_channel(channel).to_mapping()
        data["weights"] = {
            channel.name.lower(): float(self.weights.get(channel, 0.0))
            for channel in CHANNEL_ORDER
        }
        data["normalize_weights"] = bool(self.normalize_weights)
        return data

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "ParametersSnapshot":
        """
        Build a snapshot from a mapping such as a loaded ``params.yaml``.

        Missing blocks keep their defaults; unknown keys are ignored and
        unparsable values are skipped with a warning.
        """
        snapshot = cls()
        payload: Mapping[str, Any] = mapping if isinstance(mapping, Mapping) else {}

        for channel in CHANNEL_ORDER:
            block = payload.get(channel.name.lower())
            if not isinstance(block, Mapping):
                continue
            target = snapshot.for_channel(channel)
            known = target.fields()
            for key, value in block.items():
                if key not in known:
                    continue
                try:
                    setattr(target, key, value)
                except (TypeError, ValueError):
                    logger.warning("Ignoring bad %s.%s value %r", channel.name.lower(), key, value)

        weights_block = payload.get("weights")
        if isinstance(weights_block, Mapping):
            for key, value in weights_block.items():
                try:
                    channel = Channel.parse(key)
                    snapshot.weights[channel] = max(0.0, float(value))
                except (TypeError, ValueError):
                    logger.warning("Ignoring bad weight %r=%r", key, value)

        if "normalize_weights" in payload:
            snapshot.normalize_weights = parse_flag(payload["normalize_weights"])
        return snapshot


@dataclass(frozen=True)
class RunPreset:
    """Named bundle of parameter values applied across all channels."""

    key: str
    label: str
    values: Mapping[str, Mapping[str, float]] = field(default_factory=dict)


RUN_PRESETS: Dict[str, RunPreset] = {
    "baseline_stable": RunPreset(
        key="baseline_stable",
        label="Baseline (stable)",
        values={
            "orientation": {"amplitude_deg": 15.0, "offset_deg": 0.0, "frequency_hz": 2.5},
            "force": {
                "force_amplitude": 10.0,
                "force_offset": 5.0,
                "fsr_a": 0.4,
                "fsr_b": 0.8,
                "fsr_rmin": 400.0,
                "supply_voltage": 3.3,
                "fixed_resistor": 10_000.0,
            },
            "strain": {
                "offset_micro": 150.0,
                "amplitude_micro": 100.0,
                "gauge_factor": 2.0,
                "excitation_voltage": 5.0,
            },
            "emg": {"amplitude": 0.5, "activation": 0.25},
        },
    ),
    "fast_exercise": RunPreset(
        key="fast_exercise",
        label="Fast exercise",
        values={
            "orientation": {"amplitude_deg": 60.0, "offset_deg": 5.0, "frequency_hz": 6.0},
            "force": {
                "force_amplitude": 60.0,
                "force_offset": 20.0,
                "fsr_a": 0.25,
                "fsr_b": 0.7,
                "fsr_rmin": 200.0,
                "supply_voltage": 3.3,
                "fixed_resistor": 10_000.0,
            },
            "strain": {
                "offset_micro": 300.0,
                "amplitude_micro": 500.0,
                "gauge_factor": 2.5,
                "excitation_voltage": 7.0,
            },
            "emg": {"amplitude": 2.5, "activation": 0.8},
        },
    ),
    "drift_bias": RunPreset(
        key="drift_bias",
        label="Drift / bias",
        values={
            "orientation": {"amplitude_deg": 20.0, "offset_deg": 30.0, "frequency_hz": 0.5},
            "force": {
                "force_amplitude": 15.0,
                "force_offset": 40.0,
                "fsr_a": 0.15,
                "fsr_b": 1.1,
                "fsr_rmin": 1_000.0,
                "supply_voltage": 3.3,
                "fixed_resistor": 10_000.0,
            },
            "strain": {
                "offset_micro": 500.0,
                "amplitude_micro": 200.0,
                "gauge_factor": 3.0,
                "excitation_voltage": 4.0,
            },
            "emg": {"amplitude": 1.0, "activation": 0.4},
        },
    ),
    "custom": RunPreset(key="custom", label="Custom"),
}


class ParametersStore:
    """
    Owns the live parameter sets for all four channels.

    Direct edits to any set flip :attr:`current_preset` to ``"custom"``;
    preset application and snapshot overrides do not.
    """

    def __init__(self, snapshot: ParametersSnapshot | None = None) -> None:
        self._sets: Dict[Channel, ParameterSet] = {
            channel: create_default(channel) for channel in CHANNEL_ORDER
        }
        self.weights: Dict[Channel, float] = _default_weights()
        self.normalize_weights = True
        self._current_preset = "custom"
        self._suppress_tracking = False
        self._preset_listeners: List[Callable[[str], None]] = []
        for params in self._sets.values():
            params.subscribe(self._on_params_changed)
        if snapshot is not None:
            self.override(snapshot)

    @property
    def orientation(self) -> OrientationParameters:
        return self._sets[Channel.ORIENTATION]  # type: ignore[return-value]

    @property
    def force(self) -> ForceParameters:
        return self._sets[Channel.FORCE]  # type: ignore[return-value]

    @property
    def strain(self) -> StrainParameters:
        return self._sets[Channel.STRAIN]  # type: ignore[return-value]

    @property
    def emg(self) -> EmgParameters:
        return self._sets[Channel.EMG]  # type: ignore[return-value]

    @property
    def current_preset(self) -> str:
        return self._current_preset

    def get(self, channel: Channel | int | str) -> ParameterSet:
        return self._sets[Channel.parse(channel)]

    def add_preset_listener(self, callback: Callable[[str], None]) -> None:
        self._preset_listeners.append(callback)

    def remove_preset_listener(self, callback: Callable[[str], None]) -> None:
        if callback in self._preset_listeners:
            self._preset_listeners.remove(callback)

    def snapshot(self) -> ParametersSnapshot:
        return ParametersSnapshot(
            orientation=self.orientation.copy(),  # type: ignore[arg-type]
            force=self.force.copy(),  # type: ignore[arg-type]
            strain=self.strain.copy(),  # type: ignore[arg-type]
            emg=self.emg.copy(),  # type: ignore[arg-type]
            weights=dict(self.weights),
            normalize_weights=self.normalize_weights,
        )

    def override(self, snapshot: ParametersSnapshot) -> None:
        """Copy every value from ``snapshot`` into the live sets."""
        previous = self._suppress_tracking
        self._suppress_tracking = True
        try:
            for channel in CHANNEL_ORDER:
                source = snapshot.for_channel(channel)
                self._sets[channel].update(**source.to_mapping())
            self.weights = {
                channel: max(0.0, float(snapshot.weights.get(channel, 0.0)))
                for channel in CHANNEL_ORDER
            }
            self.normalize_weights = bool(snapshot.normalize_weights)
        finally:
            self._suppress_tracking = previous

    def apply_preset(self, key: str) -> None:
        preset = RUN_PRESETS.get(str(key).strip().lower().replace("-", "_"))
        if preset is None:
            raise ValueError(f"Unknown preset {key!r}; expected one of {sorted(RUN_PRESETS)}")

        self._suppress_tracking = True
        try:
            for block_name, values in preset.values.items():
                self.get(block_name).update(**values)
        finally:
            self._suppress_tracking = False
        self._set_current_preset(preset.key, force_notify=True)

    def close(self) -> None:
        for params in self._sets.values():
            params.unsubscribe(self._on_params_changed)

    def _on_params_changed(self, params: ParameterSet, name: Optional[str]) -> None:
        if self._suppress_tracking or self._current_preset == "custom":
            return
        self._set_current_preset("custom")

    def _set_current_preset(self, key: str, *, force_notify: bool = False) -> None:
        if not force_notify and key == self._current_preset:
            return
        self._current_preset = key
        logger.debug("Run preset is now %s", key)
        for callback in list(self._preset_listeners):
            callback(key)
