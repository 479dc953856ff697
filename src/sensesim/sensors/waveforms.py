"""Deterministic waveform generators, one per channel.

Every generator is a pure function of its time axis and parameters and clamps
each parameter at the point of use, so values outside the documented ranges
never reach the arithmetic.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import ArrayLike

from ..core.models import Channel

MIN_FORCE = 1e-6
STEP_INTERVAL_S = 2.0


def _time_axis(time: ArrayLike) -> np.ndarray:
    return np.asarray(time, dtype=np.float64).reshape(-1)


def _clamp(value: Any, lower: float, upper: float = np.inf) -> float:
    return float(min(max(float(value), lower), upper))


def orientation_step_response(
    time: ArrayLike,
    target: float,
    initial: float,
    step_time: float,
    zeta: float,
    omega_n: float,
) -> np.ndarray:
    """
    Closed-form step response of a second-order system.

    Samples before ``step_time`` hold ``initial``; afterwards the output
    settles towards ``target`` along the underdamped, critically damped or
    overdamped solution selected by ``zeta``.
    """
    t = _time_axis(time)
    out = np.empty_like(t)
    if t.size == 0:
        return out

    zeta = max(0.0, float(zeta))
    omega_n = max(1e-9, float(omega_n))
    displacement = float(initial) - float(target)

    tau = t - float(step_time)
    before = tau < 0.0
    tau = np.where(before, 0.0, tau)

    decay = np.exp(-zeta * omega_n * tau)
    if abs(zeta - 1.0) < 1e-6:
        shape = np.exp(-omega_n * tau) * (1.0 + omega_n * tau)
    elif zeta < 1.0:
        root = np.sqrt(1.0 - zeta * zeta)
        omega_d = omega_n * root
        shape = decay * (np.cos(omega_d * tau) + (zeta / root) * np.sin(omega_d * tau))
    else:
        root = np.sqrt(zeta * zeta - 1.0)
        arg = omega_n * root * tau
        shape = decay * (np.cosh(arg) + (zeta / root) * np.sinh(arg))

    out[:] = float(target) + displacement * shape
    out[before] = float(initial)
    return out


def orientation_waveform(time: ArrayLike, params: Any, step_interval: float = STEP_INTERVAL_S) -> np.ndarray:
    """
    Square-wave orientation trace built from chained step responses.

    The target alternates between ``offset + amplitude`` and
    ``offset - amplitude`` every ``step_interval`` seconds; each segment starts
    from the last sample of the previous one.
    """
    t = _time_axis(time)
    out = np.empty_like(t)
    if t.size == 0:
        return out

    amplitude = _clamp(params.amplitude_deg, 0.0, 180.0)
    offset = _clamp(params.offset_deg, -180.0, 180.0)
    zeta = _clamp(params.zeta, 0.0)
    omega_n = _clamp(params.omega_n, 1e-9)
    interval = max(float(step_interval), 1e-9)

    current = offset
    sign = 1.0
    step_time = float(t[0])
    start = 0
    while start < t.size:
        next_step = step_time + interval
        stop = int(np.searchsorted(t, next_step, side="left"))
        stop = max(stop, start + 1)
        segment = orientation_step_response(
            t[start:stop], offset + sign * amplitude, current, step_time, zeta, omega_n
        )
        out[start:stop] = segment
        current = float(segment[-1])
        sign = -sign
        step_time = next_step
        start = stop
    return out


def force_resistance(params: Any, time: ArrayLike | float = 0.0) -> np.ndarray | float:
    """FSR resistance ``1/(a·F^b) + Rmin`` for the force profile at ``time``."""
    offset = _clamp(params.force_offset, 0.0)
    amplitude = _clamp(params.force_amplitude, 0.0)
    a = _clamp(params.fsr_a, 1e-6)
    b = _clamp(params.fsr_b, 1e-6)
    r_min = _clamp(params.fsr_rmin, 0.0)
    pulse_hz = _clamp(getattr(params, "pulse_hz", 0.0), 0.0)

    t = np.asarray(time, dtype=np.float64)
    if pulse_hz > 0.0:
        profile = np.abs(np.sin(2.0 * np.pi * pulse_hz * t))
    else:
        profile = np.ones_like(t)
    force = np.maximum(offset + amplitude * profile, MIN_FORCE)
    resistance = 1.0 / (a * np.power(force, b)) + r_min
    if resistance.ndim == 0:
        return float(resistance)
    return resistance


def force_waveform(time: ArrayLike, params: Any) -> np.ndarray:
    """Voltage-divider output ``Vcc·Rfixed/(Rfixed + R_fsr)``."""
    t = _time_axis(time)
    if t.size == 0:
        return np.empty_like(t)
    vcc = _clamp(params.supply_voltage, 0.0, 12.0)
    fixed = _clamp(params.fixed_resistor, 1e-3)
    resistance = np.asarray(force_resistance(params, t), dtype=np.float64)
    return vcc * fixed / (fixed + resistance)


def strain_waveform(time: ArrayLike, params: Any) -> np.ndarray:
    """Quarter-bridge output for the combined offset and amplitude strain."""
    t = _time_axis(time)
    offset = _clamp(params.offset_micro, 0.0)
    amplitude = _clamp(params.amplitude_micro, 0.0)
    gauge_factor = _clamp(params.gauge_factor, 0.0)
    excitation = _clamp(params.excitation_voltage, 0.0, 10.0)
    value = 0.25 * excitation * gauge_factor * (offset + amplitude) * 1e-6
    return np.full(t.shape, value, dtype=np.float64)


def emg_waveform(time: ArrayLike, params: Any) -> np.ndarray:
    t = _time_axis(time)
    amplitude = _clamp(params.amplitude, 0.0)
    activation = _clamp(params.activation, 0.0, 1.0)
    return np.full(t.shape, amplitude * activation, dtype=np.float64)


_GENERATORS = {
    Channel.ORIENTATION: orientation_waveform,
    Channel.FORCE: force_waveform,
    Channel.STRAIN: strain_waveform,
    Channel.EMG: emg_waveform,
}


def generate(channel: Channel | int | str, time: ArrayLike, params: Any) -> np.ndarray:
    """Dispatch to the generator for ``channel``."""
    return _GENERATORS[Channel.parse(channel)](time, params)


__all__ = [
    "MIN_FORCE",
    "STEP_INTERVAL_S",
    "orientation_step_response",
    "orientation_waveform",
    "force_resistance",
    "force_waveform",
    "strain_waveform",
    "emg_waveform",
    "generate",
]
