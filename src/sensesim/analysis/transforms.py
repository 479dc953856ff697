"""
Per-channel transfer functions and the weighted combined state-space model.

Each channel is described by a small analog transfer function built from its
parameters. :func:`channel_state_space` turns one into a minimal SISO
realization and :func:`build_combined_continuous` stacks the realizations
block-diagonally into a single-output system whose output row is the
weighted concatenation of the channel outputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

from ..core.models import CHANNEL_ORDER, Channel
from ..sensors.waveforms import force_resistance
from .discretize import discretize
from .polynomial import polynomial_roots, polyval
from .stability import to_decibels
from .statespace import StateSpaceSystem

WEIGHT_TOLERANCE = 1e-9
FSR_SENSING_CAPACITANCE_F = 1.0e-6
EMG_ZERO_HZ = 20.0
EMG_POLE_HZ = 450.0

_EMPTY_REAL = np.zeros(0)
_EMPTY_COMPLEX = np.zeros(0, dtype=np.complex128)


def _frozen(values: ArrayLike) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(-1)
    arr.setflags(write=False)
    return arr


@dataclass(slots=True)
class TransferFunction:
    """
    Analog transfer function of one channel plus its derived digital data.

    The analog coefficients (highest degree first) are fixed at construction.
    Poles, zeros and the bilinear-mapped digital coefficients stay empty until
    :meth:`populate` fills all of them together.
    """

    name: str
    channel: Channel
    analog_numerator: np.ndarray
    analog_denominator: np.ndarray
    analog_poles: np.ndarray = field(default_factory=lambda: _EMPTY_COMPLEX.copy())
    analog_zeros: np.ndarray = field(default_factory=lambda: _EMPTY_COMPLEX.copy())
    digital_numerator: np.ndarray = field(default_factory=lambda: _EMPTY_REAL.copy())
    digital_denominator: np.ndarray = field(default_factory=lambda: _EMPTY_REAL.copy())
    digital_poles: np.ndarray = field(default_factory=lambda: _EMPTY_COMPLEX.copy())
    digital_zeros: np.ndarray = field(default_factory=lambda: _EMPTY_COMPLEX.copy())

    def __post_init__(self) -> None:
        self.channel = Channel.parse(self.channel)
        self.analog_numerator = _frozen(self.analog_numerator)
        self.analog_denominator = _frozen(self.analog_denominator)
        if self.analog_denominator.size == 0:
            raise ValueError("transfer function denominator must not be empty")

    @property
    def order(self) -> int:
        return max(self.analog_numerator.size, self.analog_denominator.size) - 1

    @property
    def is_populated(self) -> bool:
        return self.digital_denominator.size > 0

    def populate(self, sample_rate: float) -> "TransferFunction":
        """Compute analog poles/zeros and the Tustin-mapped digital coefficients."""
        analog_poles = polynomial_roots(self.analog_denominator)
        analog_zeros = polynomial_roots(self.analog_numerator)
        num_z, den_z = bilinear_transform(self.analog_numerator, self.analog_denominator, sample_rate)

        self.analog_poles = analog_poles
        self.analog_zeros = analog_zeros
        self.digital_numerator = num_z
        self.digital_denominator = den_z
        self.digital_poles = polynomial_roots(den_z)
        self.digital_zeros = polynomial_roots(num_z)
        return self

    def copy(self) -> "TransferFunction":
        return TransferFunction(
            name=self.name,
            channel=self.channel,
            analog_numerator=self.analog_numerator,
            analog_denominator=self.analog_denominator,
            analog_poles=self.analog_poles.copy(),
            analog_zeros=self.analog_zeros.copy(),
            digital_numerator=self.digital_numerator.copy(),
            digital_denominator=self.digital_denominator.copy(),
            digital_poles=self.digital_poles.copy(),
            digital_zeros=self.digital_zeros.copy(),
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def orientation_transfer(params: Any, sample_rate: float) -> TransferFunction:
    """``ωn² / (s² + 2ζωn·s + ωn²)``."""
    omega_n = float(params.omega_n)
    zeta = float(params.zeta)
    omega_sq = omega_n * omega_n
    tf = TransferFunction(
        "IMU Orientation Filter",
        Channel.ORIENTATION,
        [omega_sq],
        [1.0, 2.0 * zeta * omega_n, omega_sq],
    )
    return tf.populate(sample_rate)


def force_transfer(params: Any, sample_rate: float) -> TransferFunction:
    """RC front end with the FSR's static resistance against a 1 µF sense capacitor."""
    resistance = max(float(force_resistance(params)), 1.0)
    omega_c = 1.0 / max(resistance * FSR_SENSING_CAPACITANCE_F, 1e-6)
    tf = TransferFunction("FSR Front-End", Channel.FORCE, [omega_c], [1.0, omega_c])
    return tf.populate(sample_rate)


def strain_transfer(params: Any, sample_rate: float) -> TransferFunction:
    """Anti-alias low-pass at three times the mechanical frequency, 40 Hz minimum."""
    cutoff_hz = max(float(params.mechanical_hz) * 3.0, 40.0)
    omega_c = 2.0 * math.pi * cutoff_hz
    tf = TransferFunction("Strain Anti-Alias", Channel.STRAIN, [omega_c], [1.0, omega_c])
    return tf.populate(sample_rate)


def emg_transfer(params: Any, sample_rate: float) -> TransferFunction:
    if not bool(params.bandpass_enabled):
        return TransferFunction("EMG Unity Gain", Channel.EMG, [1.0], [1.0]).populate(sample_rate)
    omega_z = 2.0 * math.pi * EMG_ZERO_HZ
    omega_p = 2.0 * math.pi * EMG_POLE_HZ
    tf = TransferFunction("EMG Band-Pass", Channel.EMG, [0.0, omega_p / omega_z], [1.0, omega_p])
    return tf.populate(sample_rate)


_BUILDERS = {
    Channel.ORIENTATION: orientation_transfer,
    Channel.FORCE: force_transfer,
    Channel.STRAIN: strain_transfer,
    Channel.EMG: emg_transfer,
}


def build_transfer_function(channel: Channel | int | str, params: Any, sample_rate: float) -> TransferFunction:
    return _BUILDERS[Channel.parse(channel)](params, sample_rate)


def build_transfer_functions(parameters: Any, sample_rate: float) -> List[TransferFunction]:
    """
    Build all four channel transfer functions in channel order.

    ``parameters`` is anything with ``orientation``, ``force``, ``strain`` and
    ``emg`` attributes, such as a store or snapshot.
    """
    return [
        build_transfer_function(channel, getattr(parameters, channel.name.lower()), sample_rate)
        for channel in CHANNEL_ORDER
    ]


# ---------------------------------------------------------------------------
# State-space realizations
# ---------------------------------------------------------------------------


def _second_order_state_space(tf: TransferFunction) -> StateSpaceSystem:
    den = tf.analog_denominator
    num = tf.analog_numerator
    omega_sq = max(float(den[-1]), 1e-9)
    omega_n = math.sqrt(omega_sq)
    damping = float(den[1]) if den.size > 2 else 0.0
    zeta = damping / (2.0 * omega_n)
    gain = float(num[-1]) / omega_sq if num.size else 1.0
    return StateSpaceSystem(
        A=[[0.0, 1.0], [-omega_sq, -2.0 * zeta * omega_n]],
        B=[[0.0], [omega_sq]],
        C=[[gain, 0.0]],
        D=[[0.0]],
    )


def _first_order_state_space(tf: TransferFunction) -> StateSpaceSystem:
    den = tf.analog_denominator
    num = tf.analog_numerator
    pole = max(float(den[1]) if den.size > 1 else 1.0, 1e-9)
    numerator = float(num[-1]) if num.size else pole
    return StateSpaceSystem(A=[[-pole]], B=[[pole]], C=[[numerator / pole]], D=[[0.0]])


def _emg_state_space(tf: TransferFunction) -> StateSpaceSystem:
    den = tf.analog_denominator
    num = tf.analog_numerator
    pole = max(float(den[1]) if den.size > 1 else 1.0, 1e-9)
    gain = float(num[-1]) if num.size else 1.0
    return StateSpaceSystem(A=[[-pole]], B=[[1.0]], C=[[gain]], D=[[0.0]])


def channel_state_space(tf: TransferFunction) -> StateSpaceSystem:
    """Minimal continuous SISO realization for one channel's transfer function."""
    if tf.channel == Channel.ORIENTATION:
        return _second_order_state_space(tf)
    if tf.channel == Channel.EMG:
        return _emg_state_space(tf)
    return _first_order_state_space(tf)


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------


def default_weights(transfers: Sequence[TransferFunction]) -> List[float]:
    return [1.0 for _ in transfers]


def normalize_weights(weights: Sequence[float]) -> List[float]:
    """Clamp to non-negative and scale to unit sum; an all-zero list stays zero."""
    clean = [max(0.0, float(w)) if math.isfinite(float(w)) else 0.0 for w in weights]
    total = sum(clean)
    if total <= WEIGHT_TOLERANCE:
        return [0.0 for _ in clean]
    return [w / total for w in clean]


def weights_for(transfers: Sequence[TransferFunction], weights: Mapping[Channel, float] | Sequence[float] | None) -> List[float]:
    """Align ``weights`` (mapping by channel or sequence) with ``transfers``."""
    if weights is None:
        return default_weights(transfers)
    if isinstance(weights, Mapping):
        return [float(weights.get(tf.channel, 0.0)) for tf in transfers]
    return [float(w) for w in weights]


def build_combined_continuous(
    transfers: Sequence[TransferFunction],
    weights: Sequence[float],
) -> Optional[StateSpaceSystem]:
    """
    Block-diagonal combination of every channel realization.

    Returns None when the inputs are empty or mismatched, when every weight is
    (near) zero, or when the weighted output row and feedthrough vanish.
    """
    if not transfers or not weights or len(transfers) != len(weights):
        return None
    if all(abs(float(w)) < WEIGHT_TOLERANCE for w in weights):
        return None

    systems = [channel_state_space(tf) for tf in transfers]
    if not all(system.is_siso for system in systems):
        raise ValueError("combined system expects SISO channel models")

    offsets: List[int] = []
    total = 0
    for system in systems:
        offsets.append(total)
        total += system.state_count

    A = np.zeros((total, total))
    B = np.zeros((total, 1))
    C = np.zeros((1, total))
    D = np.zeros((1, 1))
    for system, start, weight in zip(systems, offsets, weights):
        stop = start + system.state_count
        A[start:stop, start:stop] = system.A
        B[start:stop, :] = system.B
        if abs(float(weight)) < WEIGHT_TOLERANCE:
            continue
        C[0, start:stop] += float(weight) * system.C[0]
        D[0, 0] += float(weight) * system.D[0, 0]

    if not (np.any(np.abs(C) > WEIGHT_TOLERANCE) or abs(D[0, 0]) > WEIGHT_TOLERANCE):
        return None
    return StateSpaceSystem(A, B, C, D)


def build_combined_discrete(
    transfers: Sequence[TransferFunction],
    weights: Sequence[float],
    sample_rate: float,
    method: str = "zoh",
) -> Optional[StateSpaceSystem]:
    continuous = build_combined_continuous(transfers, weights)
    if continuous is None:
        return None
    return discretize(continuous, sample_rate, method)


# ---------------------------------------------------------------------------
# Frequency-domain helpers
# ---------------------------------------------------------------------------


def analog_magnitude_db(tf: TransferFunction, frequencies: ArrayLike) -> np.ndarray:
    """Analog Bode magnitude in dB at ``s = j·2π·max(f, 1e-6)``."""
    freqs = np.asarray(frequencies, dtype=np.float64).reshape(-1)
    out = np.empty(freqs.size)
    for i, freq in enumerate(freqs):
        s = 1j * 2.0 * math.pi * max(float(freq), 1e-6)
        numerator = polyval(tf.analog_numerator, s)
        denominator = polyval(tf.analog_denominator, s)
        gain = 0.0 if denominator == 0 else abs(numerator / denominator)
        out[i] = to_decibels(gain)
    return out


def _pad_left(coeffs: np.ndarray, length: int) -> np.ndarray:
    padded = np.zeros(length)
    padded[length - coeffs.size :] = coeffs
    return padded


def _substitute(coeffs: np.ndarray, order: int, k: float) -> np.ndarray:
    """Expand ``Σ c_i·(k(z-1))^p·(z+1)^(order-p)`` for ``s = k(z-1)/(z+1)``."""
    result = np.zeros(order + 1)
    for index, coefficient in enumerate(coeffs):
        if coefficient == 0.0:
            continue
        power = order - index
        term = np.array([coefficient * k**power])
        for _ in range(power):
            term = np.convolve(term, [1.0, -1.0])
        for _ in range(order - power):
            term = np.convolve(term, [1.0, 1.0])
        result += term
    return result


def bilinear_transform(
    numerator: ArrayLike,
    denominator: ArrayLike,
    sample_rate: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tustin map of an analog transfer function of any order.

    Returns ``(num_z, den_z)`` with ``den_z[0] == 1``. Order 0 maps to
    ``[1] / [1]``.
    """
    num = np.asarray(numerator, dtype=np.float64).reshape(-1)
    den = np.asarray(denominator, dtype=np.float64).reshape(-1)
    order = max(num.size, den.size) - 1
    if order <= 0:
        return np.ones(1), np.ones(1)

    k = 2.0 * float(sample_rate)
    num_z = _substitute(_pad_left(num, order + 1), order, k)
    den_z = _substitute(_pad_left(den, order + 1), order, k)

    leading = den_z[0]
    if abs(leading) < 1e-12:
        leading = 1.0
    num_z = num_z / leading
    den_z = den_z / leading
    den_z[0] = 1.0
    return num_z, den_z


__all__ = [
    "TransferFunction",
    "orientation_transfer",
    "force_transfer",
    "strain_transfer",
    "emg_transfer",
    "build_transfer_function",
    "build_transfer_functions",
    "channel_state_space",
    "default_weights",
    "normalize_weights",
    "weights_for",
    "build_combined_continuous",
    "build_combined_discrete",
    "analog_magnitude_db",
    "bilinear_transform",
]
