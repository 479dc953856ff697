"""Discrete stability checks and state-space frequency response."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import ArrayLike

from .linalg import solve_complex
from .polynomial import eigenvalues, polyval
from .statespace import StateSpaceSystem, state_space_to_transfer_function

logger = logging.getLogger(__name__)

STABILITY_MARGIN = 1e-6
MAGNITUDE_FLOOR = 1e-12
DEFAULT_FLOOR_DB = -120.0
CHECK_MAGNITUDE_DB = 0.5
CHECK_PHASE_DEG = 5.0


@dataclass(frozen=True)
class CombinedStability:
    """Outcome of one stability check; never mutated after creation."""

    is_stable: bool
    max_magnitude: float
    poles: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.complex128))
    reason: str = ""


def check_discrete_stability(ad: ArrayLike) -> CombinedStability:
    """
    Classify the poles of a discrete state matrix.

    Stable means every pole magnitude is finite and below ``1 - 1e-6``. A
    failure while computing the poles yields an unstable record carrying the
    error text instead of raising.
    """
    try:
        poles = np.asarray(eigenvalues(ad), dtype=np.complex128)
    except (ValueError, ArithmeticError) as exc:
        logger.debug("Eigenvalue computation failed: %s", exc)
        return CombinedStability(False, math.inf, np.zeros(0, dtype=np.complex128), f"Eigenvalue failure: {exc}")

    if poles.size == 0:
        return CombinedStability(True, 0.0, poles, "No poles detected")

    magnitudes = np.abs(poles)
    if not np.all(np.isfinite(magnitudes)):
        return CombinedStability(False, math.inf, poles, "Non-finite pole magnitude detected")

    max_magnitude = float(np.max(magnitudes))
    is_stable = max_magnitude < 1.0 - STABILITY_MARGIN
    reason = f"max |λ| = {max_magnitude:.6f}"
    if not is_stable:
        reason += " (≥ 1)"
    return CombinedStability(is_stable, max_magnitude, poles, reason)


def format_magnitude(value: float) -> str:
    """Three decimals, or "∞" for a non-finite magnitude."""
    return f"{value:.3f}" if math.isfinite(value) else "∞"


def to_decibels(magnitude: ArrayLike, floor_db: float = DEFAULT_FLOOR_DB) -> np.ndarray | float:
    """``20·log10(max(m, 1e-12))`` floored at ``floor_db``; non-finite maps to the floor."""
    arr = np.asarray(magnitude, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        values = 20.0 * np.log10(np.maximum(arr, MAGNITUDE_FLOOR))
    values = np.where(np.isfinite(values), np.maximum(values, floor_db), floor_db)
    if values.ndim == 0:
        return float(values)
    return values


def frequency_response(system: StateSpaceSystem, sample_rate: float, frequencies: ArrayLike) -> np.ndarray:
    """
    Complex response ``C·(zI - A)⁻¹·B + D`` at ``z = exp(j·2π·f/fs)``.

    Each point is a complex Gaussian elimination; a singular ``zI - A``
    raises :class:`~sensesim.analysis.linalg.SingularMatrixError`.
    """
    if not system.is_siso:
        raise ValueError("frequency response expects a SISO system")
    rate = float(sample_rate)
    if not math.isfinite(rate) or rate <= 0:
        raise ValueError(f"sample_rate must be > 0, got {sample_rate}")

    freqs = np.asarray(frequencies, dtype=np.float64).reshape(-1)
    n = system.state_count
    rhs = system.B[:, 0].astype(np.complex128)
    c = system.C[0].astype(np.complex128)
    d = complex(system.D[0, 0])
    identity = np.eye(n)

    response = np.empty(freqs.size, dtype=np.complex128)
    for i, freq in enumerate(freqs):
        z = np.exp(1j * 2.0 * math.pi * freq / rate)
        if n == 0:
            response[i] = d
            continue
        x = solve_complex(z * identity - system.A, rhs)
        response[i] = d + c @ x
    return response


def magnitude_db(response: ArrayLike) -> np.ndarray:
    return np.asarray(to_decibels(np.abs(np.asarray(response))), dtype=np.float64)


def phase_deg(response: ArrayLike) -> np.ndarray:
    return np.degrees(np.angle(np.asarray(response, dtype=np.complex128)))


def validate_combined_response(
    system: StateSpaceSystem,
    sample_rate: float,
    frequencies: ArrayLike,
    magnitude: ArrayLike,
    phase: ArrayLike,
    count: int = 10,
) -> str:
    """
    Cross-check a state-space response against its converted transfer function.

    Up to ``count`` evenly spaced frequencies are compared. Returns an empty
    string when every sample agrees within 0.5 dB and 5 degrees, otherwise a
    short description of the worst deviation.
    """
    freqs = np.asarray(frequencies, dtype=np.float64).reshape(-1)
    mags = np.asarray(magnitude, dtype=np.float64).reshape(-1)
    phases = np.asarray(phase, dtype=np.float64).reshape(-1)
    size = min(freqs.size, mags.size, phases.size)
    if size == 0 or count <= 0:
        return ""

    numerator, denominator = state_space_to_transfer_function(system)
    indices = np.unique(np.linspace(0, size - 1, min(count, size)).round().astype(int))

    worst_mag = 0.0
    worst_phase = 0.0
    for idx in indices:
        z = np.exp(1j * 2.0 * math.pi * freqs[idx] / float(sample_rate))
        den = polyval(denominator, z)
        if den == 0:
            continue
        value = polyval(numerator, z) / den
        expected_db = float(to_decibels(abs(value)))
        worst_mag = max(worst_mag, abs(expected_db - mags[idx]))
        # Phase is meaningless once both sides sit on the dB floor.
        if expected_db <= DEFAULT_FLOOR_DB and mags[idx] <= DEFAULT_FLOOR_DB:
            continue
        delta_phase = abs((math.degrees(np.angle(value)) - phases[idx] + 180.0) % 360.0 - 180.0)
        worst_phase = max(worst_phase, delta_phase)

    if worst_mag <= CHECK_MAGNITUDE_DB and worst_phase <= CHECK_PHASE_DEG:
        return ""
    return f"Response check: Δ|H|={worst_mag:.2f} dB, Δ∠H={worst_phase:.1f}°"


__all__ = [
    "CombinedStability",
    "check_discrete_stability",
    "format_magnitude",
    "to_decibels",
    "frequency_response",
    "magnitude_db",
    "phase_deg",
    "validate_combined_response",
]
