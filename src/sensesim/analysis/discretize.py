"""Continuous-to-discrete conversion of state-space systems."""

from __future__ import annotations

from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike

from .linalg import matrix_exponential, matrix_inverse
from .statespace import StateSpaceSystem

DISCRETIZATION_METHODS = ("zoh", "tustin")


def _period(sample_period: float) -> float:
    period = float(sample_period)
    if not np.isfinite(period) or period <= 0:
        raise ValueError(f"sample period must be > 0, got {sample_period}")
    return period


def discretize_zoh(A: ArrayLike, B: ArrayLike, sample_period: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Zero-order hold: ``exp([[A, B], [0, 0]]·T)`` read off as ``[[Ad, Bd], [0, I]]``.
    """
    a = np.atleast_2d(np.asarray(A, dtype=np.float64))
    b = np.asarray(B, dtype=np.float64).reshape(a.shape[0], -1)
    period = _period(sample_period)
    states, inputs = b.shape

    augmented = np.zeros((states + inputs, states + inputs))
    augmented[:states, :states] = a
    augmented[:states, states:] = b
    exponential = matrix_exponential(augmented * period)
    return exponential[:states, :states].copy(), exponential[:states, states:].copy()


def discretize_tustin(A: ArrayLike, B: ArrayLike, sample_period: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Bilinear map ``Ad = (I - A·T/2)⁻¹(I + A·T/2)``, ``Bd = (I - A·T/2)⁻¹·B·T``.

    Raises :class:`~sensesim.analysis.linalg.SingularMatrixError` when
    ``I - A·T/2`` cannot be inverted.
    """
    a = np.atleast_2d(np.asarray(A, dtype=np.float64))
    b = np.asarray(B, dtype=np.float64).reshape(a.shape[0], -1)
    period = _period(sample_period)
    identity = np.eye(a.shape[0])
    half = 0.5 * period

    lhs_inverse = matrix_inverse(identity - a * half)
    ad = lhs_inverse @ (identity + a * half)
    bd = lhs_inverse @ (b * period)
    return ad, bd


def discretize(system: StateSpaceSystem, sample_rate: float, method: str = "zoh") -> StateSpaceSystem:
    """Discretize ``system`` at ``sample_rate``; C and D are passed through."""
    key = str(method).strip().lower()
    if key not in DISCRETIZATION_METHODS:
        raise ValueError(f"Unknown discretization method {method!r}; expected one of {DISCRETIZATION_METHODS}")
    rate = float(sample_rate)
    if not np.isfinite(rate) or rate <= 0:
        raise ValueError(f"sample_rate must be > 0, got {sample_rate}")

    period = 1.0 / rate
    if key == "tustin":
        ad, bd = discretize_tustin(system.A, system.B, period)
    else:
        ad, bd = discretize_zoh(system.A, system.B, period)
    return StateSpaceSystem(ad, bd, system.C, system.D)


__all__ = ["DISCRETIZATION_METHODS", "discretize_zoh", "discretize_tustin", "discretize"]
