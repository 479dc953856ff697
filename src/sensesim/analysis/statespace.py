"""State-space container plus discrete state-space to transfer-function conversion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike

from .polynomial import COEFFICIENT_TOLERANCE, characteristic_polynomial, polynomial_roots, trim_leading


class DimensionMismatchError(ValueError):
    """Raised when state-space matrices have incompatible shapes."""


def _as_matrix(value: ArrayLike, name: str) -> np.ndarray:
    arr = np.array(value, dtype=np.float64)
    if arr.ndim == 0:
        arr = arr.reshape(1, 1)
    if arr.ndim != 2:
        raise DimensionMismatchError(f"{name} must be two-dimensional, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class StateSpaceSystem:
    """
    ``x' = A·x + B·u``, ``y = C·x + D·u`` (continuous or discrete).

    The matrices are copied on construction and made read-only, so a system
    never aliases the arrays it was built from.
    """

    A: np.ndarray
    B: np.ndarray
    C: np.ndarray
    D: np.ndarray

    def __post_init__(self) -> None:
        a = _as_matrix(self.A, "A")
        b = _as_matrix(self.B, "B")
        c = _as_matrix(self.C, "C")
        d = _as_matrix(self.D, "D")

        if a.shape[0] != a.shape[1]:
            raise DimensionMismatchError(f"A must be square, got {a.shape}")
        if b.shape[0] != a.shape[0]:
            raise DimensionMismatchError(f"B has {b.shape[0]} rows, expected {a.shape[0]}")
        if c.shape[1] != a.shape[0]:
            raise DimensionMismatchError(f"C has {c.shape[1]} columns, expected {a.shape[0]}")
        if d.shape[0] != c.shape[0]:
            raise DimensionMismatchError(f"D has {d.shape[0]} rows, expected {c.shape[0]}")
        if d.shape[1] != b.shape[1]:
            raise DimensionMismatchError(f"D has {d.shape[1]} columns, expected {b.shape[1]}")

        object.__setattr__(self, "A", a)
        object.__setattr__(self, "B", b)
        object.__setattr__(self, "C", c)
        object.__setattr__(self, "D", d)

    @property
    def state_count(self) -> int:
        return self.A.shape[0]

    @property
    def is_siso(self) -> bool:
        return self.B.shape[1] == 1 and self.C.shape[0] == 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StateSpaceSystem):
            return NotImplemented
        return all(
            np.array_equal(getattr(self, name), getattr(other, name)) for name in ("A", "B", "C", "D")
        )


def state_space_to_transfer_function(system: StateSpaceSystem) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a discrete SISO system to ``(numerator, denominator)`` in ``z``.

    The denominator is the characteristic polynomial of ``A``; the numerator
    follows from the Markov parameters ``h[0] = D`` and
    ``h[k] = C·A^(k-1)·B`` via ``num[k] = Σ den[i]·h[k-i]``. Both arrays have
    ``n + 1`` coefficients and the denominator is monic.
    """
    if not system.is_siso:
        raise ValueError("transfer-function conversion expects a SISO system")

    n = system.state_count
    d = float(system.D[0, 0])
    if n == 0:
        return np.array([d]), np.array([1.0])

    denominator = characteristic_polynomial(system.A)
    c = system.C[0]
    state = system.B[:, 0].copy()

    markov = np.zeros(n + 1)
    markov[0] = d
    for k in range(1, n + 1):
        markov[k] = float(c @ state)
        state = system.A @ state

    numerator = np.convolve(denominator, markov)[: n + 1]

    if abs(denominator[0] - 1.0) > COEFFICIENT_TOLERANCE:
        scale = denominator[0]
        denominator = denominator / scale
        numerator = numerator / scale
    return numerator, denominator


def state_space_zeros(system: StateSpaceSystem) -> np.ndarray:
    """Transmission zeros: roots of the trimmed numerator."""
    numerator, _ = state_space_to_transfer_function(system)
    trimmed = trim_leading(numerator)
    if trimmed.size <= 1:
        return np.zeros(0, dtype=np.complex128)
    return polynomial_roots(trimmed)


__all__ = [
    "DimensionMismatchError",
    "StateSpaceSystem",
    "state_space_to_transfer_function",
    "state_space_zeros",
]
