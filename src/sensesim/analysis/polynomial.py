"""Characteristic polynomials and Durand-Kerner root finding."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike

logger = logging.getLogger(__name__)

COEFFICIENT_TOLERANCE = 1e-12
ROOT_TOLERANCE = 1e-12
MAX_ITERATIONS = 100
# Rotating the seeds off the real axis lets real polynomials reach complex roots.
SEED_ANGLE_OFFSET = 0.4
COINCIDENT_NUDGE = 1e-3


@dataclass(frozen=True)
class RootResult:
    """Roots plus a convergence diagnostic for the iterative solver."""

    roots: np.ndarray
    converged: bool
    iterations: int


def trim_leading(coeffs: ArrayLike, tolerance: float = COEFFICIENT_TOLERANCE) -> np.ndarray:
    """Drop leading coefficients whose magnitude is below ``tolerance``."""
    arr = np.asarray(coeffs, dtype=np.float64).reshape(-1)
    nonzero = np.flatnonzero(np.abs(arr) >= tolerance)
    if nonzero.size == 0:
        return arr[:0]
    return arr[nonzero[0] :]


def polyval(coeffs: ArrayLike, x: complex | float) -> complex:
    """Horner evaluation, highest degree first. No coefficients evaluate to 1."""
    arr = np.asarray(coeffs).reshape(-1)
    if arr.size == 0:
        return 1.0 + 0.0j
    acc = 0.0 + 0.0j
    for c in arr:
        acc = acc * x + c
    return acc


def characteristic_polynomial(matrix: ArrayLike) -> np.ndarray:
    """
    Coefficients of ``det(λI - A)`` by the Faddeev-LeVerrier recursion.

    The result has ``n + 1`` entries, highest degree first, with a leading 1.
    """
    a = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    if a.size == 0:
        return np.ones(1)
    n = a.shape[0]
    if a.shape != (n, n):
        raise ValueError(f"matrix must be square, got shape {a.shape}")

    coeffs = np.zeros(n + 1)
    coeffs[0] = 1.0
    identity = np.eye(n)
    previous = identity
    for k in range(1, n + 1):
        product = a @ previous
        ck = np.trace(product) / k
        coeffs[k] = -ck
        previous = product - ck * identity
    return coeffs


def find_roots(
    coeffs: ArrayLike,
    *,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = ROOT_TOLERANCE,
) -> RootResult:
    """
    Complex roots of a real polynomial (highest degree first).

    Leading near-zero coefficients are trimmed. Degree 0 has no roots and
    degree 1 is solved directly; higher degrees use simultaneous
    Durand-Kerner updates. When the iteration budget runs out the current
    estimates are returned with ``converged=False``.
    """
    trimmed = trim_leading(coeffs)
    if trimmed.size <= 1:
        return RootResult(np.zeros(0, dtype=np.complex128), True, 0)

    monic = trimmed / trimmed[0]
    degree = monic.size - 1
    if degree == 1:
        return RootResult(np.array([-monic[1] + 0.0j]), True, 0)

    angles = 2.0 * np.pi * np.arange(1, degree + 1) / degree + SEED_ANGLE_OFFSET
    roots = np.exp(1j * angles)

    converged = False
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        converged = True
        for i in range(degree):
            numerator = polyval(monic, roots[i])
            others = np.delete(roots, i)
            denominator = np.prod(roots[i] - others)
            if denominator == 0:
                roots[i] += COINCIDENT_NUDGE * np.exp(2j * np.pi * i / degree)
                converged = False
                continue
            delta = numerator / denominator
            roots[i] -= delta
            if not abs(delta) <= tolerance:
                converged = False
        if converged:
            break
    return RootResult(roots, converged, iterations)


def polynomial_roots(coeffs: ArrayLike) -> np.ndarray:
    """Roots only; a non-converged search is logged and its estimate returned."""
    result = find_roots(coeffs)
    if not result.converged:
        logger.debug(
            "Root search stopped after %d iterations without converging (degree %d)",
            result.iterations,
            result.roots.size,
        )
    return result.roots


def eigenvalues(matrix: ArrayLike) -> np.ndarray:
    return polynomial_roots(characteristic_polynomial(matrix))


__all__ = [
    "RootResult",
    "trim_leading",
    "polyval",
    "characteristic_polynomial",
    "find_roots",
    "polynomial_roots",
    "eigenvalues",
]
