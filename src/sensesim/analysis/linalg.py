"""Small dense linear-algebra kernels used by the discretizer and solvers."""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike

PIVOT_TOLERANCE = 1e-12
EXPM_TOLERANCE = 1e-12
EXPM_MAX_TERMS = 32


class SingularMatrixError(ValueError):
    """Raised when elimination finds no pivot above :data:`PIVOT_TOLERANCE`."""


def infinity_norm(matrix: ArrayLike) -> float:
    """Maximum absolute row sum."""
    arr = np.atleast_2d(np.asarray(matrix))
    if arr.size == 0:
        return 0.0
    return float(np.max(np.sum(np.abs(arr), axis=1)))


def _require_square(matrix: np.ndarray, name: str = "matrix") -> int:
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"{name} must be square, got shape {matrix.shape}")
    return matrix.shape[0]


def matrix_exponential(
    matrix: ArrayLike,
    *,
    tolerance: float = EXPM_TOLERANCE,
    max_terms: int = EXPM_MAX_TERMS,
) -> np.ndarray:
    """
    Truncated Taylor series ``I + M + M²/2! + ...``.

    Accumulation stops once the infinity norm of the newest term drops below
    ``tolerance`` or after ``max_terms`` terms. Matrices with a norm above
    0.5 are scaled by a power of two first and the result squared back, so
    stiff channels (poles in the thousands of rad/s) stay accurate.
    """
    m = np.array(matrix, dtype=np.float64)
    n = _require_square(m)
    norm = infinity_norm(m)
    squarings = 0
    if np.isfinite(norm) and norm > 0.5:
        squarings = int(np.ceil(np.log2(norm / 0.5)))
        m = m / (2.0**squarings)

    result = np.eye(n)
    term = np.eye(n)
    for k in range(1, max_terms + 1):
        term = term @ m / k
        result = result + term
        if infinity_norm(term) < tolerance:
            break
    for _ in range(squarings):
        result = result @ result
    return result


def matrix_inverse(matrix: ArrayLike) -> np.ndarray:
    """Gauss-Jordan inverse with partial pivoting."""
    work = np.array(matrix, dtype=np.float64)
    n = _require_square(work)
    inverse = np.eye(n)
    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(work[col:, col])))
        if abs(work[pivot_row, col]) < PIVOT_TOLERANCE:
            raise SingularMatrixError(f"Matrix is singular (column {col})")
        if pivot_row != col:
            work[[col, pivot_row]] = work[[pivot_row, col]]
            inverse[[col, pivot_row]] = inverse[[pivot_row, col]]

        pivot = work[col, col]
        work[col] /= pivot
        inverse[col] /= pivot
        for row in range(n):
            if row == col:
                continue
            factor = work[row, col]
            if factor != 0.0:
                work[row] -= factor * work[col]
                inverse[row] -= factor * inverse[col]
    return inverse


def solve_complex(matrix: ArrayLike, rhs: ArrayLike) -> np.ndarray:
    """
    Solve ``M·x = b`` for complex ``M`` by Gaussian elimination.

    Partial pivoting picks the row with the largest modulus; a best pivot
    below :data:`PIVOT_TOLERANCE` raises :class:`SingularMatrixError`.
    """
    a = np.array(matrix, dtype=np.complex128)
    b = np.array(rhs, dtype=np.complex128).reshape(-1)
    n = _require_square(a)
    if b.size != n:
        raise ValueError(f"right-hand side has {b.size} rows, expected {n}")

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot_row, col]) < PIVOT_TOLERANCE:
            raise SingularMatrixError(f"Matrix is singular (column {col})")
        if pivot_row != col:
            a[[col, pivot_row]] = a[[pivot_row, col]]
            b[[col, pivot_row]] = b[[pivot_row, col]]
        for row in range(col + 1, n):
            factor = a[row, col] / a[col, col]
            if factor != 0:
                a[row, col:] -= factor * a[col, col:]
                b[row] -= factor * b[col]

    x = np.zeros(n, dtype=np.complex128)
    for row in range(n - 1, -1, -1):
        acc = b[row] - np.dot(a[row, row + 1 :], x[row + 1 :])
        x[row] = acc / a[row, row]
    return x


__all__ = [
    "SingularMatrixError",
    "PIVOT_TOLERANCE",
    "infinity_norm",
    "matrix_exponential",
    "matrix_inverse",
    "solve_complex",
]
