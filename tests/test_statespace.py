from __future__ import annotations

import math

import numpy as np
import pytest
from scipy import signal

from sensesim.analysis.discretize import discretize, discretize_tustin, discretize_zoh
from sensesim.analysis.linalg import SingularMatrixError
from sensesim.analysis.stability import (
    check_discrete_stability,
    format_magnitude,
    frequency_response,
    magnitude_db,
    phase_deg,
    to_decibels,
    validate_combined_response,
)
from sensesim.analysis.statespace import (
    DimensionMismatchError,
    StateSpaceSystem,
    state_space_to_transfer_function,
    state_space_zeros,
)


def _first_order(pole: float = 0.5, d: float = 0.0) -> StateSpaceSystem:
    return StateSpaceSystem(A=[[pole]], B=[[1.0]], C=[[2.0]], D=[[d]])


def test_dimension_checks() -> None:
    with pytest.raises(DimensionMismatchError):
        StateSpaceSystem(A=np.eye(2), B=[[1.0]], C=[[1.0, 0.0]], D=[[0.0]])
    with pytest.raises(DimensionMismatchError):
        StateSpaceSystem(A=np.eye(2), B=[[1.0], [0.0]], C=[[1.0]], D=[[0.0]])
    with pytest.raises(DimensionMismatchError):
        StateSpaceSystem(A=np.zeros((2, 3)), B=[[1.0], [0.0]], C=[[1.0, 0.0]], D=[[0.0]])


def test_system_copies_and_freezes_matrices() -> None:
    a = np.array([[0.5]])
    system = StateSpaceSystem(A=a, B=[[1.0]], C=[[1.0]], D=0.0)
    a[0, 0] = 9.0

    assert system.A[0, 0] == 0.5
    assert system.D.shape == (1, 1)
    with pytest.raises(ValueError):
        system.A[0, 0] = 1.0
    assert system == StateSpaceSystem(A=[[0.5]], B=[[1.0]], C=[[1.0]], D=[[0.0]])


def test_transfer_function_of_first_order() -> None:
    num, den = state_space_to_transfer_function(_first_order())
    np.testing.assert_allclose(num, [0.0, 2.0])
    np.testing.assert_allclose(den, [1.0, -0.5])


def test_transfer_function_includes_feedthrough() -> None:
    num, den = state_space_to_transfer_function(_first_order(d=1.0))
    np.testing.assert_allclose(num, [1.0, 1.5])
    np.testing.assert_allclose(den, [1.0, -0.5])
    np.testing.assert_allclose(state_space_zeros(_first_order(d=1.0)), [-1.5], atol=1e-12)


def test_transfer_function_matches_scipy() -> None:
    a = np.array([[0.9, 0.1], [-0.2, 0.7]])
    b = np.array([[1.0], [0.5]])
    c = np.array([[1.0, -1.0]])
    d = np.array([[0.25]])

    num, den = state_space_to_transfer_function(StateSpaceSystem(a, b, c, d))
    ref_num, ref_den = signal.ss2tf(a, b, c, d)

    np.testing.assert_allclose(den, ref_den, atol=1e-12)
    np.testing.assert_allclose(num, ref_num[0], atol=1e-12)


def test_transfer_function_requires_siso() -> None:
    mimo = StateSpaceSystem(A=np.eye(2), B=np.eye(2), C=np.eye(2), D=np.zeros((2, 2)))
    with pytest.raises(ValueError):
        state_space_to_transfer_function(mimo)


def test_zoh_first_order_values() -> None:
    a, period = 3.0, 0.01
    ad, bd = discretize_zoh([[-a]], [[a]], period)
    assert ad[0, 0] == pytest.approx(math.exp(-a * period))
    assert bd[0, 0] == pytest.approx(1.0 - math.exp(-a * period))


def test_zoh_matches_scipy_for_second_order() -> None:
    omega_sq, zeta = 144.0, 0.45
    a = np.array([[0.0, 1.0], [-omega_sq, -2.0 * zeta * 12.0]])
    b = np.array([[0.0], [omega_sq]])
    ad, bd = discretize_zoh(a, b, 0.01)
    ref_ad, ref_bd, *_ = signal.cont2discrete((a, b, np.eye(2), np.zeros((2, 1))), 0.01, method="zoh")
    np.testing.assert_allclose(ad, ref_ad, rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(bd, ref_bd, rtol=1e-9, atol=1e-12)


def test_zoh_preserves_dc_gain() -> None:
    continuous = StateSpaceSystem(A=[[-50.0]], B=[[50.0]], C=[[1.0]], D=[[0.0]])
    discrete = discretize(continuous, 100.0, "zoh")
    dc = frequency_response(discrete, 100.0, [0.0])[0]
    assert abs(dc) == pytest.approx(1.0)


def test_tustin_first_order_values() -> None:
    ad, bd = discretize_tustin([[-4.0]], [[4.0]], 0.1)
    assert ad[0, 0] == pytest.approx((1.0 - 0.2) / (1.0 + 0.2))
    assert bd[0, 0] == pytest.approx(0.4 / 1.2)


def test_tustin_singular_raises() -> None:
    system = StateSpaceSystem(A=[[200.0]], B=[[1.0]], C=[[1.0]], D=[[0.0]])
    with pytest.raises(SingularMatrixError):
        discretize(system, 100.0, "tustin")


def test_discretize_rejects_bad_arguments() -> None:
    system = _first_order()
    with pytest.raises(ValueError):
        discretize(system, 100.0, "euler")
    with pytest.raises(ValueError):
        discretize(system, 0.0)


@pytest.mark.parametrize(
    "pole, stable",
    [(1.0 - 2e-6, True), (1.0, False), (1.0 + 2e-6, False), (-0.5, True)],
)
def test_stability_boundary(pole: float, stable: bool) -> None:
    result = check_discrete_stability([[pole]])
    assert result.is_stable is stable
    assert result.max_magnitude == pytest.approx(abs(pole))


def test_stability_without_poles() -> None:
    result = check_discrete_stability(np.zeros((0, 0)))
    assert result.is_stable
    assert result.reason == "No poles detected"


def test_stability_reports_eigenvalue_failure() -> None:
    result = check_discrete_stability(np.zeros((2, 3)))
    assert not result.is_stable
    assert result.reason.startswith("Eigenvalue failure")
    assert format_magnitude(result.max_magnitude) == "∞"


def test_to_decibels_floor() -> None:
    assert to_decibels(0.0) == -120.0
    assert to_decibels(1.0) == 0.0
    np.testing.assert_allclose(to_decibels([10.0, np.nan]), [20.0, -120.0])


def test_frequency_response_of_first_order() -> None:
    response = frequency_response(_first_order(), 100.0, [0.0, 50.0])
    np.testing.assert_allclose(response, [4.0, 2.0 / (-1.0 - 0.5)])
    np.testing.assert_allclose(magnitude_db(response), 20.0 * np.log10([4.0, 4.0 / 3.0]))
    np.testing.assert_allclose(np.abs(phase_deg(response)), [0.0, 180.0])


def test_frequency_response_on_pole_raises() -> None:
    with pytest.raises(SingularMatrixError):
        frequency_response(_first_order(pole=1.0), 100.0, [0.0])


def test_validate_combined_response() -> None:
    system = StateSpaceSystem(A=[[0.9, 0.1], [-0.2, 0.7]], B=[[1.0], [0.5]], C=[[1.0, -1.0]], D=[[0.25]])
    freqs = np.linspace(0.5, 45.0, 50)
    response = frequency_response(system, 100.0, freqs)
    mags, phases = magnitude_db(response), phase_deg(response)

    assert validate_combined_response(system, 100.0, freqs, mags, phases) == ""

    message = validate_combined_response(system, 100.0, freqs, mags + 3.0, phases)
    assert message.startswith("Response check:")
