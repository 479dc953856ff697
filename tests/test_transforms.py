from __future__ import annotations

import math

import numpy as np
import pytest
from scipy import signal

from sensesim.analysis.polynomial import polyval
from sensesim.analysis.transforms import (
    TransferFunction,
    analog_magnitude_db,
    bilinear_transform,
    build_combined_continuous,
    build_combined_discrete,
    build_transfer_functions,
    channel_state_space,
    emg_transfer,
    force_transfer,
    normalize_weights,
    orientation_transfer,
    strain_transfer,
    weights_for,
)
from sensesim.core.models import CHANNEL_ORDER, Channel
from sensesim.sensors.parameters import (
    EmgParameters,
    ForceParameters,
    OrientationParameters,
    ParametersStore,
    StrainParameters,
)
from sensesim.sensors.waveforms import force_resistance

RATE = 100.0


def test_orientation_transfer_is_second_order_lowpass() -> None:
    tf = orientation_transfer(OrientationParameters(zeta=0.5, omega_n=10.0), RATE)

    assert tf.name == "IMU Orientation Filter"
    np.testing.assert_allclose(tf.analog_denominator, [1.0, 10.0, 100.0])
    assert tf.is_populated
    assert tf.digital_denominator[0] == 1.0
    dc = polyval(tf.digital_numerator, 1.0) / polyval(tf.digital_denominator, 1.0)
    assert dc == pytest.approx(1.0)
    assert np.all(np.abs(tf.digital_poles) < 1.0)


def test_force_transfer_pole_follows_fsr_resistance() -> None:
    params = ForceParameters()
    tf = force_transfer(params, RATE)
    omega_c = 1.0 / (force_resistance(params) * 1e-6)

    assert tf.name == "FSR Front-End"
    np.testing.assert_allclose(tf.analog_poles, [-omega_c], rtol=1e-9)


def test_strain_cutoff_has_floor() -> None:
    tf = strain_transfer(StrainParameters(mechanical_hz=4.5), RATE)
    np.testing.assert_allclose(tf.analog_poles.real, [-2.0 * math.pi * 40.0])

    fast = strain_transfer(StrainParameters(mechanical_hz=20.0), RATE)
    np.testing.assert_allclose(fast.analog_poles.real, [-2.0 * math.pi * 60.0])


def test_emg_transfer_variants() -> None:
    unity = emg_transfer(EmgParameters(), RATE)
    assert unity.name == "EMG Unity Gain"
    assert unity.order == 0
    np.testing.assert_array_equal(unity.digital_numerator, [1.0])

    band = emg_transfer(EmgParameters(bandpass_enabled=True), RATE)
    assert band.name == "EMG Band-Pass"
    assert band.order == 1


def test_bilinear_matches_scipy() -> None:
    num, den = [144.0], [1.0, 10.8, 144.0]
    ours = bilinear_transform(num, den, RATE)
    ref = signal.bilinear(num, den, fs=RATE)
    np.testing.assert_allclose(ours[0], ref[0], rtol=1e-10)
    np.testing.assert_allclose(ours[1], ref[1], rtol=1e-10)


def test_bilinear_first_order_preserves_dc() -> None:
    num_z, den_z = bilinear_transform([5.0], [1.0, 5.0], RATE)
    assert polyval(num_z, 1.0) / polyval(den_z, 1.0) == pytest.approx(1.0)


def test_bilinear_order_zero() -> None:
    num_z, den_z = bilinear_transform([1.0], [1.0], RATE)
    np.testing.assert_array_equal(num_z, [1.0])
    np.testing.assert_array_equal(den_z, [1.0])


def test_transfer_function_copy_is_independent() -> None:
    tf = orientation_transfer(OrientationParameters(), RATE)
    clone = tf.copy()
    clone.digital_poles[0] = 99.0
    assert tf.digital_poles[0] != 99.0
    with pytest.raises(ValueError):
        tf.analog_numerator[0] = 1.0


def test_empty_denominator_rejected() -> None:
    with pytest.raises(ValueError):
        TransferFunction("broken", Channel.EMG, [1.0], [])


def test_build_transfer_functions_in_channel_order() -> None:
    transfers = build_transfer_functions(ParametersStore(), RATE)
    assert [tf.channel for tf in transfers] == list(CHANNEL_ORDER)


def test_channel_state_space_dc_gain() -> None:
    for tf in build_transfer_functions(ParametersStore(), RATE):
        system = channel_state_space(tf)
        dc = (system.D - system.C @ np.linalg.solve(system.A, system.B)).item()
        assert dc == pytest.approx(1.0, rel=1e-9)


def test_normalize_weights() -> None:
    assert normalize_weights([1.0, 1.0, 2.0, 0.0]) == [0.25, 0.25, 0.5, 0.0]
    assert normalize_weights([-1.0, float("nan"), 2.0]) == [0.0, 0.0, 1.0]
    assert normalize_weights([0.0, 0.0]) == [0.0, 0.0]


def test_weights_for_mapping_and_default() -> None:
    transfers = build_transfer_functions(ParametersStore(), RATE)
    assert weights_for(transfers, None) == [1.0, 1.0, 1.0, 1.0]
    assert weights_for(transfers, {Channel.FORCE: 2.0}) == [0.0, 2.0, 0.0, 0.0]


def test_combined_continuous_shapes_and_degenerate_cases() -> None:
    transfers = build_transfer_functions(ParametersStore(), RATE)

    system = build_combined_continuous(transfers, [0.25, 0.25, 0.25, 0.25])
    assert system is not None
    assert system.state_count == 5
    assert system.is_siso

    assert build_combined_continuous(transfers, [0.0, 0.0, 0.0, 0.0]) is None
    assert build_combined_continuous(transfers, [1.0, 1.0]) is None
    assert build_combined_continuous([], []) is None


def test_combined_discrete_is_stable_for_defaults() -> None:
    transfers = build_transfer_functions(ParametersStore(), RATE)
    system = build_combined_discrete(transfers, normalize_weights([1.0] * 4), RATE, "zoh")
    assert system is not None
    assert np.all(np.abs(np.linalg.eigvals(system.A)) < 1.0)


def test_analog_magnitude_db_low_frequency_is_unity() -> None:
    tf = orientation_transfer(OrientationParameters(), RATE)
    mags = analog_magnitude_db(tf, [0.01, 1000.0])
    assert mags[0] == pytest.approx(0.0, abs=1e-3)
    assert mags[1] < -60.0
