from __future__ import annotations

import threading

import numpy as np
import pytest

from sensesim.config.runtime import SimulatorConfig
from sensesim.core.models import CHANNEL_ORDER, Channel
from sensesim.core.signal_engine import IDLE, SignalEngine, sanitize_samples
from sensesim.sensors.parameters import ParametersStore
from sensesim.sensors.waveforms import emg_waveform


def test_engine_fills_every_channel_on_construction() -> None:
    engine = SignalEngine()
    try:
        assert engine.samples_per_buffer == 500
        assert engine.sample_period == pytest.approx(0.01)
        assert engine.time_axis[0] == 0.0
        assert engine.time_axis[-1] == pytest.approx(5.0)
        assert engine.buffer_fill == 1.0
        for channel in CHANNEL_ORDER:
            assert engine.channel_state(channel) == IDLE
            assert engine.snapshot(channel).size == 500
    finally:
        engine.close()


def test_time_axis_is_read_only() -> None:
    engine = SignalEngine()
    with pytest.raises(ValueError):
        engine.time_axis[0] = 1.0
    engine.close()


def test_parameter_change_regenerates_channel() -> None:
    store = ParametersStore()
    engine = SignalEngine(store)
    changed = []
    engine.add_listener(changed.append)

    store.emg.update(amplitude=2.0, activation=1.0)

    assert changed == [Channel.EMG]
    assert engine.get_latest(Channel.EMG) == pytest.approx(2.0)
    np.testing.assert_allclose(engine.snapshot("emg"), emg_waveform(engine.time_axis, store.emg))
    engine.close()


def test_copy_latest_is_tail_aligned() -> None:
    engine = SignalEngine()
    out = np.full(600, -1.0)
    copied = engine.copy_latest(Channel.STRAIN, out)

    assert copied == 500
    np.testing.assert_array_equal(out[:100], 0.0)
    np.testing.assert_allclose(out[100:], engine.snapshot(Channel.STRAIN))
    engine.close()


def test_reader_never_sees_partially_rewritten_buffer() -> None:
    store = ParametersStore()
    engine = SignalEngine(store)
    window = np.zeros(engine.samples_per_buffer)
    short_reads = []
    done = threading.Event()

    def reader() -> None:
        while not done.is_set():
            copied = engine.copy_latest(Channel.EMG, window)
            if copied != engine.samples_per_buffer:
                short_reads.append(copied)

    thread = threading.Thread(target=reader, daemon=True)
    thread.start()
    try:
        for i in range(2000):
            store.emg.activation = 0.2 if i % 2 else 0.8
    finally:
        done.set()
        thread.join(timeout=5.0)
        engine.close()

    assert short_reads == []


def test_failing_listener_does_not_block_others() -> None:
    engine = SignalEngine()
    seen = []

    def broken(channel: Channel) -> None:
        raise RuntimeError("boom")

    engine.add_listener(broken)
    engine.add_listener(seen.append)
    engine.regenerate(Channel.FORCE)

    assert seen == [Channel.FORCE]
    engine.close()


def test_close_unsubscribes_from_store() -> None:
    store = ParametersStore()
    engine = SignalEngine(store)
    before = store.emg.subscriber_count
    engine.close()

    assert store.emg.subscriber_count == before - 1
    previous = engine.get_latest(Channel.EMG)
    store.emg.amplitude = 4.0
    assert engine.get_latest(Channel.EMG) == previous


def test_context_manager_starts_and_stops() -> None:
    with SignalEngine() as engine:
        assert engine.is_running
    assert not engine.is_running


def test_transfer_function_snapshot_returns_copies() -> None:
    engine = SignalEngine()
    first = engine.get_transfer_functions_snapshot()
    second = engine.get_transfer_functions_snapshot()

    assert [tf.channel for tf in first] == list(CHANNEL_ORDER)
    assert first[0] is not second[0]
    first[0].digital_poles[:] = 0.0
    assert np.any(second[0].digital_poles != 0.0)
    engine.close()


def test_custom_config_changes_window() -> None:
    engine = SignalEngine(config=SimulatorConfig(sample_rate_hz=50.0, buffer_seconds=2.0))
    assert engine.samples_per_buffer == 100
    assert engine.snapshot(Channel.ORIENTATION).size == 100
    engine.close()


def test_sanitize_samples_clips_and_zeroes() -> None:
    values = np.array([np.nan, np.inf, -10.0, 0.5])
    np.testing.assert_array_equal(sanitize_samples(values, 1.0), [0.0, 0.0, -1.0, 0.5])
