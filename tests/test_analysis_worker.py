from __future__ import annotations

import threading

import numpy as np
import pytest

from sensesim.analysis.transforms import TransferFunction
from sensesim.config.runtime import SimulatorConfig, bode_frequencies
from sensesim.core.analysis_worker import (
    AnalysisCancelled,
    AnalysisWorker,
    run_analysis,
    summarize,
)
from sensesim.core.models import Channel
from sensesim.core.signal_engine import SignalEngine

RATE = 100.0
FREQS = bode_frequencies(SimulatorConfig(bode_points=32))


@pytest.fixture
def engine():
    eng = SignalEngine(config=SimulatorConfig(analysis_settle_s=0.01, bode_points=32))
    yield eng
    eng.close()


def test_default_channels_are_stable(engine: SignalEngine) -> None:
    result = run_analysis(engine.get_transfer_functions_snapshot(), RATE, FREQS)

    assert result.is_available
    assert result.is_stable
    assert result.status.startswith("Stable (max |λ| = ")
    assert result.magnitude_db.size == FREQS.size
    assert result.phase_deg.size == FREQS.size
    assert set(result.analog_magnitudes) == set(Channel)
    assert sum(result.weights) == pytest.approx(1.0)


def test_zero_weights_report_unavailable(engine: SignalEngine) -> None:
    result = run_analysis(engine.get_transfer_functions_snapshot(), RATE, FREQS, [0.0, 0.0, 0.0, 0.0])

    assert not result.is_available
    assert result.status == "Combined response unavailable (weights produced zero gain)."
    assert result.magnitude_db.size == 0


def test_unstable_model_skips_response() -> None:
    growing = TransferFunction("growing", Channel.ORIENTATION, [100.0], [1.0, -2.0, 100.0])
    result = run_analysis([growing], RATE, FREQS, [1.0])

    assert result.is_available
    assert not result.is_stable
    assert result.status.startswith("Combined model is UNSTABLE (|λ|max = 1.0")
    assert result.magnitude_db.size == 0


def test_singular_tustin_degrades_to_status() -> None:
    pathological = TransferFunction("pathological", Channel.ORIENTATION, [100.0], [1.0, -200.5, 100.0])
    result = run_analysis([pathological], RATE, FREQS, [1.0], method="tustin")

    assert not result.is_available
    assert result.status.startswith("Analysis unavailable:")


def test_cancelled_run_raises(engine: SignalEngine) -> None:
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AnalysisCancelled):
        run_analysis(engine.get_transfer_functions_snapshot(), RATE, FREQS, cancel_event=cancel)


def test_summarize_starts_with_status(engine: SignalEngine) -> None:
    result = run_analysis(engine.get_transfer_functions_snapshot(), RATE, FREQS)
    lines = summarize(result)
    assert lines[0] == result.status
    assert any("IMU Orientation" in line for line in lines)


def test_worker_run_now_commits_latest(engine: SignalEngine) -> None:
    results = []
    worker = AnalysisWorker(engine, on_result=results.append, auto_attach=False)
    try:
        worker.run_now().join(5.0)
        assert worker.wait(1.0)
        assert worker.latest is results[-1]
        assert worker.generation == 1
    finally:
        worker.close()


def test_worker_only_commits_newest_run(engine: SignalEngine) -> None:
    results = []
    worker = AnalysisWorker(engine, on_result=results.append, auto_attach=False)
    try:
        first = worker.run_now()
        second = worker.run_now()
        first.join(5.0)
        second.join(5.0)

        assert worker.generation == 2
        assert 1 <= len(results) <= 2
        assert any(result is worker.latest for result in results)
    finally:
        worker.close()


def test_worker_delivers_callbacks_in_run_order(engine: SignalEngine) -> None:
    delivered = []
    entered = threading.Event()
    release = threading.Event()

    def on_result(result) -> None:
        if not entered.is_set():
            entered.set()
            release.wait(5.0)
        delivered.append(result)

    worker = AnalysisWorker(engine, on_result=on_result, auto_attach=False)
    try:
        first = worker.run_now()
        assert entered.wait(5.0)
        second = worker.run_now()
        assert worker.wait(5.0)
        release.set()
        first.join(5.0)
        second.join(5.0)

        assert len(delivered) == 2
        assert delivered[-1] is worker.latest
        assert delivered[0] is not worker.latest
    finally:
        release.set()
        worker.close()


def test_worker_ignores_run_requests_after_close(engine: SignalEngine) -> None:
    results = []
    worker = AnalysisWorker(engine, on_result=results.append, auto_attach=False)
    worker.close()

    assert worker.run_now() is None
    worker.schedule()
    assert worker.generation == 0
    assert worker.latest is None
    assert results == []


def test_worker_reacts_to_parameter_changes(engine: SignalEngine) -> None:
    results = []
    worker = AnalysisWorker(engine, on_result=results.append)
    try:
        engine.store.emg.bandpass_enabled = True
        assert worker.wait(5.0)
        names = [tf.name for tf in worker.latest.transfers]
        assert "EMG Band-Pass" in names
    finally:
        worker.close()


def test_worker_honours_store_weights(engine: SignalEngine) -> None:
    engine.store.weights = {channel: 0.0 for channel in Channel}
    worker = AnalysisWorker(engine, auto_attach=False)
    try:
        worker.run_now().join(5.0)
        assert worker.latest is not None
        assert not worker.latest.is_available
        np.testing.assert_array_equal(worker.latest.weights, [0.0, 0.0, 0.0, 0.0])
    finally:
        worker.close()
