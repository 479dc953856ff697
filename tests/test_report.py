from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sensesim.core.models import CHANNEL_ORDER
from sensesim.core.signal_engine import SignalEngine
from sensesim.core.spectrum_loop import SpectrumLoop
from sensesim.tools.plotter import export_figure
from sensesim.tools.report import main


@pytest.fixture
def params_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "params.yaml"
    monkeypatch.setenv("SENSESIM_PARAMS_PATH", str(path))
    return path


def test_report_prints_channels_and_status(params_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 0

    out = capsys.readouterr().out
    assert "Preset: custom" in out
    for channel in CHANNEL_ORDER:
        assert channel.label in out
    assert "Stable (max |λ| = " in out
    assert not params_path.exists()


def test_report_applies_preset_and_saves(params_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--preset", "fast_exercise", "--save"]) == 0

    assert "Preset: fast_exercise" in capsys.readouterr().out
    saved = yaml.safe_load(params_path.read_text(encoding="utf-8"))
    assert saved["orientation"]["amplitude_deg"] == 60.0
    assert saved["emg"]["activation"] == 0.8


def test_report_rejects_unknown_preset(params_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--preset", "sprint"])


def test_report_missing_config_is_an_error(params_path: Path, tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--config", str(tmp_path / "absent.yaml")])


def test_report_writes_figure(params_path: Path, tmp_path: Path) -> None:
    figure = tmp_path / "out" / "report.png"
    assert main(["--method", "tustin", "--figure", str(figure)]) == 0
    assert figure.stat().st_size > 0


def test_export_figure_without_result(tmp_path: Path) -> None:
    engine = SignalEngine()
    try:
        frame = SpectrumLoop(engine).tick()
        written = export_figure(frame, tmp_path / "frame.png")
    finally:
        engine.close()
    assert written.exists()


def test_top_level_package_is_a_namespace() -> None:
    import sensesim

    assert getattr(sensesim, "__file__", None) is None
    assert any(Path(p).name == "sensesim" for p in sensesim.__path__)
