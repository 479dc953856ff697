"""
Headless report for the simulator.

Loads the runtime config and the persisted parameter snapshot, optionally
applies a run preset, regenerates every channel and prints the latest value
and spectral peaks per channel followed by the combined stability status.

Examples
--------
    sensesim-report --preset fast_exercise
    sensesim-report -c sim.yaml --method tustin --figure out/report.png
    sensesim-report --preset drift_bias --save
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Sequence

from ..config.persistence import default_params_path, load_parameters_or_default, save_parameters
from ..config.runtime import bode_frequencies, load_config
from ..core.analysis_worker import AnalysisResult, run_analysis, summarize
from ..core.models import CHANNEL_ORDER
from ..core.signal_engine import SignalEngine
from ..core.spectrum_loop import SpectrumFrame, SpectrumLoop
from ..sensors.parameters import RUN_PRESETS, ParametersStore
from .debug import enable_timing, time_block, timing_summary

logger = logging.getLogger(__name__)


def format_report(frame: SpectrumFrame, result: AnalysisResult, latest: dict) -> List[str]:
    """Plain-text lines for one frame and its analysis result."""
    lines: List[str] = []
    for channel in CHANNEL_ORDER:
        peaks = frame.peaks.get(channel)
        value = latest.get(channel, 0.0)
        if peaks is None or not peaks.has_peaks:
            peak_text = "no peaks"
        else:
            peak_text = ", ".join(
                f"{freq:.2f} Hz @ {mag:.1f} dB" for freq, mag in zip(peaks.frequencies, peaks.magnitudes)
            )
        lines.append(f"{channel.label:<16} latest={value:+.4f}  peaks: {peak_text}")
    lines.append("")
    lines.extend(summarize(result))
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate the four simulated sensor channels and report spectra and stability."
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        help="YAML file with simulator settings (default: built-in defaults).",
    )
    parser.add_argument(
        "-p",
        "--params",
        type=str,
        help=(
            "Parameter snapshot to load and save. Defaults to $SENSESIM_PARAMS_PATH "
            "or ~/.sensesim/params.yaml."
        ),
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=sorted(RUN_PRESETS),
        help="Run preset applied after loading the parameters.",
    )
    parser.add_argument(
        "-m",
        "--method",
        type=str,
        choices=["zoh", "tustin"],
        help="Discretization used for the combined model (default: from config).",
    )
    parser.add_argument(
        "-f",
        "--figure",
        type=str,
        help="Write a Matplotlib figure of the frame and analysis to this path.",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the (possibly preset-modified) parameters on exit.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.verbose:
        enable_timing(True)

    if args.config:
        config_path = Path(args.config).expanduser()
        if not config_path.exists():
            parser.error(f"Config file not found: {config_path}")
        config = load_config(config_path)
    else:
        config = load_config(None)

    params_path = Path(args.params).expanduser() if args.params else default_params_path()
    store = ParametersStore(load_parameters_or_default(params_path))
    if args.preset:
        store.apply_preset(args.preset)

    engine = SignalEngine(store, config)
    try:
        engine.start()
        engine.regenerate_all()

        loop = SpectrumLoop.from_config(engine)
        frame = loop.tick()
        latest = {channel: engine.get_latest(channel) for channel in CHANNEL_ORDER}

        with time_block("analysis", logger=logger):
            result = run_analysis(
                engine.get_transfer_functions_snapshot(),
                engine.sample_rate,
                bode_frequencies(engine.config),
                store.weights,
                args.method or engine.config.discretization,
                normalize=store.normalize_weights,
            )

        print(f"Preset: {store.current_preset}")
        for line in format_report(frame, result, latest):
            print(line)

        if args.figure:
            from .plotter import export_figure

            export_figure(frame, args.figure, result)

        if args.save and not save_parameters(params_path, store.snapshot()):
            return 1
    finally:
        engine.close()
        store.close()
        for line in timing_summary():
            logger.debug("timing %s", line)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
