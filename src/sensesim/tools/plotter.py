"""
Offline Matplotlib export of one simulator frame.

Draws the four channel windows, their spectra with the extracted peaks and,
when an analysis result is available, the per-channel analog Bode magnitudes
next to the combined discrete response. The figure is written to disk and
closed; nothing is shown interactively.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from matplotlib.figure import Figure

from ..core.analysis_worker import AnalysisResult
from ..core.models import CHANNEL_ORDER
from ..core.spectrum_loop import SpectrumFrame

logger = logging.getLogger(__name__)

CHANNEL_COLORS = {
    0: "#42A5F5",
    1: "#EF5350",
    2: "#66BB6A",
    3: "#AB47BC",
}
COMBINED_COLOR = "#9FA8DA"


def export_figure(
    frame: SpectrumFrame,
    path: str | Path,
    result: Optional[AnalysisResult] = None,
    *,
    dpi: int = 100,
) -> Path:
    """Render ``frame`` (and optionally ``result``) into an image at ``path``."""
    out_path = Path(path)
    if out_path.parent and not out_path.parent.exists():
        out_path.parent.mkdir(parents=True, exist_ok=True)

    rows = len(CHANNEL_ORDER) + (1 if result is not None else 0)
    fig = Figure(figsize=(12, 2.6 * rows))
    axes = fig.subplots(rows, 2, squeeze=False)
    for row, channel in enumerate(CHANNEL_ORDER):
        color = CHANNEL_COLORS[int(channel)]
        signal = frame.signals.get(channel, np.zeros(0))
        t = np.arange(signal.size) * frame.sample_period

        ax_t = axes[row][0]
        ax_t.plot(t, signal, color=color, linewidth=1.0)
        low, high = frame.axis_ranges.get(channel, (-0.5, 0.5))
        ax_t.set_ylim(low, high)
        ax_t.set_ylabel(channel.label)
        ax_t.grid(True, alpha=0.3)

        ax_f = axes[row][1]
        block = frame.spectra.get(channel)
        if block is not None and not block.is_empty:
            ax_f.plot(block.frequency, block.magnitude_db, color=color, linewidth=1.0)
            peaks = frame.peaks.get(channel)
            if peaks is not None and peaks.has_peaks:
                ax_f.plot(peaks.frequencies, peaks.magnitudes, "o", color=color, markersize=4)
        ax_f.set_ylabel("dB")
        ax_f.grid(True, alpha=0.3)

    axes[len(CHANNEL_ORDER) - 1][0].set_xlabel("Time [s]")
    axes[len(CHANNEL_ORDER) - 1][1].set_xlabel("Frequency [Hz]")

    if result is not None:
        ax_bode = axes[-1][0]
        for channel, mags in result.analog_magnitudes.items():
            ax_bode.semilogx(result.frequencies, mags, color=CHANNEL_COLORS[int(channel)], label=channel.label)
        if result.magnitude_db.size:
            ax_bode.semilogx(result.frequencies, result.magnitude_db, color=COMBINED_COLOR, label="Combined")
        ax_bode.set_xlabel("Frequency [Hz]")
        ax_bode.set_ylabel("|H| [dB]")
        ax_bode.legend(loc="lower left", fontsize="small")
        ax_bode.grid(True, which="both", alpha=0.3)

        ax_pz = axes[-1][1]
        circle = np.exp(1j * np.linspace(0.0, 2.0 * np.pi, 256))
        ax_pz.plot(circle.real, circle.imag, color="0.6", linewidth=0.8)
        if result.stability is not None and result.stability.poles.size:
            poles = result.stability.poles
            ax_pz.plot(poles.real, poles.imag, "x", color=COMBINED_COLOR)
        if result.zeros.size:
            ax_pz.plot(result.zeros.real, result.zeros.imag, "o", mfc="none", color=COMBINED_COLOR)
        ax_pz.set_aspect("equal", adjustable="datalim")
        ax_pz.set_title(result.status, fontsize="small")
        ax_pz.grid(True, alpha=0.3)

    fig.tight_layout()
    fig.savefig(out_path, dpi=dpi)

    logger.info("Wrote figure to %s", out_path)
    return out_path


__all__ = ["export_figure"]
