"""
Debounced linear-systems analysis of the combined channel model.

:func:`run_analysis` is the pure pipeline: analog Bode magnitudes per
channel, the weighted combined discrete system, its stability, frequency
response and zeros. :class:`AnalysisWorker` reruns it on a background thread
once engine changes have settled, cancelling any older run; only the newest
run may publish its result.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike

from ..analysis.linalg import SingularMatrixError
from ..analysis.stability import (
    CombinedStability,
    check_discrete_stability,
    format_magnitude,
    frequency_response,
    magnitude_db,
    phase_deg,
    validate_combined_response,
)
from ..analysis.statespace import StateSpaceSystem, state_space_zeros
from ..analysis.transforms import (
    TransferFunction,
    analog_magnitude_db,
    build_combined_discrete,
    normalize_weights,
    weights_for,
)
from ..config.runtime import bode_frequencies
from .models import Channel
from .signal_engine import SignalEngine

logger = logging.getLogger(__name__)

ResultCallback = Callable[["AnalysisResult"], None]

_EMPTY = np.zeros(0)


class AnalysisCancelled(Exception):
    """Raised inside a run whose cancel event was set."""


def _check(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise AnalysisCancelled()


@dataclass(frozen=True)
class AnalysisResult:
    """One completed analysis pass; ``system`` is None when no combined model exists."""

    transfers: Tuple[TransferFunction, ...]
    frequencies: np.ndarray
    analog_magnitudes: Dict[Channel, np.ndarray]
    weights: Tuple[float, ...]
    system: Optional[StateSpaceSystem]
    stability: Optional[CombinedStability]
    magnitude_db: np.ndarray = field(default_factory=lambda: _EMPTY.copy())
    phase_deg: np.ndarray = field(default_factory=lambda: _EMPTY.copy())
    zeros: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.complex128))
    status: str = ""
    validation: str = ""

    @property
    def is_available(self) -> bool:
        return self.system is not None

    @property
    def is_stable(self) -> bool:
        return self.stability is not None and self.stability.is_stable


def run_analysis(
    transfers: Sequence[TransferFunction],
    sample_rate: float,
    frequencies: ArrayLike,
    weights: Mapping[Channel, float] | Sequence[float] | None = None,
    method: str = "zoh",
    cancel_event: threading.Event | None = None,
    *,
    normalize: bool = True,
) -> AnalysisResult:
    """
    Analyse ``transfers`` combined with ``weights``.

    ``cancel_event`` is polled between steps; when set the run raises
    :class:`AnalysisCancelled` and produces nothing. A singular matrix in
    discretization or the frequency response degrades the result to an
    "Analysis unavailable" status instead of raising.
    """
    freqs = np.asarray(frequencies, dtype=np.float64).reshape(-1)
    transfers = tuple(transfers)

    _check(cancel_event)
    analog = {tf.channel: analog_magnitude_db(tf, freqs) for tf in transfers}

    _check(cancel_event)
    aligned = weights_for(transfers, weights)
    if normalize:
        aligned = normalize_weights(aligned)
    weight_tuple = tuple(aligned)

    def degraded(exc: Exception, system: Optional[StateSpaceSystem] = None, stability=None) -> AnalysisResult:
        logger.warning("Combined analysis unavailable: %s", exc)
        return AnalysisResult(
            transfers,
            freqs,
            analog,
            weight_tuple,
            system,
            stability,
            status=f"Analysis unavailable: {exc}",
        )

    try:
        system = build_combined_discrete(transfers, aligned, sample_rate, method)
    except SingularMatrixError as exc:
        return degraded(exc)

    if system is None:
        return AnalysisResult(
            transfers,
            freqs,
            analog,
            weight_tuple,
            None,
            None,
            status="Combined response unavailable (weights produced zero gain).",
        )

    _check(cancel_event)
    stability = check_discrete_stability(system.A)
    if not stability.is_stable:
        return AnalysisResult(
            transfers,
            freqs,
            analog,
            weight_tuple,
            system,
            stability,
            status=f"Combined model is UNSTABLE (|λ|max = {format_magnitude(stability.max_magnitude)})",
        )

    _check(cancel_event)
    try:
        response = frequency_response(system, sample_rate, freqs)
    except SingularMatrixError as exc:
        return degraded(exc, system, stability)
    mags = magnitude_db(response)
    phases = phase_deg(response)

    _check(cancel_event)
    zeros = state_space_zeros(system)

    _check(cancel_event)
    try:
        validation = validate_combined_response(system, sample_rate, freqs, mags, phases)
    except (ValueError, ArithmeticError) as exc:
        logger.debug("Response cross-check failed: %s", exc)
        validation = "Combined response check failed."

    status = f"Stable (max |λ| = {format_magnitude(stability.max_magnitude)})"
    if validation:
        status = f"{status} | {validation}"

    return AnalysisResult(
        transfers,
        freqs,
        analog,
        weight_tuple,
        system,
        stability,
        magnitude_db=mags,
        phase_deg=phases,
        zeros=zeros,
        status=status,
        validation=validation,
    )


class AnalysisWorker:
    """
    Debounces engine changes and runs :func:`run_analysis` in the background.

    Each engine notification restarts a ``threading.Timer``; when it fires a
    new analysis thread starts and the previous one is cancelled. A run only
    commits to :attr:`latest` (and calls ``on_result``) if it is still the
    newest run when it finishes.
    """

    def __init__(
        self,
        engine: SignalEngine,
        settle_seconds: float | None = None,
        *,
        frequencies: ArrayLike | None = None,
        method: str | None = None,
        on_result: ResultCallback | None = None,
        auto_attach: bool = True,
    ) -> None:
        cfg = engine.config
        self._engine = engine
        self._settle = cfg.analysis_settle_s if settle_seconds is None else max(0.0, float(settle_seconds))
        self._frequencies = (
            bode_frequencies(cfg) if frequencies is None else np.asarray(frequencies, dtype=np.float64)
        )
        self._method = method or cfg.discretization
        self._on_result = on_result

        self._lock = threading.Lock()
        # serializes on_result so callbacks arrive in generation order
        self._deliver_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._cancel: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._latest: Optional[AnalysisResult] = None
        self._committed = threading.Event()
        self._attached = False
        self._closed = False

        if auto_attach:
            self.attach()

    @property
    def latest(self) -> Optional[AnalysisResult]:
        with self._lock:
            return self._latest

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def attach(self) -> None:
        if not self._attached:
            self._engine.add_listener(self._on_engine_changed)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._engine.remove_listener(self._on_engine_changed)
            self._attached = False

    def _on_engine_changed(self, channel: Channel) -> None:
        self.schedule()

    def schedule(self) -> None:
        """Restart the settle timer."""
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._settle, self.run_now)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def run_now(self) -> Optional[threading.Thread]:
        """Cancel any in-flight run and start a new one immediately.

        Returns None once the worker is closed.
        """
        with self._lock:
            if self._closed:
                return None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._cancel is not None:
                self._cancel.set()
            self._generation += 1
            generation = self._generation
            cancel = threading.Event()
            self._cancel = cancel
            self._committed.clear()
            thread = threading.Thread(
                target=self._run,
                args=(generation, cancel),
                name=f"SenseSimAnalysis-{generation}",
                daemon=True,
            )
            self._thread = thread
        thread.start()
        return thread

    def _run(self, generation: int, cancel: threading.Event) -> None:
        try:
            transfers = self._engine.get_transfer_functions_snapshot()
            store = self._engine.store
            result = run_analysis(
                transfers,
                self._engine.sample_rate,
                self._frequencies,
                store.weights,
                self._method,
                cancel,
                normalize=store.normalize_weights,
            )
        except AnalysisCancelled:
            logger.debug("Analysis run %d cancelled", generation)
            return
        except Exception:
            logger.exception("Analysis run %d failed", generation)
            return

        with self._lock:
            if generation != self._generation or cancel.is_set():
                logger.debug("Discarding stale analysis run %d", generation)
                return
            self._latest = result
            self._committed.set()
        if self._on_result is None:
            return
        with self._deliver_lock:
            with self._lock:
                if generation != self._generation:
                    logger.debug("Skipping callback for superseded run %d", generation)
                    return
            self._on_result(result)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the newest run has committed a result."""
        return self._committed.wait(timeout)

    def close(self) -> None:
        self.detach()
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._cancel is not None:
                self._cancel.set()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)


def summarize(result: AnalysisResult) -> List[str]:
    """Human-readable lines describing ``result``."""
    lines = [result.status]
    for tf in result.transfers:
        poles = ", ".join(f"{p.real:.3f}{p.imag:+.3f}j" for p in tf.digital_poles) or "-"
        lines.append(f"{tf.channel.label}: {tf.name}, digital poles [{poles}]")
    if result.is_available and result.zeros.size:
        zeros = ", ".join(f"{z.real:.3f}{z.imag:+.3f}j" for z in result.zeros)
        lines.append(f"Combined zeros [{zeros}]")
    return lines


__all__ = [
    "AnalysisCancelled",
    "AnalysisResult",
    "AnalysisWorker",
    "run_analysis",
    "summarize",
]
