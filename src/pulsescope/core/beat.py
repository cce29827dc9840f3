"""
Tempo estimation from successive frequency-domain snapshots.

The default :class:`BeatEstimator` tracks spectral flux over four
low/mid bands, picks onset peaks against an adaptive threshold and
smooths the resulting tempo candidates.  :class:`ThresholdBeatEstimator`
keeps the earlier single-frame heuristic available behind the same
interface.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from pulsescope.core.spectrum import (
    CANONICAL_BANDS,
    DEFAULT_FFT_SIZE,
    DEFAULT_SAMPLE_RATE,
    FrequencyBand,
    as_byte_frame,
    band_energy,
    bin_range,
    round_half_up,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakEvent:
    """An onset peak: index into the flux history and its flux value."""

    position: int
    value: float


@dataclass
class BeatParams:
    """Tuning for the spectral-flux beat estimator."""

    bands: tuple = CANONICAL_BANDS
    # Bands missing here weigh 1.0
    band_weights: dict = field(default_factory=lambda: {"sub_bass": 2.0, "bass": 1.5})
    # Flux/energy capacity; None means ~2 s of analysis frames
    history_size: Optional[int] = None
    # Adaptive threshold window; None means ~1 s of analysis frames
    threshold_window: Optional[int] = None
    threshold_k: float = 0.8
    peak_window: int = 5
    min_bpm: float = 70.0
    max_bpm: float = 180.0
    bpm_history_size: int = 8
    min_valid_bpm_count: int = 3


def interval_to_bpm(interval: float, fft_size: int, sample_rate: int) -> float:
    """
    Convert a distance in analysis frames to beats per minute.

    One analysis frame spans ``fft_size / sample_rate`` seconds.
    """
    if interval <= 0:
        return 0.0
    return 60.0 / (interval * (fft_size / sample_rate))


def rank_weighted_mean(values) -> float:
    """Weighted mean of sorted ``values`` where the k-th smallest weighs k."""
    ordered = np.sort(np.asarray(values, dtype=np.float64))
    if len(ordered) == 0:
        return 0.0
    weights = np.arange(1, len(ordered) + 1, dtype=np.float64)
    return float(np.sum(ordered * weights) / np.sum(weights))


def find_peaks(
    flux: np.ndarray,
    threshold: float,
    window: int,
) -> list[PeakEvent]:
    """
    Strict local maxima above ``threshold``.

    Indices within ``window`` of either end are never peaks; a peak must
    be greater than every other value within ``window`` samples of it.
    """
    peaks = []
    n = len(flux)
    for i in range(window, n - window):
        value = flux[i]
        if value <= threshold:
            continue
        neighbours = np.concatenate([flux[i - window:i], flux[i + 1:i + window + 1]])
        if np.all(neighbours < value):
            peaks.append(PeakEvent(position=i, value=float(value)))
    return peaks


class BeatEstimator:
    """
    Multiband spectral-flux tempo estimator.

    Call :meth:`estimate` once per analysis tick with the current
    FreqFrame.  Returns an integer BPM in ``[min_bpm, max_bpm]`` or 0
    while no tempo has been accepted yet.
    """

    strategy = "flux"

    def __init__(
        self,
        fft_size: int = DEFAULT_FFT_SIZE,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        params: Optional[BeatParams] = None,
    ):
        """
        Initialize the estimator.

        Args:
            fft_size: Transform size of the incoming spectra.
            sample_rate: Sample rate the spectra were computed at.
            params: Tuning parameters (defaults: BeatParams()).
        """
        self.fft_size = fft_size
        self.sample_rate = sample_rate
        self.params = params or BeatParams()

        frames_per_second = sample_rate / fft_size
        self.history_size = self.params.history_size or max(
            1, int(round_half_up(2.0 * frames_per_second))
        )
        self.threshold_window = self.params.threshold_window or max(
            1, int(round_half_up(frames_per_second))
        )

        self._band_bins = {
            band.name: bin_range(band, fft_size, sample_rate) for band in self.params.bands
        }
        self._energy: dict[str, deque] = {}
        self._flux: deque = deque(maxlen=self.history_size)
        self._bpm_history: deque = deque(maxlen=self.params.bpm_history_size)
        self._peaks: list[PeakEvent] = []
        self.bpm = 0
        self.reset()

    def reset(self) -> None:
        """Clear every history; the next call starts cold."""
        self._energy = {
            band.name: deque(maxlen=self.history_size) for band in self.params.bands
        }
        self._flux.clear()
        self._bpm_history.clear()
        self._peaks = []
        self.bpm = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def flux_history(self) -> tuple:
        return tuple(self._flux)

    @property
    def bpm_history(self) -> tuple:
        return tuple(self._bpm_history)

    @property
    def energy_history(self) -> dict[str, tuple]:
        return {name: tuple(values) for name, values in self._energy.items()}

    @property
    def peaks(self) -> list[PeakEvent]:
        """Peaks found on the most recent call."""
        return list(self._peaks)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _weight(self, band: FrequencyBand) -> float:
        return float(self.params.band_weights.get(band.name, 1.0))

    def _update_flux(self, freq: np.ndarray) -> float:
        """Push band energies and return the weighted positive flux."""
        total_flux = 0.0
        for band in self.params.bands:
            energy = band_energy(freq, self._band_bins[band.name])
            history = self._energy[band.name]
            if history:
                total_flux += self._weight(band) * max(0.0, energy - history[-1])
            history.append(energy)

        self._flux.append(total_flux)
        return total_flux

    def _threshold(self, flux: np.ndarray) -> float:
        recent = flux[-self.threshold_window:]
        return float(np.mean(recent) + self.params.threshold_k * np.std(recent))

    def _candidates(self, peaks: list[PeakEvent]) -> list[float]:
        p = self.params
        candidates = []
        for prev, cur in zip(peaks, peaks[1:]):
            bpm = interval_to_bpm(cur.position - prev.position, self.fft_size, self.sample_rate)
            if p.min_bpm <= bpm <= p.max_bpm:
                candidates.append(bpm)
        return candidates

    def estimate(self, freq) -> int:
        """
        Consume one FreqFrame and return the current tempo estimate.

        Args:
            freq: Byte magnitudes per FFT bin.

        Returns:
            Smoothed BPM, or the last accepted BPM (0 if none) when the
            history does not yet support a new estimate.
        """
        frame = as_byte_frame(freq)
        if len(frame) == 0:
            return self.bpm

        self._update_flux(frame)

        flux = np.fromiter(self._flux, dtype=np.float64, count=len(self._flux))
        threshold = self._threshold(flux)
        self._peaks = find_peaks(flux, threshold, self.params.peak_window)
        if len(self._peaks) < 2:
            return self.bpm

        candidates = self._candidates(self._peaks)
        if not candidates:
            return self.bpm

        self._bpm_history.append(float(np.median(candidates)))
        if len(self._bpm_history) < self.params.min_valid_bpm_count:
            return self.bpm

        trimmed = sorted(self._bpm_history)[1:-1]
        bpm = int(round_half_up(rank_weighted_mean(trimmed)))
        if bpm != self.bpm:
            logger.debug("Tempo estimate %d -> %d BPM", self.bpm, bpm)
        self.bpm = bpm
        return self.bpm


class ThresholdBeatEstimator:
    """
    Single-frame global-threshold tempo heuristic.

    Treats spectrum bins above ``threshold`` as peaks and converts the
    mean bin spacing between them with the same interval formula as the
    flux estimator.  Kept as an alternate strategy; it does not look at
    onsets over time.
    """

    strategy = "threshold"

    def __init__(
        self,
        fft_size: int = DEFAULT_FFT_SIZE,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        params: Optional[BeatParams] = None,
        threshold: int = 200,
    ):
        self.fft_size = fft_size
        self.sample_rate = sample_rate
        self.params = params or BeatParams()
        self.threshold = threshold
        self.bpm = 0

    def reset(self) -> None:
        self.bpm = 0

    def estimate(self, freq) -> int:
        frame = as_byte_frame(freq)
        if len(frame) == 0:
            return self.bpm

        peaks = np.flatnonzero(frame > self.threshold)
        if len(peaks) < 2:
            self.bpm = 0
            return self.bpm

        mean_interval = float(np.mean(np.diff(peaks)))
        bpm = round_half_up(interval_to_bpm(mean_interval, self.fft_size, self.sample_rate))
        self.bpm = int(np.clip(bpm, self.params.min_bpm, self.params.max_bpm))
        return self.bpm


BEAT_STRATEGIES = {
    BeatEstimator.strategy: BeatEstimator,
    ThresholdBeatEstimator.strategy: ThresholdBeatEstimator,
}


def make_beat_estimator(
    strategy: str = "flux",
    fft_size: int = DEFAULT_FFT_SIZE,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    params: Optional[BeatParams] = None,
):
    """
    Build a beat estimator by strategy name.

    Raises:
        ValueError: If ``strategy`` is not one of BEAT_STRATEGIES.
    """
    try:
        cls = BEAT_STRATEGIES[strategy]
    except KeyError:
        raise ValueError(
            f"Unknown BPM strategy '{strategy}' (choose from {sorted(BEAT_STRATEGIES)})"
        ) from None
    return cls(fft_size=fft_size, sample_rate=sample_rate, params=params)
