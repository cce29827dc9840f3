"""Tests for the spectral-flux and threshold tempo estimators."""

import numpy as np
import pytest

from pulsescope.core.beat import (
    BeatEstimator,
    BeatParams,
    PeakEvent,
    ThresholdBeatEstimator,
    find_peaks,
    interval_to_bpm,
    make_beat_estimator,
    rank_weighted_mean,
)
from pulsescope.core.spectrum import CANONICAL_BANDS, band_energy, bin_range
from pulsescope.io.sources import pulse_train


def _run(estimator, frames):
    return [estimator.estimate(f) for f in frames]


def _valid(bpm):
    return bpm == 0 or 70 <= bpm <= 180


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestBandMath:
    def test_canonical_bin_ranges(self):
        ranges = {b.name: bin_range(b, 2048, 44100) for b in CANONICAL_BANDS}
        assert ranges == {
            "sub_bass": (0, 2),
            "bass": (2, 9),
            "low_mid": (9, 37),
            "mid": (37, 92),
        }

    def test_band_energy_sums_squares_without_overflow(self):
        freq = np.full(16, 255, dtype=np.uint8)
        assert band_energy(freq, (0, 2)) == 2 * 255.0 ** 2

    def test_band_energy_past_frame_end_is_zero(self):
        assert band_energy(np.ones(4, dtype=np.uint8), (10, 20)) == 0.0

    def test_interval_to_bpm(self):
        assert interval_to_bpm(12, 2048, 44100) == pytest.approx(107.666, abs=1e-2)
        assert interval_to_bpm(0, 2048, 44100) == 0.0

    def test_rank_weighted_mean(self):
        assert rank_weighted_mean([3, 1, 2]) == pytest.approx(14 / 6)
        assert rank_weighted_mean([]) == 0.0


class TestFindPeaks:
    def test_strict_local_maximum(self):
        flux = np.zeros(21)
        flux[10] = 5.0
        assert find_peaks(flux, 1.0, 5) == [PeakEvent(position=10, value=5.0)]

    def test_plateau_is_not_a_peak(self):
        flux = np.zeros(21)
        flux[10] = flux[12] = 5.0
        assert find_peaks(flux, 1.0, 5) == []

    def test_margins_are_excluded(self):
        flux = np.zeros(21)
        flux[2] = flux[18] = 5.0
        assert find_peaks(flux, 1.0, 5) == []

    def test_value_must_exceed_threshold(self):
        flux = np.zeros(21)
        flux[10] = 5.0
        assert find_peaks(flux, 5.0, 5) == []


# ---------------------------------------------------------------------------
# Spectral-flux estimator
# ---------------------------------------------------------------------------

class TestBeatEstimator:
    def test_derived_history_sizes(self):
        est = BeatEstimator()
        assert est.history_size == 43
        assert est.threshold_window == 22

    def test_all_zero_frames_give_zero(self, zero_freq_frames):
        est = BeatEstimator()
        assert set(_run(est, zero_freq_frames)) == {0}

    def test_periodic_pulse_recovers_tempo(self, pulse_frames_12):
        est = BeatEstimator()
        results = _run(est, pulse_frames_12)
        true_bpm = interval_to_bpm(12, 2048, 44100)
        assert abs(results[-1] - true_bpm) <= 2
        assert results[-1] == 108

    def test_faster_pulse(self):
        est = BeatEstimator()
        results = _run(est, pulse_train(150, 10))
        assert abs(results[-1] - interval_to_bpm(10, 2048, 44100)) <= 2

    def test_returns_zero_until_enough_candidates(self, pulse_frames_12):
        est = BeatEstimator()
        results = _run(est, pulse_frames_12)
        assert results[0] == 0
        first = next(i for i, bpm in enumerate(results) if bpm)
        # Third candidate lands a few ticks after the second real onset
        assert first > 24
        assert len(est.bpm_history) >= 3

    def test_peaks_follow_pulse_spacing(self, pulse_frames_12):
        est = BeatEstimator()
        _run(est, pulse_frames_12)
        positions = [p.position for p in est.peaks]
        assert len(positions) >= 2
        assert set(np.diff(positions)) == {12}

    def test_slow_pulse_outside_range_is_rejected(self):
        # 22 frames between spikes is ~58.7 BPM, below the accepted range
        est = BeatEstimator()
        frames = pulse_train(100, 22, bins=range(24, 29))
        assert set(_run(est, frames)) == {0}

    def test_silence_after_lock_keeps_last_tempo(self, pulse_frames_12, zero_freq_frames):
        est = BeatEstimator()
        locked = _run(est, pulse_frames_12)[-1]
        assert locked
        assert set(_run(est, zero_freq_frames)) == {locked}

    def test_smoothing_drops_extremes_then_weights_by_rank(self):
        frames = pulse_train(121, 12)
        est = BeatEstimator()
        _run(est, frames[:120])
        est._bpm_history.clear()
        est._bpm_history.extend([80.0, 170.0, 100.0])

        candidate = interval_to_bpm(12, 2048, 44100)  # ~107.67
        bpm = est.estimate(frames[120])

        assert est.bpm_history == pytest.approx((80.0, 170.0, 100.0, candidate))
        # 80 and 170 trimmed; (1 * 100 + 2 * 107.67) / 3 = 105.1
        assert bpm == 105

    def test_history_of_distinct_tempos_is_trimmed(self):
        est = BeatEstimator()
        _run(est, pulse_train(120, 12))
        est._bpm_history.clear()
        est._bpm_history.extend([60.0, 100.0, 110.0, 200.0])
        est.estimate(pulse_train(121, 12)[120])
        expected = rank_weighted_mean([100.0, 107.67, 110.0])
        assert est.bpm == int(np.floor(expected + 0.5))
        assert est.bpm != int(np.floor(rank_weighted_mean(est.bpm_history) + 0.5))

    def test_empty_frame_returns_last_without_state_change(self, pulse_frames_12):
        est = BeatEstimator()
        locked = _run(est, pulse_frames_12)[-1]
        flux_len = len(est.flux_history)
        assert est.estimate(np.zeros(0, dtype=np.uint8)) == locked
        assert len(est.flux_history) == flux_len

    def test_histories_never_exceed_capacity(self):
        est = BeatEstimator()
        rng = np.random.RandomState(1)
        for i, frame in enumerate(pulse_train(500, 11)):
            frame[40:60] = rng.randint(0, 80, size=20)
            est.estimate(frame)
            assert len(est.flux_history) <= est.history_size
            assert len(est.bpm_history) <= 8
            for values in est.energy_history.values():
                assert len(values) <= est.history_size

    def test_output_always_in_range(self):
        est = BeatEstimator()
        rng = np.random.RandomState(0)
        for _ in range(400):
            bpm = est.estimate(rng.randint(0, 256, size=1024).astype(np.uint8))
            assert _valid(bpm)

    def test_first_flux_is_zero(self):
        est = BeatEstimator()
        est.estimate(np.full(1024, 255, dtype=np.uint8))
        assert est.flux_history == (0.0,)

    def test_flux_weights_per_band(self):
        est = BeatEstimator()
        quiet = np.zeros(1024, dtype=np.uint8)
        loud = quiet.copy()
        loud[0] = 10    # sub-bass
        loud[2] = 10    # bass
        loud[9] = 10    # low-mid
        est.estimate(quiet)
        est.estimate(loud)
        assert est.flux_history[-1] == pytest.approx(2.0 * 100 + 1.5 * 100 + 100)

    def test_falling_energy_gives_no_flux(self):
        est = BeatEstimator()
        est.estimate(np.full(1024, 100, dtype=np.uint8))
        est.estimate(np.zeros(1024, dtype=np.uint8))
        assert est.flux_history[-1] == 0.0

    def test_reset_clears_everything(self, pulse_frames_12):
        est = BeatEstimator()
        _run(est, pulse_frames_12)
        est.reset()
        assert est.bpm == 0
        assert est.flux_history == ()
        assert est.bpm_history == ()
        assert all(len(v) == 0 for v in est.energy_history.values())

    def test_instances_do_not_share_state(self, pulse_frames_12):
        a, b = BeatEstimator(), BeatEstimator()
        _run(a, pulse_frames_12)
        assert b.flux_history == ()
        assert b.estimate(np.zeros(1024, dtype=np.uint8)) == 0

    def test_custom_range(self, pulse_frames_12):
        est = BeatEstimator(params=BeatParams(min_bpm=120, max_bpm=200))
        assert set(_run(est, pulse_frames_12)) == {0}


# ---------------------------------------------------------------------------
# Threshold strategy
# ---------------------------------------------------------------------------

class TestThresholdBeatEstimator:
    def test_mean_bin_spacing(self):
        frame = np.zeros(1024, dtype=np.uint8)
        frame[[0, 12, 24]] = 255
        assert ThresholdBeatEstimator().estimate(frame) == 108

    def test_clamped_into_range(self):
        frame = np.zeros(1024, dtype=np.uint8)
        frame[[0, 1, 2]] = 255
        assert ThresholdBeatEstimator().estimate(frame) == 180

    def test_fewer_than_two_peaks(self):
        frame = np.zeros(1024, dtype=np.uint8)
        frame[5] = 255
        assert ThresholdBeatEstimator().estimate(frame) == 0

    def test_threshold_is_exclusive(self):
        frame = np.zeros(1024, dtype=np.uint8)
        frame[[0, 12]] = 200
        assert ThresholdBeatEstimator().estimate(frame) == 0


class TestFactory:
    def test_known_strategies(self):
        assert isinstance(make_beat_estimator("flux"), BeatEstimator)
        assert isinstance(make_beat_estimator("threshold"), ThresholdBeatEstimator)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown BPM strategy"):
            make_beat_estimator("autocorrelation")
