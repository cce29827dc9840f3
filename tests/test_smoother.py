"""Tests for the display waveform smoother."""

import numpy as np
import pytest

from pulsescope.core.smoother import SmoothingParams, WaveformSmoother


def test_output_length_and_range_match_input():
    rng = np.random.RandomState(0)
    smoother = WaveformSmoother()
    for length in (1, 2, 3, 17, 1024):
        smoother.reset()
        for _ in range(5):
            raw = rng.randint(0, 256, size=length).astype(np.uint8)
            out = smoother.smooth(raw)
            assert out.dtype == np.uint8
            assert len(out) == length


def test_silence_is_a_fixed_point():
    smoother = WaveformSmoother()
    silence = np.full(1024, 128, dtype=np.uint8)
    for _ in range(5):
        out = smoother.smooth(silence)
        assert np.all(out == 128)


def test_constant_input_converges():
    smoother = WaveformSmoother()
    smoother.smooth(np.zeros(64, dtype=np.uint8))
    target = np.full(64, 200, dtype=np.uint8)
    for _ in range(20):
        out = smoother.smooth(target)
    assert np.all(out == 200)


def test_first_call_applies_neighbour_filter():
    # y1 = .25*0 + .5*100 + .25*0 = 50
    # y2 = .25*50 + .5*0 + .25*100 = 37.5 -> 38 (halves round up)
    smoother = WaveformSmoother()
    out = smoother.smooth(np.array([0, 100, 0, 100], dtype=np.uint8))
    assert out.tolist() == [0, 50, 38, 100]


def test_second_call_blends_with_previous_state():
    smoother = WaveformSmoother()
    smoother.smooth(np.array([0, 100, 0, 100], dtype=np.uint8))
    out = smoother.smooth(np.full(4, 100, dtype=np.uint8))
    # blended = [80, 90, 87.5, 100]
    # y1 = .25*80 + .5*90 + .25*100 = 90
    # y2 = .25*90 + .5*87.5 + .25*100 = 91.25
    assert out.tolist() == [80, 90, 91, 100]
    np.testing.assert_allclose(smoother.previous, [80.0, 90.0, 91.25, 100.0])


def test_left_neighbour_is_smoothed_right_neighbour_is_raw():
    # A symmetric filter over the blended frame would give 25 at index 2;
    # the recursive left tap gives 0.25 * 50 = 12.5 -> 13.
    smoother = WaveformSmoother()
    out = smoother.smooth(np.array([0, 100, 0, 0], dtype=np.uint8))
    assert out.tolist() == [0, 50, 13, 0]


def test_edges_are_only_blended():
    smoother = WaveformSmoother()
    smoother.smooth(np.array([0, 0, 0], dtype=np.uint8))
    out = smoother.smooth(np.array([255, 0, 255], dtype=np.uint8))
    assert out[0] == 204  # 0.8 * 255
    assert out[-1] == 204


def test_empty_frame_passes_through_without_touching_state():
    smoother = WaveformSmoother()
    smoother.smooth(np.full(8, 50, dtype=np.uint8))
    before = smoother.previous.copy()
    out = smoother.smooth(np.zeros(0, dtype=np.uint8))
    assert len(out) == 0
    np.testing.assert_array_equal(smoother.previous, before)


def test_length_change_reinitialises_state():
    smoother = WaveformSmoother()
    smoother.smooth(np.zeros(8, dtype=np.uint8))
    out = smoother.smooth(np.full(4, 128, dtype=np.uint8))
    assert out.tolist() == [128, 128, 128, 128]


def test_reset_discards_previous():
    smoother = WaveformSmoother()
    smoother.smooth(np.zeros(8, dtype=np.uint8))
    smoother.reset()
    assert smoother.previous is None
    out = smoother.smooth(np.full(8, 128, dtype=np.uint8))
    assert np.all(out == 128)


def test_invalid_alpha_rejected():
    with pytest.raises(ValueError):
        WaveformSmoother(SmoothingParams(alpha=0.0))
