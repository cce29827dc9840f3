"""Shared fixtures: scripted frames and a controllable clock."""

import numpy as np
import pytest

from pulsescope.io.sources import ScriptedFrameSource, pulse_train, silent_time_frames

FRAME_LEN = 1024


class FakeClock:
    """Monotonic clock that advances by ``step`` seconds on every read.

    The default step (1/64 s) is exact in binary, so gate boundaries land
    exactly on a tick.
    """

    def __init__(self, start: float = 0.0, step: float = 1.0 / 64.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        t = self.now
        self.now += self.step
        return t

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def zero_freq_frames():
    return [np.zeros(FRAME_LEN, dtype=np.uint8) for _ in range(200)]


@pytest.fixture
def pulse_frames_12():
    """Sub-bass pulse every 12 frames (~107.7 BPM at 2048 / 44.1 kHz)."""
    return pulse_train(120, 12)


@pytest.fixture
def keyed_pulse_frames():
    """Pulse every 12 frames with bin 21 (pitch class A) always strongest."""
    frames = pulse_train(150, 12, peak=250)
    for frame in frames:
        frame[21] = 255
    return frames


@pytest.fixture
def silent_source(zero_freq_frames):
    return ScriptedFrameSource(
        time_frames=silent_time_frames(len(zero_freq_frames)),
        freq_frames=zero_freq_frames,
    )
