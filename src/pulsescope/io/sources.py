"""
Frame sources: where the pipeline gets its snapshots from.

A frame source hands out the *current* time-domain and frequency-domain
byte snapshots on demand.  The live microphone backend lives in
:mod:`pulsescope.io.microphone`; :class:`ScriptedFrameSource` replays
prepared frames for tests, the demo mode and benchmarks.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from pulsescope.core.spectrum import DEFAULT_FFT_SIZE, DEFAULT_SAMPLE_RATE, as_byte_frame


class CaptureError(RuntimeError):
    """Audio capture could not be started (consent denied, no input device, driver error)."""


EMPTY_FRAME = np.zeros(0, dtype=np.uint8)


class FrameSource(ABC):
    """
    Capability the pipeline reads audio snapshots from.

    ``time_frame()`` and ``freq_frame()`` return empty arrays until
    ``open()`` succeeds.  ``close()`` must be safe to call repeatedly.
    """

    fft_size: int = DEFAULT_FFT_SIZE
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @abstractmethod
    def open(self) -> None:
        """Start capturing.  Raises CaptureError on failure."""

    @abstractmethod
    def time_frame(self) -> np.ndarray:
        """Latest time-domain snapshot (uint8, silence at 128)."""

    @abstractmethod
    def freq_frame(self) -> np.ndarray:
        """Latest frequency-domain snapshot (uint8 magnitude per bin)."""

    @abstractmethod
    def close(self) -> None:
        """Release capture resources."""

    @property
    def is_open(self) -> bool:
        return False


class ScriptedFrameSource(FrameSource):
    """
    Replays scripted frames, one per call.

    When a script runs out the last frame is held (or the script wraps
    around with ``loop=True``).  ``open_error`` makes ``open()`` fail,
    simulating a denied permission prompt or a missing device.
    """

    def __init__(
        self,
        time_frames: Optional[Sequence] = None,
        freq_frames: Optional[Sequence] = None,
        loop: bool = False,
        open_error: Optional[CaptureError] = None,
        fft_size: int = DEFAULT_FFT_SIZE,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
    ):
        self.fft_size = fft_size
        self.sample_rate = sample_rate
        self.loop = loop
        self.open_error = open_error
        self._time_frames = [as_byte_frame(f) for f in (time_frames or [])]
        self._freq_frames = [as_byte_frame(f) for f in (freq_frames or [])]
        self._time_pos = 0
        self._freq_pos = 0
        self._open = False
        self.open_calls = 0
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._open = True
        self._time_pos = 0
        self._freq_pos = 0

    def close(self) -> None:
        self.close_calls += 1
        self._open = False

    def _next(self, frames: list, pos: int) -> tuple[np.ndarray, int]:
        if not self._open or not frames:
            return EMPTY_FRAME, pos
        if pos >= len(frames):
            pos = pos % len(frames) if self.loop else len(frames) - 1
        return frames[pos].copy(), pos + 1

    def time_frame(self) -> np.ndarray:
        frame, self._time_pos = self._next(self._time_frames, self._time_pos)
        return frame

    def freq_frame(self) -> np.ndarray:
        frame, self._freq_pos = self._next(self._freq_frames, self._freq_pos)
        return frame


# ---------------------------------------------------------------------------
# Synthetic frame builders
# ---------------------------------------------------------------------------

def silent_time_frames(n_frames: int, length: int = DEFAULT_FFT_SIZE // 2) -> list[np.ndarray]:
    """Time-domain frames of pure silence (all 128)."""
    return [np.full(length, 128, dtype=np.uint8) for _ in range(n_frames)]


def pulse_train(
    n_frames: int,
    interval: int,
    bins: Sequence[int] = (0, 1),
    peak: int = 255,
    baseline: int = 10,
    length: int = DEFAULT_FFT_SIZE // 2,
    offset: int = 0,
) -> list[np.ndarray]:
    """
    FreqFrames with a periodic spike.

    Every ``interval``-th frame (starting at ``offset``) sets ``bins`` to
    ``peak``; all other bins, and every bin of the other frames, sit at
    ``baseline``.

    Args:
        n_frames: Number of frames to build.
        interval: Frames between spikes.
        bins: Spiking bin indices (default: the sub-bass bins at 2048/44.1k).
        peak: Spike magnitude.
        baseline: Magnitude everywhere else.
        length: Bins per frame.
        offset: Index of the first spiking frame.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive: {interval}")
    frames = []
    for i in range(n_frames):
        frame = np.full(length, baseline, dtype=np.uint8)
        if i >= offset and (i - offset) % interval == 0:
            frame[list(bins)] = peak
        frames.append(frame)
    return frames


def tempo_to_interval(bpm: float, fft_size: int = DEFAULT_FFT_SIZE, sample_rate: int = DEFAULT_SAMPLE_RATE) -> int:
    """Nearest whole number of analysis frames between beats at ``bpm``."""
    if bpm <= 0:
        raise ValueError(f"bpm must be positive: {bpm}")
    return max(1, int(round(60.0 * sample_rate / (bpm * fft_size))))


def demo_source(
    bpm: float = 120.0,
    n_frames: int = 2048,
    fft_size: int = DEFAULT_FFT_SIZE,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
) -> ScriptedFrameSource:
    """
    Looping synthetic source: a kick-like pulse at ``bpm`` and a steady A.

    The time-domain script is a decaying 110 Hz tone restarted on each
    pulse so the waveform view has something to draw.
    """
    interval = tempo_to_interval(bpm, fft_size, sample_rate)
    length = fft_size // 2
    freq_frames = pulse_train(n_frames, interval, bins=(0, 1, 2, 3), length=length)
    # Pitch class A: bin 9 modulo 12, held a bit above the baseline
    for frame in freq_frames:
        frame[21] = max(frame[21], 200)

    t = np.arange(length) / sample_rate
    tone = np.sin(2 * np.pi * 110.0 * t)
    time_frames = []
    for i in range(n_frames):
        decay = np.exp(-(i % interval) / max(interval / 3.0, 1.0))
        samples = 128 + 100 * decay * tone
        time_frames.append(np.clip(samples, 0, 255).astype(np.uint8))

    return ScriptedFrameSource(
        time_frames=time_frames,
        freq_frames=freq_frames,
        loop=True,
        fft_size=fft_size,
        sample_rate=sample_rate,
    )
