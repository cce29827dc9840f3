"""
Frequency-band helpers shared by the estimators.

Maps band edges in Hz onto FFT bin ranges of the byte spectra delivered by a
frame source, and sums band energy over those ranges.
"""

from dataclasses import dataclass

import numpy as np


DEFAULT_FFT_SIZE = 2048
DEFAULT_SAMPLE_RATE = 44100

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


@dataclass(frozen=True)
class FrequencyBand:
    """A named frequency range, start inclusive and end exclusive."""

    name: str
    start_hz: float
    end_hz: float


CANONICAL_BANDS = (
    FrequencyBand("sub_bass", 20.0, 60.0),
    FrequencyBand("bass", 60.0, 200.0),
    FrequencyBand("low_mid", 200.0, 800.0),
    FrequencyBand("mid", 800.0, 2000.0),
)


def bin_range(band: FrequencyBand, fft_size: int, sample_rate: int) -> tuple[int, int]:
    """
    Convert a band to a half-open bin range.

    Args:
        band: Frequency band in Hz.
        fft_size: Transform size of the source spectra.
        sample_rate: Sample rate of the captured audio.

    Returns:
        Tuple of (first_bin, end_bin), end exclusive.
    """
    start = int(np.floor(band.start_hz * fft_size / sample_rate))
    end = int(np.floor(band.end_hz * fft_size / sample_rate))
    return start, end


def band_energy(freq: np.ndarray, bins: tuple[int, int]) -> float:
    """Sum of squared magnitudes over a bin range (0.0 where the frame is shorter)."""
    start, end = bins
    segment = np.asarray(freq[start:end], dtype=np.float64)
    return float(np.sum(segment * segment))


def as_byte_frame(frame) -> np.ndarray:
    """Coerce a frame to a 1-D uint8 array, clipping out-of-range values."""
    arr = np.asarray(frame)
    if arr.dtype == np.uint8:
        return arr.reshape(-1)
    return np.clip(arr, 0, 255).astype(np.uint8).reshape(-1)


def round_half_up(values):
    """Round to the nearest integer with halves going up."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)
