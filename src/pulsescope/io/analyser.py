"""
Byte-frame conversion for captured audio.

Mirrors what a browser AnalyserNode hands out: time-domain bytes centred
on 128 and spectrum bytes from a Blackman-windowed FFT whose magnitudes
are smoothed across reads and mapped from a fixed decibel range onto
0..255.
"""

import librosa
import numpy as np
from scipy import fft as scipy_fft
from scipy import signal as scipy_signal

from pulsescope.core.spectrum import DEFAULT_FFT_SIZE


class SpectrumAnalyser:
    """
    Turns a window of float samples into byte frames.

    Args:
        fft_size: Window / transform size.
        smoothing_time_constant: Weight of the previous magnitudes (0 disables smoothing).
        min_decibels: Level mapped to byte 0.
        max_decibels: Level mapped to byte 255.
    """

    def __init__(
        self,
        fft_size: int = DEFAULT_FFT_SIZE,
        smoothing_time_constant: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        if max_decibels <= min_decibels:
            raise ValueError("max_decibels must be above min_decibels")
        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = scipy_signal.get_window("blackman", fft_size)
        self._magnitudes = np.zeros(fft_size // 2, dtype=np.float64)

    def reset(self) -> None:
        self._magnitudes[:] = 0.0

    @staticmethod
    def time_bytes(samples: np.ndarray) -> np.ndarray:
        """Map [-1, 1] floats to bytes centred on 128."""
        scaled = np.floor(128.0 * (1.0 + np.asarray(samples, dtype=np.float64)))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def freq_bytes(self, samples: np.ndarray) -> np.ndarray:
        """
        Byte magnitudes for the first ``fft_size / 2`` bins of ``samples``.

        Updates the smoothed magnitudes, so successive calls on the same
        window still move towards it.
        """
        window = np.asarray(samples, dtype=np.float64)
        if len(window) != self.fft_size:
            raise ValueError(f"expected {self.fft_size} samples, got {len(window)}")

        spectrum = scipy_fft.rfft(window * self._window)[: self.fft_size // 2]
        magnitudes = np.abs(spectrum) / self.fft_size

        tau = self.smoothing_time_constant
        self._magnitudes = tau * self._magnitudes + (1.0 - tau) * magnitudes

        db = librosa.amplitude_to_db(self._magnitudes, ref=1.0, amin=1e-10, top_db=None)
        span = self.max_decibels - self.min_decibels
        scaled = np.floor(255.0 / span * (db - self.min_decibels))
        return np.clip(scaled, 0, 255).astype(np.uint8)


