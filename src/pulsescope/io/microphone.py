"""
Microphone frame source.

Captures mono audio with sounddevice into a ring buffer of ``fft_size``
samples; each read converts the current window into byte snapshots with
a :class:`~pulsescope.io.analyser.SpectrumAnalyser`.
"""

import logging
import threading
from typing import Optional, Union

import numpy as np
import sounddevice as sd

from pulsescope.core.spectrum import DEFAULT_FFT_SIZE, DEFAULT_SAMPLE_RATE
from pulsescope.io.analyser import SpectrumAnalyser
from pulsescope.io.sources import EMPTY_FRAME, CaptureError, FrameSource

logger = logging.getLogger(__name__)


class MicrophoneFrameSource(FrameSource):
    """
    Live capture from an input device.

    Args:
        device: sounddevice device index or name (None = system default).
        fft_size: Analysis window; frames hold ``fft_size // 2`` values.
        sample_rate: Capture rate in Hz.
        smoothing_time_constant: Spectrum smoothing across reads.
        min_decibels: Level mapped to byte 0.
        max_decibels: Level mapped to byte 255.
    """

    def __init__(
        self,
        device: Optional[Union[int, str]] = None,
        fft_size: int = DEFAULT_FFT_SIZE,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        smoothing_time_constant: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        self.device = device
        self.fft_size = fft_size
        self.sample_rate = sample_rate
        self.analyser = SpectrumAnalyser(
            fft_size=fft_size,
            smoothing_time_constant=smoothing_time_constant,
            min_decibels=min_decibels,
            max_decibels=max_decibels,
        )
        self._buffer = np.zeros(fft_size, dtype=np.float32)
        self._lock = threading.Lock()
        self._stream: Optional[sd.InputStream] = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _callback(self, indata, frames, time_info, status) -> None:
        """Audio driver callback: append the newest samples to the ring buffer."""
        if status:
            logger.warning(f"Audio input status: {status}")
        samples = indata[:, 0]
        with self._lock:
            if len(samples) >= self.fft_size:
                self._buffer[:] = samples[-self.fft_size:]
            else:
                self._buffer = np.roll(self._buffer, -len(samples))
                self._buffer[-len(samples):] = samples

    def open(self) -> None:
        """
        Open and start the input stream.

        Raises:
            CaptureError: If no input device is available or the driver refuses the settings.
        """
        if self._stream is not None:
            return
        stream = None
        try:
            sd.check_input_settings(device=self.device, channels=1, samplerate=self.sample_rate)
            stream = sd.InputStream(
                device=self.device,
                channels=1,
                samplerate=self.sample_rate,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            if stream is not None:
                try:
                    stream.close()
                except sd.PortAudioError as close_exc:
                    logger.warning(f"Error while closing audio input: {close_exc}")
            raise CaptureError(f"Failed to open audio input: {exc}") from exc

        with self._lock:
            self._buffer[:] = 0.0
        self.analyser.reset()
        self._stream = stream
        logger.info(
            f"Microphone opened: device={self.device if self.device is not None else 'default'}, "
            f"rate={self.sample_rate}Hz, fft_size={self.fft_size}"
        )

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as exc:
            logger.warning(f"Error while closing audio input: {exc}")
        logger.info("Microphone closed")

    def _window(self) -> np.ndarray:
        with self._lock:
            return self._buffer.copy()

    def time_frame(self) -> np.ndarray:
        if self._stream is None:
            return EMPTY_FRAME.copy()
        return self.analyser.time_bytes(self._window()[-(self.fft_size // 2):])

    def freq_frame(self) -> np.ndarray:
        if self._stream is None:
            return EMPTY_FRAME.copy()
        return self.analyser.freq_bytes(self._window())
