"""
Waveform smoothing for display.

Blends each raw time-domain snapshot with the previous smoothed one and runs
a short neighbour filter across it so the drawn waveform stops flickering.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import signal as scipy_signal

from pulsescope.core.spectrum import as_byte_frame, round_half_up


@dataclass
class SmoothingParams:
    """Temporal and spatial smoothing weights."""

    alpha: float = 0.8          # weight of the new frame
    left_weight: float = 0.25   # already-smoothed left neighbour
    center_weight: float = 0.5
    right_weight: float = 0.25  # raw right neighbour


class WaveformSmoother:
    """
    Stateful smoother for TimeFrames.

    Each call blends the raw frame into the previous smoothed frame
    (exponential smoothing), then filters interior samples with the
    left neighbour taken from the current smoothed pass and the right
    neighbour taken from the raw input. Edge samples are only blended.
    """

    def __init__(self, params: Optional[SmoothingParams] = None):
        self.params = params or SmoothingParams()
        if not 0.0 < self.params.alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1]: {self.params.alpha}")
        self._previous: Optional[np.ndarray] = None

    @property
    def previous(self) -> Optional[np.ndarray]:
        """Float state carried to the next call (None before the first frame)."""
        return self._previous

    def reset(self) -> None:
        self._previous = None

    def _neighbour_filter(self, blended: np.ndarray, raw: np.ndarray) -> np.ndarray:
        """
        Apply ``y[i] = l*y[i-1] + c*b[i] + r*raw[i+1]`` for interior samples.

        The recursion on ``y[i-1]`` is a first-order IIR filter, so the
        interior is run through lfilter seeded with the untouched left edge.
        """
        p = self.params
        out = blended.copy()
        if len(out) < 3:
            return out

        drive = p.center_weight * blended[1:-1] + p.right_weight * raw[2:]
        zi = np.array([p.left_weight * blended[0]])
        out[1:-1], _ = scipy_signal.lfilter([1.0], [1.0, -p.left_weight], drive, zi=zi)
        return out

    def smooth(self, raw) -> np.ndarray:
        """
        Smooth one time-domain snapshot.

        Args:
            raw: Byte samples (silence at 128).

        Returns:
            uint8 array of the same length as ``raw``.
        """
        frame = as_byte_frame(raw)
        if len(frame) == 0:
            return frame.copy()

        raw_f = frame.astype(np.float64)
        if self._previous is None or len(self._previous) != len(raw_f):
            self._previous = raw_f.copy()

        alpha = self.params.alpha
        blended = alpha * raw_f + (1.0 - alpha) * self._previous
        blended = self._neighbour_filter(blended, raw_f)

        self._previous = blended
        return np.clip(round_half_up(blended), 0, 255).astype(np.uint8)
