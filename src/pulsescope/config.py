"""
Analysis configuration.

Module-level constants document the defaults; :class:`AnalysisConfig`
bundles them with the per-estimator parameter dataclasses.
"""

from dataclasses import dataclass, field

from pulsescope.core.beat import BEAT_STRATEGIES, BeatParams
from pulsescope.core.key import KeyParams
from pulsescope.core.smoother import SmoothingParams
from pulsescope.core.spectrum import DEFAULT_FFT_SIZE, DEFAULT_SAMPLE_RATE

# ============================================================================
# TRANSFORM CONFIGURATION
# ============================================================================

FFT_SIZE = DEFAULT_FFT_SIZE
"""
Transform size of the frame source's spectra.

Frames hold FFT_SIZE / 2 samples (1024) and bins are
SAMPLE_RATE / FFT_SIZE apart (~21.5 Hz @ 44.1 kHz).

Watch Out For:
  - The band-to-bin and interval-to-BPM math assume the source was
    configured with the same value; a mismatch silently skews both.
"""

SAMPLE_RATE = DEFAULT_SAMPLE_RATE
"""
Capture sample rate in Hz.

Must match the device rate the frame source opens with.
"""

# ============================================================================
# CADENCE
# ============================================================================

TARGET_FPS = 60
"""
Ticks per second the live loop aims for (display refresh rate).

The pipeline reads only the current snapshot each tick, so a slower host
drops frames instead of queueing them.
"""


@dataclass
class AnalysisConfig:
    """Everything a :class:`~pulsescope.core.stream.RealtimeAnalyzer` session needs."""

    fft_size: int = FFT_SIZE
    sample_rate: int = SAMPLE_RATE
    bpm_strategy: str = "flux"
    smoothing: SmoothingParams = field(default_factory=SmoothingParams)
    beat: BeatParams = field(default_factory=BeatParams)
    key: KeyParams = field(default_factory=KeyParams)

    def validate(self) -> "AnalysisConfig":
        """
        Check the configuration.

        Raises:
            ValueError: On an unknown strategy or non-positive sizes/rates.
        """
        if self.fft_size <= 0 or self.fft_size % 2:
            raise ValueError(f"fft_size must be a positive even number: {self.fft_size}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive: {self.sample_rate}")
        if self.bpm_strategy not in BEAT_STRATEGIES:
            raise ValueError(
                f"Unknown BPM strategy '{self.bpm_strategy}' (choose from {sorted(BEAT_STRATEGIES)})"
            )
        if not 0.0 < self.smoothing.alpha <= 1.0:
            raise ValueError(f"smoothing.alpha must be in (0, 1]: {self.smoothing.alpha}")
        if self.beat.min_bpm >= self.beat.max_bpm:
            raise ValueError("beat.min_bpm must be below beat.max_bpm")
        if self.key.update_interval < 0:
            raise ValueError("key.update_interval must not be negative")
        return self

    @property
    def frame_length(self) -> int:
        """Samples per TimeFrame / bins per FreqFrame."""
        return self.fft_size // 2
