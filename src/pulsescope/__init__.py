"""Live tempo, key and waveform analysis for microphone input."""

from pulsescope.config import AnalysisConfig
from pulsescope.core.beat import BeatEstimator, ThresholdBeatEstimator
from pulsescope.core.key import KeyEstimator
from pulsescope.core.smoother import WaveformSmoother
from pulsescope.core.stream import LiveFeatures, RealtimeAnalyzer
from pulsescope.io.sources import CaptureError, FrameSource, ScriptedFrameSource

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "BeatEstimator",
    "ThresholdBeatEstimator",
    "KeyEstimator",
    "WaveformSmoother",
    "LiveFeatures",
    "RealtimeAnalyzer",
    "CaptureError",
    "FrameSource",
    "ScriptedFrameSource",
]
