"""Core signal-processing modules."""

from pulsescope.core.smoother import WaveformSmoother
from pulsescope.core.beat import BeatEstimator, ThresholdBeatEstimator
from pulsescope.core.key import KeyEstimator

__all__ = ["WaveformSmoother", "BeatEstimator", "ThresholdBeatEstimator", "KeyEstimator"]
