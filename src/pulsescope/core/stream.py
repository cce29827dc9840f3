"""
Real-time analysis session for live visualization.

Architecture Overview
---------------------
::

    FrameSource  (microphone, scripted frames, ...)
        │
        ▼  one TimeFrame + one FreqFrame per tick (current snapshot only)
    RealtimeAnalyzer.tick()
        │
        ├─► WaveformSmoother   (TimeFrame)
        │        └─► smoothed waveform bytes
        │
        ├─► BeatEstimator      (FreqFrame)
        │        └─► BPM (70..180, 0 = unknown)
        │
        ├─► KeyEstimator       (FreqFrame, clock)
        │        └─► pitch class label ("" = unknown)
        │
        └─► LiveFeatures  (replaced whole on every tick, read by the renderer)

Design Goals
------------
* **Single-threaded**: tick() runs to completion; nothing blocks or queues.
  A slow host reads fewer snapshots, it never builds a backlog.
* **Cold sessions**: estimators are built by start() and thrown away by
  stop(), so every session begins with empty histories.
* **Graceful degradation**: empty or silent frames keep the previous
  outputs instead of raising.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from pulsescope.config import AnalysisConfig
from pulsescope.core.beat import make_beat_estimator
from pulsescope.core.key import KeyEstimator
from pulsescope.core.smoother import WaveformSmoother
from pulsescope.core.spectrum import as_byte_frame
from pulsescope.io.sources import FrameSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveFeatures:
    """
    Single-tick snapshot of the pipeline outputs.

    ``waveform`` has the length of the source's TimeFrame; ``bpm`` is 0
    and ``key`` is "" while unknown.
    """

    tick_index: int = 0
    time_sec: float = 0.0
    waveform: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    spectrum: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    bpm: int = 0
    key: str = ""

    @classmethod
    def idle(cls, length: int) -> "LiveFeatures":
        """Resting snapshot: flat waveform, empty spectrum, unknown BPM and key."""
        return cls(
            waveform=np.full(length, 128, dtype=np.uint8),
            spectrum=np.zeros(length, dtype=np.uint8),
        )


class RealtimeAnalyzer:
    """
    Drives the smoother and estimators from a frame source.

    Parameters
    ----------
    source:
        Frame source to read snapshots from.  The analyzer is its only
        user: start() opens it and stop() closes it.
    config:
        Analysis configuration (default: AnalysisConfig()).
    clock:
        Monotonic clock in seconds, used for the key update gate and
        ``time_sec``.  Injectable for tests.

    Example
    -------
    >>> with RealtimeAnalyzer(MicrophoneFrameSource()) as analyzer:
    ...     features = analyzer.tick()
    """

    def __init__(
        self,
        source: FrameSource,
        config: Optional[AnalysisConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.config = (config or AnalysisConfig()).validate()
        self.clock = clock

        self.smoother: Optional[WaveformSmoother] = None
        self.beat = None
        self.key_estimator: Optional[KeyEstimator] = None

        self._running = False
        self._start_time = 0.0
        self._tick_index = 0
        self.latest = LiveFeatures.idle(self.config.frame_length)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Open the source and begin a cold session.

        Raises:
            CaptureError: If the source cannot be opened; the analyzer
                stays stopped.
            ValueError: If the source's fft_size or sample_rate differs
                from the configuration; the source is not opened.
        """
        if self._running:
            return

        cfg = self.config
        source_format = (self.source.fft_size, self.source.sample_rate)
        if source_format != (cfg.fft_size, cfg.sample_rate):
            raise ValueError(
                f"Frame source delivers fft_size={source_format[0]}, "
                f"sample_rate={source_format[1]} but the analyzer is configured "
                f"for fft_size={cfg.fft_size}, sample_rate={cfg.sample_rate}"
            )

        self.source.open()

        now = self.clock()
        self.smoother = WaveformSmoother(cfg.smoothing)
        self.beat = make_beat_estimator(
            cfg.bpm_strategy,
            fft_size=cfg.fft_size,
            sample_rate=cfg.sample_rate,
            params=cfg.beat,
        )
        self.key_estimator = KeyEstimator(cfg.key, start_time=now)

        self._start_time = now
        self._tick_index = 0
        self.latest = LiveFeatures.idle(cfg.frame_length)
        self._running = True
        logger.info(
            f"Analysis started: strategy={cfg.bpm_strategy}, "
            f"fft_size={cfg.fft_size}, rate={cfg.sample_rate}Hz"
        )

    def stop(self) -> None:
        """Close the source and discard every history.  Safe to repeat."""
        was_running = self._running
        self._running = False
        self.source.close()

        # Clear before dropping so nothing else holding a reference keeps state
        for estimator in (self.smoother, self.beat):
            if estimator is not None:
                estimator.reset()
        if self.key_estimator is not None:
            self.key_estimator.reset()
        self.smoother = None
        self.beat = None
        self.key_estimator = None

        self._tick_index = 0
        self.latest = LiveFeatures.idle(self.config.frame_length)
        if was_running:
            logger.info("Analysis stopped")

    def __enter__(self) -> "RealtimeAnalyzer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Per-tick processing
    # ------------------------------------------------------------------

    def tick(self) -> LiveFeatures:
        """
        Pull the current snapshots and update all outputs.

        Returns:
            The new LiveFeatures, also stored as ``latest``.

        Raises:
            RuntimeError: If the session has not been started.
        """
        if not self._running:
            raise RuntimeError("RealtimeAnalyzer.tick() called before start()")

        now = self.clock()
        previous = self.latest
        time_frame = as_byte_frame(self.source.time_frame())
        freq_frame = as_byte_frame(self.source.freq_frame())

        waveform = previous.waveform
        if len(time_frame) > 0:
            waveform = self.smoother.smooth(time_frame)

        spectrum, bpm, key = previous.spectrum, previous.bpm, previous.key
        if len(freq_frame) > 0:
            spectrum = freq_frame
            bpm = self.beat.estimate(freq_frame)
            key = self.key_estimator.estimate(freq_frame, now)

        self._tick_index += 1
        self.latest = LiveFeatures(
            tick_index=self._tick_index,
            time_sec=now - self._start_time,
            waveform=waveform,
            spectrum=spectrum,
            bpm=bpm,
            key=key,
        )
        return self.latest

    def run(
        self,
        fps: float = 60.0,
        duration: Optional[float] = None,
        on_frame: Optional[Callable[[LiveFeatures], Optional[bool]]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """
        Tick at ``fps`` until stopped.

        The loop ends when stop() is called (e.g. from ``on_frame``),
        when ``duration`` seconds have passed, or when ``on_frame``
        returns False.  Starts the session if needed.

        Returns:
            Number of ticks processed.
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive: {fps}")
        if not self._running:
            self.start()

        period = 1.0 / fps
        began = self.clock()
        ticks = 0
        while self._running:
            tick_start = self.clock()
            if duration is not None and tick_start - began >= duration:
                break

            features = self.tick()
            ticks += 1
            if on_frame is not None and on_frame(features) is False:
                break

            remaining = period - (self.clock() - tick_start)
            if remaining > 0:
                sleep(remaining)
        return ticks

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def waveform(self) -> np.ndarray:
        return self.latest.waveform

    @property
    def bpm(self) -> int:
        return self.latest.bpm

    @property
    def key(self) -> str:
        return self.latest.key
