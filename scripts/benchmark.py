"""
pulsescope per-tick latency benchmark.

Usage:
    python scripts/benchmark.py [--quick]

Modes:
    default  - 2 000 ticks per measurement, 200 warm-up ticks
    --quick  - 300 ticks, 50 warm-up ticks (CI-friendly, a few seconds)

Output: timing table printed to stdout, compared against the per-tick
budget at 60 Hz (16.7 ms).  Frames come from a scripted 120 BPM pulse so
the estimators do real peak picking and smoothing work.
"""

import argparse
import os
import sys
import time
from typing import Callable, List

import numpy as np

# Make sure the installed package is on the path when run from repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from pulsescope.config import AnalysisConfig
from pulsescope.core.beat import BeatEstimator, ThresholdBeatEstimator
from pulsescope.core.key import KeyEstimator
from pulsescope.core.smoother import WaveformSmoother
from pulsescope.core.stream import RealtimeAnalyzer
from pulsescope.io.sources import demo_source, pulse_train, silent_time_frames, tempo_to_interval

_SEP = "─" * 72
_BUDGET_MS = 1000.0 / 60.0


def _hdr(title: str) -> None:
    print(f"\n{_SEP}")
    print(f"  {title}")
    print(_SEP)


def _time_calls(step: Callable[[int], object], n: int, warmup: int) -> List[float]:
    """Call step(i) n times after warmup calls, return per-call durations."""
    for i in range(warmup):
        step(i)
    times = []
    for i in range(n):
        t0 = time.perf_counter()
        step(warmup + i)
        times.append(time.perf_counter() - t0)
    return times


def _stats(times: List[float]) -> str:
    arr = np.array(times) * 1000.0
    p99 = np.percentile(arr, 99)
    share = 100.0 * arr.mean() / _BUDGET_MS
    return (
        f"mean={arr.mean():.3f} ms  p99={p99:.3f} ms  max={arr.max():.3f} ms  "
        f"({share:.1f}% of 60 Hz budget)"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="pulsescope tick benchmark")
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Fewer ticks for fast CI runs",
    )
    args = parser.parse_args()

    if args.quick:
        N, WARMUP = 300, 50
        label = "quick mode"
    else:
        N, WARMUP = 2000, 200
        label = "full mode"

    total = N + WARMUP
    cfg = AnalysisConfig()
    interval = tempo_to_interval(120.0, cfg.fft_size, cfg.sample_rate)
    freq_frames = pulse_train(total, interval, length=cfg.frame_length)
    time_frames = silent_time_frames(total, length=cfg.frame_length)

    print(f"\npulsescope Tick Benchmark  -  {label}")
    print(f"Frame length: {cfg.frame_length}  |  Ticks: {N}  |  Warm-up: {WARMUP}")

    _hdr("1. WaveformSmoother.smooth")
    smoother = WaveformSmoother()
    print(f"  {_stats(_time_calls(lambda i: smoother.smooth(time_frames[i]), N, WARMUP))}")

    _hdr("2. BeatEstimator.estimate (flux)")
    beat = BeatEstimator(cfg.fft_size, cfg.sample_rate)
    print(f"  {_stats(_time_calls(lambda i: beat.estimate(freq_frames[i]), N, WARMUP))}")
    print(f"  final BPM: {beat.bpm}")

    _hdr("3. ThresholdBeatEstimator.estimate")
    legacy = ThresholdBeatEstimator(cfg.fft_size, cfg.sample_rate)
    print(f"  {_stats(_time_calls(lambda i: legacy.estimate(freq_frames[i]), N, WARMUP))}")

    _hdr("4. KeyEstimator.estimate (ungated)")
    key = KeyEstimator()
    print(f"  {_stats(_time_calls(lambda i: key.estimate(freq_frames[i], float(i)), N, WARMUP))}")

    _hdr("5. RealtimeAnalyzer.tick (demo source)")
    analyzer = RealtimeAnalyzer(demo_source(bpm=120.0, n_frames=total), cfg)
    with analyzer:
        print(f"  {_stats(_time_calls(lambda i: analyzer.tick(), N, WARMUP))}")
        print(f"  BPM={analyzer.bpm}  key={analyzer.key or '--'}")

    print(f"\n{_SEP}\n")


if __name__ == "__main__":
    main()
