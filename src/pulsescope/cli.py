"""
Command-line entry point.

Runs a live analysis session against the microphone (or a synthetic
pulse with ``--demo``) and prints the BPM and key as they settle, or
opens the pygame preview with ``--preview``.
"""

import argparse
import logging
import sys

import numpy as np

from pulsescope.config import TARGET_FPS, AnalysisConfig
from pulsescope.core.beat import BEAT_STRATEGIES
from pulsescope.core.stream import LiveFeatures, RealtimeAnalyzer
from pulsescope.io.sources import CaptureError, demo_source


def _level(waveform: np.ndarray) -> float:
    """Peak deviation from silence, [0, 1]."""
    if len(waveform) == 0:
        return 0.0
    return float(np.max(np.abs(waveform.astype(np.float64) - 128.0)) / 128.0)


def format_status(features: LiveFeatures) -> str:
    """One status line for a snapshot."""
    bpm = f"{features.bpm:3d}" if features.bpm else " --"
    key = f"{features.key:<2}" if features.key else "--"
    meter_width = 20
    filled = int(meter_width * min(1.0, _level(features.waveform)))
    meter = "[" + "#" * filled + "-" * (meter_width - filled) + "]"
    return f"{features.time_sec:7.1f}s  BPM {bpm}  Key {key}  {meter}"


def build_source(args):
    """Frame source for the parsed arguments."""
    if args.demo is not None:
        return demo_source(bpm=args.demo)
    # Imported here so --demo works without PortAudio installed
    from pulsescope.io.microphone import MicrophoneFrameSource

    return MicrophoneFrameSource(device=args.device)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pulsescope",
        description="Live BPM, key and waveform analysis of microphone input",
    )

    parser.add_argument(
        "-d", "--device",
        default=None,
        help="Input device index or name (default: system default)",
    )

    parser.add_argument(
        "--demo",
        type=float,
        default=None,
        metavar="BPM",
        help="Analyze a synthetic pulse at BPM instead of the microphone",
    )

    parser.add_argument(
        "-f", "--fps",
        type=int,
        default=TARGET_FPS,
        help=f"Ticks per second (default: {TARGET_FPS})",
    )

    parser.add_argument(
        "-t", "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until Ctrl-C)",
    )

    parser.add_argument(
        "-s", "--strategy",
        choices=sorted(BEAT_STRATEGIES),
        default="flux",
        help="BPM estimation strategy (default: flux)",
    )

    parser.add_argument(
        "--preview",
        action="store_true",
        help="Open a live pygame window instead of printing status lines",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log estimator updates",
    )

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.device is not None and args.device.isdigit():
        args.device = int(args.device)

    analyzer = RealtimeAnalyzer(build_source(args), AnalysisConfig(bpm_strategy=args.strategy))

    try:
        analyzer.start()
    except CaptureError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.preview:
        from pulsescope.preview import run_preview

        run_preview(analyzer, fps=args.fps)
        return 0

    interactive = sys.stdout.isatty()
    last_printed = [-1.0]

    def report(features: LiveFeatures) -> None:
        line = format_status(features)
        if interactive:
            sys.stdout.write(f"\r{line}")
            sys.stdout.flush()
        elif features.time_sec - last_printed[0] >= 1.0:
            # Fallback for non-interactive environments (e.g. logs)
            print(line, flush=True)
            last_printed[0] = features.time_sec

    try:
        analyzer.run(fps=args.fps, duration=args.duration, on_frame=report)
    except KeyboardInterrupt:
        pass
    finally:
        analyzer.stop()
        if interactive:
            sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
