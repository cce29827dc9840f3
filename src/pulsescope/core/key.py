"""
Dominant pitch-class ("key") estimation.

A coarse heuristic: the strongest FFT bin's index modulo 12 picks one of
the twelve note names.  Votes are rate-limited in wall-clock time and
stabilised by a majority over the recent votes.  This is not chroma or
harmonic analysis.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np

from pulsescope.core.spectrum import NOTE_NAMES, as_byte_frame

logger = logging.getLogger(__name__)


@dataclass
class KeyParams:
    """Key voting parameters."""

    update_interval: float = 0.5  # seconds between votes
    history_size: int = 10


def dominant_pitch_class(freq: np.ndarray) -> Optional[str]:
    """Note name of the strongest bin (first on ties), None for silent frames."""
    if len(freq) == 0:
        return None
    index = int(np.argmax(freq))
    if freq[index] == 0:
        return None
    return NOTE_NAMES[index % 12]


def stable_mode(labels) -> str:
    """
    Most frequent label.

    On a tie the label that reached the winning count first, scanning
    in order, is kept.  Empty input gives "".
    """
    counts: dict[str, int] = {}
    best, best_count = "", 0
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
        if counts[label] > best_count:
            best, best_count = label, counts[label]
    return best


class KeyEstimator:
    """Time-gated majority vote over dominant-bin pitch classes."""

    def __init__(self, params: Optional[KeyParams] = None, start_time: Optional[float] = None):
        self.params = params or KeyParams()
        self._history: deque = deque(maxlen=self.params.history_size)
        self._last_update: Optional[float] = start_time
        self.key = ""

    @property
    def history(self) -> tuple:
        return tuple(self._history)

    @property
    def last_update(self) -> Optional[float]:
        return self._last_update

    def reset(self, now: Optional[float] = None) -> None:
        """Forget all votes; ``now`` restarts the update gate."""
        self._history.clear()
        self._last_update = now
        self.key = ""

    def estimate(self, freq, now: float) -> str:
        """
        Consume one FreqFrame observed at ``now`` (seconds, monotonic).

        Returns:
            The majority label, or "" while no vote has been cast.
        """
        if self._last_update is None:
            self._last_update = now

        if now - self._last_update < self.params.update_interval:
            return self._history[-1] if self._history else ""

        label = dominant_pitch_class(as_byte_frame(freq))
        if label is not None:
            self._history.append(label)

        key = stable_mode(self._history)
        if key != self.key:
            logger.debug("Key estimate %r -> %r", self.key, key)
        self.key = key
        self._last_update = now
        return key
