# -*- coding: utf-8 -*-
"""
Rolling volume history used by volume alerts.
Keeps the most recent samples per identifier in a bounded FIFO window.
"""
from collections import deque
from typing import Deque, Dict, List

from stockalert.config import VOLUME_HISTORY_LIMIT


class VolumeHistory:
    """Bounded per-identifier sliding window of volume samples."""

    def __init__(self, limit: int = VOLUME_HISTORY_LIMIT):
        self.limit = limit
        self._samples: Dict[str, Deque[float]] = {}

    def append(self, identifier: str, sample: float) -> None:
        """Record a sample; the oldest one is evicted once the window is full."""
        window = self._samples.get(identifier)
        if window is None:
            window = deque(maxlen=self.limit)
            self._samples[identifier] = window
        window.append(float(sample))

    def average(self, identifier: str) -> float:
        """Mean of the retained samples, 0 when there are none."""
        window = self._samples.get(identifier)
        if not window:
            return 0.0
        return sum(window) / len(window)

    def sample_count(self, identifier: str) -> int:
        window = self._samples.get(identifier)
        return len(window) if window else 0

    def samples(self, identifier: str) -> List[float]:
        """Oldest-first copy of the retained samples."""
        return list(self._samples.get(identifier, ()))

    def identifiers(self) -> List[str]:
        return list(self._samples.keys())
