from __future__ import annotations

import collections
import math
from typing import List, Optional, Tuple

from .constants import KEY_WAIT


class TotalTimeline:
    """Bounded (t, total) series for plotting the pulse total over time.

    Samples are only recorded for increases. When two samples are further
    apart than ``gap_threshold_s`` a (t, NaN) point is inserted first so a
    plotter draws a break instead of a long straight segment."""
    def __init__(self, max_points: int = 2000, gap_threshold_s: float = 5.0):
        self.max_points = int(max_points)
        self.gap_threshold_s = float(gap_threshold_s)
        self._points = collections.deque(maxlen=self.max_points)
        self._last_t: Optional[float] = None
        self._last_total: Optional[int] = None

    def record(self, t: float, total: int) -> bool:
        """Append a sample; returns False when it is not an increase."""
        if self._last_total is not None and total <= self._last_total:
            return False
        if self._last_t is not None and (t - self._last_t) > self.gap_threshold_s:
            self._points.append((t, math.nan))
        self._points.append((t, float(total)))
        self._last_t = t
        self._last_total = total
        return True

    def rebase(self):
        """Forget the last total so the next sample is accepted after a session reset."""
        self._last_total = None

    def clear(self):
        self._points.clear()
        self._last_t = None
        self._last_total = None

    def points(self) -> List[Tuple[float, float]]:
        return list(self._points)

    def __len__(self):
        return len(self._points)


def parse_wait_ms(line: str) -> Optional[float]:
    """Extract ``<n>`` from ``Wait: <n> ms`` in a live line."""
    idx = line.find(KEY_WAIT)
    if idx < 0:
        return None
    rest = line[idx + len(KEY_WAIT):]
    end = rest.find("ms")
    if end < 0:
        return None
    try:
        return float(rest[:end].strip())
    except ValueError:
        return None


class WaitRateTracker:
    """Pulse rate from the device's inter-pulse wait time.

    The rate uses the mean of the last two Wait values, so nothing is reported
    until two have been seen."""
    MIN_HZ = 1.0
    MAX_HZ = 1000.0

    def __init__(self):
        self._prev_wait_ms: Optional[float] = None
        self._avg_wait_ms: Optional[float] = None

    def feed_line(self, line: str) -> Optional[float]:
        wait_ms = parse_wait_ms(line)
        if wait_ms is None:
            return None
        if self._prev_wait_ms is not None:
            self._avg_wait_ms = (self._prev_wait_ms + wait_ms) / 2.0
        self._prev_wait_ms = wait_ms
        return wait_ms

    def rate_hz(self) -> float:
        w = self._avg_wait_ms
        if w is None or not math.isfinite(w) or w <= 0.0:
            return 0.0
        rate = 1000.0 / w
        if self.MIN_HZ <= rate <= self.MAX_HZ:
            return rate
        return 0.0

    def clear(self):
        self._prev_wait_ms = None
        self._avg_wait_ms = None
