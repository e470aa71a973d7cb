from __future__ import annotations

import statistics
import time
from collections import deque
from typing import Deque, List


def jitter_quantiles(samples: List[float]) -> dict:
    """p95/p99 of overshoot samples in ms, linearly interpolated."""
    if not samples:
        p95 = p99 = 0.0
    elif len(samples) == 1:
        p95 = p99 = samples[0]
    else:
        cuts = statistics.quantiles(samples, n=100, method="inclusive")
        p95, p99 = cuts[94], cuts[98]
    return {"jitterMsP95": round(p95, 3), "jitterMsP99": round(p99, 3)}


class BlockingClock:
    """Blocks the calling thread for each inter-event delay.

    Timing is best effort: overshoot past the requested wait is kept as
    jitter samples so playback accuracy can be reported.
    """

    def __init__(self, window: int = 512) -> None:
        self._jitter_ms: Deque[float] = deque(maxlen=window)

    def wait(self, microseconds: int) -> None:
        if microseconds <= 0:
            return
        target = microseconds / 1_000_000.0
        start = time.monotonic()
        time.sleep(target)
        overshoot = time.monotonic() - start - target
        self._jitter_ms.append(max(0.0, overshoot * 1000.0))

    def get_metrics(self) -> dict:
        return jitter_quantiles(list(self._jitter_ms))


class RecordingClock:
    """Records requested waits without sleeping (tests and dry runs)."""

    def __init__(self) -> None:
        self.waits: List[int] = []

    def wait(self, microseconds: int) -> None:
        self.waits.append(int(microseconds))

    def get_metrics(self) -> dict:
        return jitter_quantiles([])
