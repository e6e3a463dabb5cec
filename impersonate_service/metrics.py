"""Thread-safe request metrics."""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MetricsSnapshot:
    """A point-in-time copy of the collected metrics."""

    uptime_seconds: int
    requests_total: int
    requests_success: int
    requests_failed: int
    average_duration_ms: float
    browsers_used: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime_seconds": self.uptime_seconds,
            "requests_total": self.requests_total,
            "requests_success": self.requests_success,
            "requests_failed": self.requests_failed,
            "average_duration_ms": self.average_duration_ms,
            "browsers_used": dict(self.browsers_used),
        }


class Collector:
    """Counts requests, outcomes, durations and browsers used."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._start = self._clock()
        self._total = 0
        self._success = 0
        self._failed = 0
        self._duration_ns = 0
        self._browsers: Counter[str] = Counter()

    def record_request(self, browser: str, success: bool, duration: float) -> None:
        """Record one request; duration is in seconds."""
        with self._lock:
            self._total += 1
            if success:
                self._success += 1
            else:
                self._failed += 1
            self._duration_ns += round(duration * 1_000_000_000)
            self._browsers[browser] += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            average = 0.0
            if self._total:
                average = (self._duration_ns // 1_000_000) / self._total
            return MetricsSnapshot(
                uptime_seconds=int(self._clock() - self._start),
                requests_total=self._total,
                requests_success=self._success,
                requests_failed=self._failed,
                average_duration_ms=average,
                browsers_used=dict(self._browsers),
            )