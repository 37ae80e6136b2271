"""In-process counters for turn and commit activity, exposed on ``/health``."""

from __future__ import annotations

import threading

COUNTERS = (
    "deltas_received",
    "turns_completed",
    "stream_errors",
    "stream_timeouts",
    "commits_total",
    "commit_failures",
    "commits_deduplicated",
)
OBSERVATIONS = ("stream_duration_seconds",)
GAUGES = ("active_streams",)


class MetricsRegistry:
    """
    Counters, summed observations and gauges behind one lock.

    An observation is kept as ``<name>_count`` and ``<name>_sum`` counters so
    averages can be derived from a snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, float] = dict.fromkeys(COUNTERS, 0.0)
        for name in OBSERVATIONS:
            self._counters[f"{name}_count"] = 0.0
            self._counters[f"{name}_sum"] = 0.0
        self._gauges: dict[str, float] = dict.fromkeys(GAUGES, 0.0)

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._counters[f"{name}_count"] = self._counters.get(f"{name}_count", 0.0) + 1
            self._counters[f"{name}_sum"] = self._counters.get(f"{name}_sum", 0.0) + value

    def adjust_gauge(self, name: str, delta: float) -> None:
        with self._lock:
            self._gauges[name] = self._gauges.get(name, 0.0) + delta

    def snapshot(self) -> dict[str, dict[str, float]]:
        with self._lock:
            return {"counters": dict(self._counters), "gauges": dict(self._gauges)}


metrics = MetricsRegistry()
