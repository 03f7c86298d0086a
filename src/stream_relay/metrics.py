"""
Lightweight in-process metrics for the relay.

Supports:
- counters (monotonic totals)
- gauges (latest value)
- histograms (rolling window with basic stats and percentiles)

Timings are in milliseconds by convention (``*_ms``). ``snapshot()`` returns a
JSON-ready dict; the streamer logs it at shutdown.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List


@dataclass
class _Hist:
    window: int
    values: Deque[float] = field(default_factory=deque)
    count: int = 0
    min_v: float = float("inf")
    max_v: float = float("-inf")

    def observe(self, v: float) -> None:
        value = float(v)
        if len(self.values) == self.window:
            self.values.popleft()
        self.values.append(value)
        self.min_v = min(self.min_v, value)
        self.max_v = max(self.max_v, value)
        self.count += 1

    def stats(self) -> Dict[str, float]:
        n = len(self.values)
        if n == 0:
            return {
                "count": 0,
                "last_ms": 0.0,
                "mean_ms": 0.0,
                "p50_ms": 0.0,
                "p90_ms": 0.0,
                "p99_ms": 0.0,
                "min_ms": 0.0,
                "max_ms": 0.0,
            }
        arr: List[float] = sorted(self.values)

        def q(p: float) -> float:
            idx = min(max(int(round(p * (n - 1))), 0), n - 1)
            return arr[idx]

        return {
            "count": self.count,
            "last_ms": self.values[-1],
            "mean_ms": sum(arr) / n,
            "p50_ms": q(0.50),
            "p90_ms": q(0.90),
            "p99_ms": q(0.99),
            "min_ms": self.min_v,
            "max_ms": self.max_v,
        }


class Metrics:
    """Small metrics aggregator with JSON snapshot."""

    def __init__(self, window: int = 512) -> None:
        self._window = max(16, int(window))
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._hists: Dict[str, _Hist] = {}
        self._started_ts = time.time()

    def inc(self, name: str, value: float = 1.0) -> None:
        self._counters[name] = self._counters.get(name, 0.0) + float(value)

    def set(self, name: str, value: float) -> None:
        self._gauges[name] = float(value)

    def observe_ms(self, name: str, value_ms: float) -> None:
        h = self._hists.get(name)
        if h is None:
            h = _Hist(window=self._window)
            self._hists[name] = h
        h.observe(value_ms)

    def counter(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    def gauge(self, name: str) -> float:
        return self._gauges.get(name, 0.0)

    def snapshot(self) -> Dict[str, object]:
        now = time.time()
        uptime = max(1e-3, now - self._started_ts)
        counters = {k: int(v) if float(v).is_integer() else float(v) for k, v in self._counters.items()}
        return {
            "version": "v1",
            "ts": now,
            "gauges": dict(self._gauges),
            "counters": counters,
            "histograms": {k: v.stats() for k, v in self._hists.items()},
            "derived": {
                "bytes_per_s": self._counters.get("relay_bytes_total", 0.0) / uptime,
            },
        }


__all__ = ["Metrics"]
