"""In-memory, thread-safe metrics registry.

Counters and histograms keyed by name plus a sorted tag set. Nothing is
exported over HTTP; tests and the service health endpoint read
:meth:`MetricsRegistry.snapshot`.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, List, Tuple, TypedDict


MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]

MAX_HISTOGRAM_SAMPLES = 2000


def _metric_key(name: str, tags: Dict[str, str]) -> MetricKey:
    return name, tuple(sorted(tags.items()))


@dataclass
class Counter:
    name: str
    tags: Dict[str, str]
    _value: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class Histogram:
    name: str
    tags: Dict[str, str]
    max_samples: int = MAX_HISTOGRAM_SAMPLES
    _samples: Deque[float] = field(default_factory=deque, init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __post_init__(self) -> None:
        # Sliding window, oldest samples drop first
        self._samples = deque(maxlen=self.max_samples)

    def observe(self, value: float) -> None:
        with self._lock:
            self._samples.append(value)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            values = sorted(self._samples)
        if not values:
            return {"count": 0, "avg": 0.0, "p50": 0.0, "p95": 0.0, "min": 0.0, "max": 0.0}
        count = len(values)
        return {
            "count": count,
            "avg": sum(values) / count,
            "p50": values[int(0.50 * (count - 1))],
            "p95": values[int(0.95 * (count - 1))],
            "min": values[0],
            "max": values[-1],
        }


class CounterSnapshot(TypedDict):
    name: str
    tags: Dict[str, str]
    value: int


class HistogramSnapshot(TypedDict):
    name: str
    tags: Dict[str, str]
    count: int
    avg: float
    p50: float
    p95: float
    min: float
    max: float


class RegistrySnapshot(TypedDict):
    counters: List[CounterSnapshot]
    histograms: List[HistogramSnapshot]
    generated_at: float


class MetricsRegistry:
    """Registry creating metrics on first use."""

    def __init__(self) -> None:
        self._counters: Dict[MetricKey, Counter] = {}
        self._histograms: Dict[MetricKey, Histogram] = {}
        self._lock = Lock()

    def counter(self, name: str, **tags: str) -> Counter:
        key = _metric_key(name, tags)
        with self._lock:
            metric = self._counters.get(key)
            if metric is None:
                metric = self._counters[key] = Counter(name=name, tags=tags)
            return metric

    def histogram(self, name: str, **tags: str) -> Histogram:
        key = _metric_key(name, tags)
        with self._lock:
            metric = self._histograms.get(key)
            if metric is None:
                metric = self._histograms[key] = Histogram(name=name, tags=tags)
            return metric

    def counter_value(self, name: str, **tags: str) -> int:
        """Current value of a counter, 0 if never incremented."""
        with self._lock:
            metric = self._counters.get(_metric_key(name, tags))
        return metric.value() if metric else 0

    def counter_total(self, name: str) -> int:
        """Sum of a counter across every tag set."""
        with self._lock:
            metrics = [c for (n, _), c in self._counters.items() if n == name]
        return sum(c.value() for c in metrics)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()

    def snapshot(self) -> RegistrySnapshot:
        # Copy references under the lock, read values outside it
        with self._lock:
            counters = list(self._counters.values())
            histograms = list(self._histograms.values())

        data: RegistrySnapshot = {
            "counters": [],
            "histograms": [],
            "generated_at": time.time(),
        }
        for c in counters:
            data["counters"].append({"name": c.name, "tags": dict(c.tags), "value": c.value()})
        for h in histograms:
            summary = h.summary()
            data["histograms"].append(
                {
                    "name": h.name,
                    "tags": dict(h.tags),
                    "count": summary["count"],
                    "avg": summary["avg"],
                    "p50": summary["p50"],
                    "p95": summary["p95"],
                    "min": summary["min"],
                    "max": summary["max"],
                }
            )
        return data


registry = MetricsRegistry()
