"""Instrumentation helpers for meal photo analysis.

Metrics:
* Counter mealscan_analysis_requests_total{status,provenance}
* Counter mealscan_fallback_total{reason}
* Counter mealscan_cache_lookups_total{result}
* Counter mealscan_inference_attempts_total{outcome}
* Counter mealscan_normalization_retries_total
* Counter mealscan_normalization_failed_total{code}
* Histogram mealscan_analysis_latency_ms{provenance}
* Histogram mealscan_inference_latency_ms

`provenance` is "inference", "fallback" or "none" when normalization
failed before any record existed.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from mealscan.metrics.core import RegistrySnapshot, registry


REQUESTS_TOTAL = "mealscan_analysis_requests_total"
FALLBACK_TOTAL = "mealscan_fallback_total"
CACHE_LOOKUPS_TOTAL = "mealscan_cache_lookups_total"
INFERENCE_ATTEMPTS_TOTAL = "mealscan_inference_attempts_total"
NORMALIZATION_RETRIES_TOTAL = "mealscan_normalization_retries_total"
NORMALIZATION_FAILED_TOTAL = "mealscan_normalization_failed_total"
ANALYSIS_LATENCY_MS = "mealscan_analysis_latency_ms"
INFERENCE_LATENCY_MS = "mealscan_inference_latency_ms"


def record_request(status: str, *, provenance: str = "none") -> None:
    registry.counter(REQUESTS_TOTAL, status=status, provenance=provenance).inc()


def record_fallback(reason: str) -> None:
    """Count a fallback synthesis by its trigger (exhausted, denied, deadline)."""
    registry.counter(FALLBACK_TOTAL, reason=reason).inc()


def record_cache_lookup(hit: bool) -> None:
    registry.counter(CACHE_LOOKUPS_TOTAL, result="hit" if hit else "miss").inc()


def record_inference_attempt(outcome: str) -> None:
    """Count a single remote attempt (success, failed, invalid, denied)."""
    registry.counter(INFERENCE_ATTEMPTS_TOTAL, outcome=outcome).inc()


def record_normalization_retry() -> None:
    registry.counter(NORMALIZATION_RETRIES_TOTAL).inc()


def record_normalization_failed(code: str) -> None:
    registry.counter(NORMALIZATION_FAILED_TOTAL, code=code).inc()


def record_analysis_latency_ms(ms: float, *, provenance: str) -> None:
    registry.histogram(ANALYSIS_LATENCY_MS, provenance=provenance).observe(ms)


@contextmanager
def time_inference() -> Iterator[None]:
    """Observe the wall time of the whole retry loop, success or not."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        registry.histogram(INFERENCE_LATENCY_MS).observe(elapsed_ms)


def snapshot() -> RegistrySnapshot:
    return registry.snapshot()


def reset_all() -> None:
    """Reset every metric (test utility)."""
    registry.reset()
