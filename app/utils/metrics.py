# =============================================
# File: app/utils/metrics.py
# Purpose: In-process recommender counters, latency histogram and stage timings for /metrics
# =============================================
from __future__ import annotations
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional
import threading
import time

# Upper bounds in ms; a final overflow slot counts everything slower
LATENCY_BUCKETS_MS: List[int] = [50, 100, 200, 500, 1000, 2000, 5000, 10000]

# Samples kept per endpoint / pipeline stage for avg and p95
SAMPLE_WINDOW = 1000

COUNTER_NAMES = ("requests_total", "rate_limit_hits_total", "blocks_total", "failures_total")


def _summary(samples: Deque[float]) -> Dict[str, float]:
    if not samples:
        return {"count": 0.0, "avg_latency_ms": 0.0, "p95_latency_ms": 0.0}
    ordered = sorted(samples)
    return {
        "count": float(len(samples)),
        "avg_latency_ms": sum(ordered) / len(ordered),
        "p95_latency_ms": ordered[int(0.95 * (len(ordered) - 1))],
    }


class MetricsRegistry:
    """
    Process-local metrics for the recommendation service.

    Thread-safe; one shared instance backs the module-level helpers below.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.counters: Dict[str, int] = {name: 0 for name in COUNTER_NAMES}
            self.failure_kinds: Dict[str, int] = defaultdict(int)
            self.naming_models: Dict[str, int] = defaultdict(int)
            self.latency_counts: List[int] = [0] * (len(LATENCY_BUCKETS_MS) + 1)
            self.endpoint_hits: Dict[str, int] = defaultdict(int)
            self.endpoint_samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=SAMPLE_WINDOW))
            self.stage_samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=SAMPLE_WINDOW))

    def _bucket(self, ms: int) -> int:
        for i, bound in enumerate(LATENCY_BUCKETS_MS):
            if ms <= bound:
                return i
        return len(LATENCY_BUCKETS_MS)

    def request(self, latency_ms: int, error_kind: Optional[str] = None) -> None:
        with self._lock:
            self.counters["requests_total"] += 1
            if error_kind:
                self.counters["failures_total"] += 1
                self.failure_kinds[error_kind] += 1
            self.latency_counts[self._bucket(int(latency_ms))] += 1

    def block(self, model: Optional[str]) -> None:
        with self._lock:
            self.counters["blocks_total"] += 1
            if model:
                self.naming_models[model] += 1

    def rate_limited(self) -> None:
        with self._lock:
            self.counters["rate_limit_hits_total"] += 1

    def endpoint(self, method: str, path: str, latency_ms: float) -> None:
        key = f"{method.upper()} {path}"
        with self._lock:
            self.endpoint_hits[key] += 1
            self.endpoint_samples[key].append(float(latency_ms))

    def stage(self, name: str, latency_ms: float) -> None:
        with self._lock:
            self.stage_samples[name].append(float(latency_ms))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            endpoints = {}
            for key, samples in self.endpoint_samples.items():
                row = _summary(samples)
                row["count"] = float(self.endpoint_hits[key])
                endpoints[key] = row
            return {
                "counters": dict(self.counters),
                "failure_kinds": dict(self.failure_kinds),
                "naming_models": dict(self.naming_models),
                "latency_ms": {
                    "buckets": list(LATENCY_BUCKETS_MS) + ["+Inf"],
                    "counts": list(self.latency_counts),
                },
                "stages": {name: _summary(s) for name, s in self.stage_samples.items()},
                "performance": {
                    "endpoints": endpoints,
                    "generated_at": time.time(),
                },
            }


_registry = MetricsRegistry()


def record_request(latency_ms: int, error_kind: str | None = None) -> None:
    _registry.request(latency_ms, error_kind)


def record_block(model: str | None) -> None:
    _registry.block(model)


def record_rate_limit_hit() -> None:
    _registry.rate_limited()


def record_endpoint(method: str, path: str, latency_ms: float) -> None:
    _registry.endpoint(method, path, latency_ms)


def record_stage(name: str, latency_ms: float) -> None:
    _registry.stage(name, latency_ms)


def snapshot() -> Dict[str, Any]:
    return _registry.snapshot()


def reset() -> None:
    _registry.reset()
