"""
METRICS - Rolling execution metrics and cost accounting

Tracks, per model instance:
- Execution samples in a bounded rolling window
- Recent success rate (feeds the pipeline's confidence blend)
- Latency, confidence and cost aggregates
- Cache hits (which never produce a sample)
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional, Protocol, runtime_checkable
import math
import threading
import time


def count_tokens(text: str) -> int:
    """
    Approximate token count: ceil(characters / 4).

    An estimate for budgeting, not a billing-accurate count.
    """
    if not text:
        return 0
    return math.ceil(len(text) / 4)


@dataclass
class MetricSample:
    """One execution outcome."""
    duration_ms: float
    input_tokens: int = 0
    output_tokens: int = 0
    success: bool = True
    confidence: float = 0.0
    cost: float = 0.0
    timestamp: float = field(default_factory=time.time)


@runtime_checkable
class MetricsSink(Protocol):
    """External receiver of metric samples."""

    def append(self, sample: MetricSample) -> None:
        ...

    def recent_success_rate(self, last_n: Optional[int] = None) -> float:
        ...


class MetricsRecorder:
    """
    Bounded rolling window of MetricSamples.

    Appends are lock-protected; many in-flight requests against one model
    report into the same recorder.
    """

    def __init__(self, window_size: int = 100, sink: Optional[MetricsSink] = None):
        self.window_size = window_size
        self.sink = sink
        self._samples: Deque[MetricSample] = deque(maxlen=window_size)
        self._lock = threading.Lock()

        self.total_requests = 0
        self.total_failures = 0
        self.total_cache_hits = 0
        self.total_cost = 0.0
        self.total_input_tokens = 0
        self.total_output_tokens = 0

    def record(self, sample: MetricSample) -> None:
        """Append a sample to the window and forward it to the sink."""
        with self._lock:
            self._samples.append(sample)
            self.total_requests += 1
            if not sample.success:
                self.total_failures += 1
            self.total_cost += sample.cost
            self.total_input_tokens += sample.input_tokens
            self.total_output_tokens += sample.output_tokens

        if self.sink is not None:
            self.sink.append(sample)

    def append(self, sample: MetricSample) -> None:
        self.record(sample)

    def record_cache_hit(self) -> None:
        with self._lock:
            self.total_cache_hits += 1

    def recent_success_rate(self, last_n: Optional[int] = None) -> float:
        """Success fraction over the last `last_n` samples (whole window by default)."""
        with self._lock:
            samples = list(self._samples)

        if last_n is not None:
            samples = samples[-last_n:] if last_n > 0 else []

        if not samples:
            return 1.0

        return sum(1 for s in samples if s.success) / len(samples)

    def get_metrics(self) -> Dict[str, Any]:
        """Aggregate view of the window plus lifetime totals."""
        with self._lock:
            samples = list(self._samples)
            totals = {
                "total_requests": self.total_requests,
                "total_failures": self.total_failures,
                "total_cache_hits": self.total_cache_hits,
                "total_cost": round(self.total_cost, 6),
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
            }

        if not samples:
            return {
                **totals,
                "window": 0,
                "success_rate": 1.0,
                "avg_latency_ms": 0.0,
                "avg_confidence": 0.0,
            }

        n = len(samples)
        return {
            **totals,
            "window": n,
            "success_rate": sum(1 for s in samples if s.success) / n,
            "avg_latency_ms": sum(s.duration_ms for s in samples) / n,
            "avg_confidence": sum(s.confidence for s in samples) / n,
        }

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self.total_requests = 0
            self.total_failures = 0
            self.total_cache_hits = 0
            self.total_cost = 0.0
            self.total_input_tokens = 0
            self.total_output_tokens = 0


class CostTracker:
    """Per-1K-token pricing for one model and a running total."""

    def __init__(self, input_cost_per_1k: float = 0.0, output_cost_per_1k: float = 0.0):
        self.input_cost_per_1k = input_cost_per_1k
        self.output_cost_per_1k = output_cost_per_1k
        self.total_cost = 0.0
        self._lock = threading.Lock()

    def calculate(self, input_tokens: int, output_tokens: int) -> float:
        """Cost of one call; also added to the running total."""
        cost = (
            input_tokens / 1000 * self.input_cost_per_1k
            + output_tokens / 1000 * self.output_cost_per_1k
        )
        with self._lock:
            self.total_cost += cost
        return cost
