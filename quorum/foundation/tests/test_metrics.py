"""
Metrics and cost tests.
"""

import pytest

from quorum.foundation.metrics import (
    CostTracker, MetricSample, MetricsRecorder, MetricsSink, count_tokens,
)


class ListSink:
    def __init__(self):
        self.samples = []

    def append(self, sample):
        self.samples.append(sample)

    def recent_success_rate(self, last_n=None):
        return 1.0


class TestTokenCount:
    """Tests for the token estimate."""

    def test_ceil_of_quarter_length(self):
        """Test ceil(len / 4)."""
        assert count_tokens("") == 0
        assert count_tokens("abcd") == 1
        assert count_tokens("abcde") == 2
        assert count_tokens("x" * 400) == 100


class TestMetricsRecorder:
    """Tests for MetricsRecorder."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sink = ListSink()
        self.metrics = MetricsRecorder(window_size=3, sink=self.sink)

    def test_empty_success_rate(self):
        """Test that an empty window reports full success."""
        assert self.metrics.recent_success_rate() == 1.0

    def test_window_is_bounded(self):
        """Test rolling window and lifetime totals."""
        for success in (False, True, True, True):
            self.metrics.record(MetricSample(duration_ms=10.0, success=success, cost=0.5))

        data = self.metrics.get_metrics()
        assert data["window"] == 3
        assert data["success_rate"] == 1.0
        assert data["total_requests"] == 4
        assert data["total_failures"] == 1
        assert data["total_cost"] == 2.0

    def test_last_n(self):
        """Test success rate over the most recent samples."""
        self.metrics.record(MetricSample(duration_ms=1.0, success=True))
        self.metrics.record(MetricSample(duration_ms=1.0, success=False))

        assert self.metrics.recent_success_rate() == 0.5
        assert self.metrics.recent_success_rate(1) == 0.0

    def test_forwards_to_sink(self):
        """Test external sink."""
        sample = MetricSample(duration_ms=3.0)
        self.metrics.record(sample)
        assert self.sink.samples == [sample]
        assert isinstance(self.sink, MetricsSink)

    def test_cache_hits_do_not_add_samples(self):
        """Test that cache hits are counted separately."""
        self.metrics.record_cache_hit()
        data = self.metrics.get_metrics()
        assert data["total_cache_hits"] == 1
        assert data["window"] == 0

    def test_reset(self):
        """Test clearing."""
        self.metrics.record(MetricSample(duration_ms=1.0))
        self.metrics.reset()
        assert self.metrics.get_metrics()["total_requests"] == 0


class TestCostTracker:
    """Tests for CostTracker."""

    def test_per_1k_pricing(self):
        """Test cost calculation and running total."""
        tracker = CostTracker(input_cost_per_1k=0.001, output_cost_per_1k=0.002)

        assert tracker.calculate(1000, 500) == pytest.approx(0.002)
        tracker.calculate(2000, 0)
        assert tracker.total_cost == pytest.approx(0.004)
