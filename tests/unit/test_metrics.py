"""Unit tests for inference statistics."""

from __future__ import annotations

import pytest

from resq_eye.pipeline.metrics import InferenceStats


class TestInferenceStats:
    """Tests for InferenceStats."""

    def test_empty(self):
        metrics = InferenceStats().get_metrics()

        assert metrics.requests == 0
        assert metrics.mean_latency_ms == 0.0

    def test_counts_outcomes(self):
        stats = InferenceStats()
        stats.add_request(100.0)
        stats.add_request(300.0, rate_limited=True)
        stats.add_failure()
        stats.add_skip()

        metrics = stats.get_metrics()

        assert metrics.requests == 3
        assert metrics.rate_limited == 1
        assert metrics.failures == 1
        assert metrics.skipped == 1
        assert metrics.mean_latency_ms == pytest.approx(200.0)

    def test_latency_window_is_bounded(self):
        stats = InferenceStats(avg_requests=2)
        for latency in (1000.0, 10.0, 30.0):
            stats.add_request(latency)

        assert stats.get_metrics().mean_latency_ms == pytest.approx(20.0)
