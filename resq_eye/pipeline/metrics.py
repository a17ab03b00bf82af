"""Rolling statistics for snapshot inference requests."""

from __future__ import annotations

from resq_eye.pipeline.types import InferenceMetrics


class InferenceStats:
    """Track request outcomes with a moving latency average."""

    def __init__(self, avg_requests: int = 30) -> None:
        """Initialize the tracker with a rolling window size."""
        self.avg_requests = avg_requests
        self.latencies: list[float] = []
        self.requests = 0
        self.rate_limited = 0
        self.failures = 0
        self.skipped = 0

    def add_request(self, elapsed_ms: float, *, rate_limited: bool = False) -> None:
        """Record one completed request."""
        self.requests += 1
        if rate_limited:
            self.rate_limited += 1
        self.latencies.append(elapsed_ms)
        if len(self.latencies) > self.avg_requests:
            self.latencies.pop(0)

    def add_failure(self) -> None:
        self.requests += 1
        self.failures += 1

    def add_skip(self) -> None:
        self.skipped += 1

    def get_metrics(self) -> InferenceMetrics:
        """Compute aggregated request metrics."""
        metrics = InferenceMetrics(
            requests=self.requests,
            rate_limited=self.rate_limited,
            failures=self.failures,
            skipped=self.skipped,
        )
        if self.latencies:
            metrics.mean_latency_ms = sum(self.latencies) / len(self.latencies)
        return metrics
