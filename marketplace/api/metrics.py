"""Metrics service for tracking API and recommendation performance.

One instance is created by the service container and shared by the request
logging middleware and the recommendation engine.
"""

import threading
from typing import Dict


class MetricsService:
    """Thread-safe request counters and recommendation cache statistics."""

    def __init__(self):
        """Initialize metrics counters."""
        self._lock = threading.Lock()
        self.reset()

    def record_request(self, latency_ms: float, status_code: int) -> None:
        """Record a handled HTTP request with its latency.

        Args:
            latency_ms: Latency in milliseconds
            status_code: HTTP status code of the response
        """
        with self._lock:
            self._request_count += 1
            self._total_latency_ms += latency_ms
            if status_code >= 400:
                self._error_count += 1

            if latency_ms < self._min_latency_ms:
                self._min_latency_ms = latency_ms

            if latency_ms > self._max_latency_ms:
                self._max_latency_ms = latency_ms

    def record_cache_lookup(self, recommendation_type: str, hit: bool) -> None:
        with self._lock:
            counters = self._cache.setdefault(recommendation_type, {"hits": 0, "misses": 0})
            counters["hits" if hit else "misses"] += 1

    def record_generation(self, recommendation_type: str, latency_ms: float) -> None:
        """Record the time spent computing a recommendation list on a cache miss."""
        with self._lock:
            stats = self._generation.setdefault(
                recommendation_type, {"count": 0, "total_latency_ms": 0.0}
            )
            stats["count"] += 1
            stats["total_latency_ms"] += latency_ms

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with metrics including:
            - request_count: Total number of handled requests
            - error_count: Requests answered with a 4xx/5xx status
            - average_latency_ms: Average latency in milliseconds
            - min_latency_ms: Minimum latency observed
            - max_latency_ms: Maximum latency observed
            - recommendation_cache: Hits and misses per recommendation type
            - recommendation_generation: Count and average latency per type
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._request_count
                if self._request_count > 0
                else 0.0
            )

            generation = {
                rec_type: {
                    "count": stats["count"],
                    "average_latency_ms": round(stats["total_latency_ms"] / stats["count"], 2),
                }
                for rec_type, stats in self._generation.items()
            }

            return {
                "request_count": self._request_count,
                "error_count": self._error_count,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(self._min_latency_ms, 2) if self._min_latency_ms != float('inf') else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
                "recommendation_cache": {k: dict(v) for k, v in self._cache.items()},
                "recommendation_generation": generation,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._request_count = 0
            self._error_count = 0
            self._total_latency_ms = 0.0
            self._min_latency_ms = float('inf')
            self._max_latency_ms = 0.0
            self._cache: Dict[str, Dict[str, int]] = {}
            self._generation: Dict[str, Dict[str, float]] = {}
