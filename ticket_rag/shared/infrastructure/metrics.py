"""
Pipeline Metrics
================

In-process counters for pipeline activity.

A single ``MetricsCollector`` is built by the service factory and handed to
the components that record events; there is no module-level instance.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class SystemMetrics:
    """Point-in-time snapshot of the collector."""
    request_count: int
    error_count: int
    error_rate: float
    average_processing_time_ms: float
    embedding_calls: int
    rerank_calls: int
    vector_searches: int
    llm_calls: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success_rate(self) -> float:
        """Share of processed tickets that produced a result."""
        if self.request_count == 0:
            return 1.0
        return 1.0 - self.error_rate


class MetricsCollector:
    """
    Thread-safe counters for pipeline events.

    ``record_request`` counts every ticket that reached the pipeline;
    ``record_error`` counts those that failed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = self._zeroed()

    @staticmethod
    def _zeroed() -> dict:
        return {
            "request_count": 0,
            "error_count": 0,
            "processing_time_total": 0,
            "embedding_calls": 0,
            "rerank_calls": 0,
            "vector_searches": 0,
            "llm_calls": 0,
        }

    def _increment(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += amount

    def record_request(self, processing_time_ms: int) -> None:
        """Record a processed ticket and its elapsed time."""
        with self._lock:
            self._counters["request_count"] += 1
            self._counters["processing_time_total"] += processing_time_ms

    def record_error(self) -> None:
        """Record a ticket that failed (also counted as a request)."""
        with self._lock:
            self._counters["request_count"] += 1
            self._counters["error_count"] += 1

    def record_embedding_call(self) -> None:
        self._increment("embedding_calls")

    def record_rerank_call(self) -> None:
        self._increment("rerank_calls")

    def record_vector_search(self) -> None:
        self._increment("vector_searches")

    def record_llm_call(self) -> None:
        self._increment("llm_calls")

    def get_metrics(self) -> SystemMetrics:
        """Return a snapshot of all counters."""
        with self._lock:
            counters = dict(self._counters)

        requests = counters["request_count"]
        succeeded = requests - counters["error_count"]
        average = counters["processing_time_total"] / succeeded if succeeded > 0 else 0.0
        error_rate = counters["error_count"] / requests if requests > 0 else 0.0

        return SystemMetrics(
            request_count=requests,
            error_count=counters["error_count"],
            error_rate=error_rate,
            average_processing_time_ms=average,
            embedding_calls=counters["embedding_calls"],
            rerank_calls=counters["rerank_calls"],
            vector_searches=counters["vector_searches"],
            llm_calls=counters["llm_calls"],
        )

    def reset(self) -> None:
        """Zero every counter."""
        with self._lock:
            self._counters = self._zeroed()
