"""Metrics endpoint for monitoring ingest throughput and errors."""
import time
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from collections import defaultdict, deque
from fastapi import APIRouter
import logging

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """Collects and stores ingest metrics."""

    # Ingest metrics
    batches_total: int = 0
    items_received_total: int = 0
    items_by_source: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    opportunities_inserted: int = 0
    opportunities_updated: int = 0
    scores_written: int = 0

    # Error metrics
    ingest_errors_total: int = 0
    ingest_errors_by_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unauthorized_total: int = 0

    # Seconds per HTTP request, newest last
    response_times: deque = field(default_factory=lambda: deque(maxlen=100))

    start_time: float = field(default_factory=time.time)

    def record_batch(self, source: str, items: int, inserted: int, updated: int,
                     scores: int) -> None:
        """Record a successfully ingested batch.

        Args:
            source: Site the batch came from
            items: Number of items in the batch
            inserted: Opportunities created
            updated: Opportunities updated
            scores: Profile scores written
        """
        self.batches_total += 1
        self.items_received_total += items
        self.items_by_source[source] += items
        self.opportunities_inserted += inserted
        self.opportunities_updated += updated
        self.scores_written += scores

    def record_ingest_error(self, error_type: str = "generic") -> None:
        """Record a failed ingest request.

        Args:
            error_type: Type of error (validation, database, etc.)
        """
        self.ingest_errors_total += 1
        self.ingest_errors_by_type[error_type] += 1

    def record_unauthorized(self) -> None:
        self.unauthorized_total += 1

    def record_response_time(self, duration: float) -> None:
        """Keep the duration (seconds) of one HTTP request; only the latest 100 are kept."""
        self.response_times.append(duration)

    def get_success_rate(self) -> float:
        """Share of ingest requests that succeeded, as a percentage (0-100)."""
        total = self.batches_total + self.ingest_errors_total
        if total == 0:
            return 100.0
        return (self.batches_total / total) * 100.0

    def get_average_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    def get_uptime(self) -> float:
        return time.time() - self.start_time


def create_metrics_router(collector: Optional[MetricsCollector] = None) -> APIRouter:
    """Build the /metrics router over a collector (a fresh one if omitted)."""
    metrics = collector or MetricsCollector()
    router = APIRouter(prefix="/metrics", tags=["metrics"])

    @router.get("/")
    async def get_metrics() -> Dict[str, Any]:
        return {
            "ingest": {
                "batches_total": metrics.batches_total,
                "items_received_total": metrics.items_received_total,
                "items_by_source": dict(metrics.items_by_source),
                "opportunities_inserted": metrics.opportunities_inserted,
                "opportunities_updated": metrics.opportunities_updated,
                "scores_written": metrics.scores_written,
            },
            "errors": {
                "ingest_errors_total": metrics.ingest_errors_total,
                "ingest_errors_by_type": dict(metrics.ingest_errors_by_type),
                "unauthorized_total": metrics.unauthorized_total,
            },
            "performance": {
                "uptime_seconds": metrics.get_uptime(),
                "average_response_time_ms": metrics.get_average_response_time() * 1000,
            },
            "success_rate_percent": metrics.get_success_rate(),
        }

    @router.get("/health")
    async def health_check() -> Dict[str, Any]:
        """Coarse service state derived from ingest success rate and latency."""
        success_rate = metrics.get_success_rate()
        latency = metrics.get_average_response_time()

        if success_rate < 50 or latency > 5.0:
            state = "unhealthy"
        elif success_rate < 80:
            state = "degraded"
        else:
            state = "healthy"

        return {
            "status": state,
            "success_rate_percent": success_rate,
            "average_response_time_ms": latency * 1000,
            "uptime_seconds": metrics.get_uptime(),
            "batches_total": metrics.batches_total,
            "errors_total": metrics.ingest_errors_total,
        }

    return router
