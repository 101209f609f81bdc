"""Tests for metrics endpoint functionality."""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from jobmatch.delivery.web.metrics import MetricsCollector, create_metrics_router


class TestMetricsEndpoint:
    """Test metrics endpoint functionality."""

    @pytest.fixture
    def collector(self):
        return MetricsCollector()

    @pytest.fixture
    def client(self, collector):
        app = FastAPI()
        app.include_router(create_metrics_router(collector))
        return TestClient(app)

    def test_metrics_endpoint_returns_structure(self, client, collector):
        collector.record_batch("linkedin", items=3, inserted=2, updated=1, scores=6)

        data = client.get("/metrics/").json()

        assert data["ingest"]["batches_total"] == 1
        assert data["ingest"]["items_by_source"] == {"linkedin": 3}
        assert data["ingest"]["opportunities_inserted"] == 2
        assert data["ingest"]["scores_written"] == 6
        assert "unauthorized_total" in data["errors"]
        assert "uptime_seconds" in data["performance"]

    def test_health_endpoint_healthy_by_default(self, client):
        data = client.get("/metrics/health").json()

        assert data["status"] == "healthy"
        assert data["success_rate_percent"] == 100.0

    @pytest.mark.parametrize("ok, failed, expected", [
        (9, 1, "healthy"),
        (7, 3, "degraded"),
        (4, 6, "unhealthy"),
    ])
    def test_health_status_from_success_rate(self, client, collector, ok, failed, expected):
        for _ in range(ok):
            collector.record_batch("gupy", 1, 1, 0, 0)
        for _ in range(failed):
            collector.record_ingest_error("database")

        assert client.get("/metrics/health").json()["status"] == expected

    def test_slow_responses_are_unhealthy(self, client, collector):
        collector.record_response_time(6.0)
        assert client.get("/metrics/health").json()["status"] == "unhealthy"


def test_average_response_time_window():
    collector = MetricsCollector()
    for _ in range(150):
        collector.record_response_time(1.0)
    collector.record_response_time(101.0)

    assert len(collector.response_times) == 100
    assert collector.get_average_response_time() == pytest.approx(2.0)
