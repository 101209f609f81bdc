"""FastAPI application factory."""
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from jobmatch.config import config
from jobmatch.database import Database
from jobmatch.delivery.web.metrics import MetricsCollector, create_metrics_router
from jobmatch.delivery.web.routes import ApiRouteHandler

logger = logging.getLogger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track response times."""

    def __init__(self, app, collector: MetricsCollector):
        super().__init__(app)
        self.collector = collector

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        self.collector.record_response_time(process_time)
        response.headers["X-Process-Time"] = str(process_time)

        return response


def create_app(db: Optional[Database] = None, db_url: Optional[str] = None,
               metrics: Optional[MetricsCollector] = None) -> FastAPI:
    """Create and configure the FastAPI app.

    Args:
        db: Database to serve from; built from db_url or the environment if omitted
        db_url: Database URL used when no db is given
        metrics: Metrics collector shared by the middleware and routes

    Returns:
        Configured FastAPI application
    """
    if db is None:
        db_config = config.get_database_config()
        db = Database(db_url or db_config['url'], echo=db_config['echo'])
    metrics = metrics or MetricsCollector()

    app = FastAPI(
        title="JobMatch API",
        version="1.0",
        description="Job listing ingestion, deduplication and profile matching API",
    )
    app.state.db = db
    app.state.metrics = metrics

    app.add_middleware(MetricsMiddleware, collector=metrics)

    ApiRouteHandler(app, db, metrics=metrics, digest_config=config.get_digest_config())
    app.include_router(create_metrics_router(metrics))

    logger.info("JobMatch API configured; metrics at /metrics, docs at /docs")
    return app
