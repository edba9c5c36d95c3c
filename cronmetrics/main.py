import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api.health import router as health_router
from .api.jobs import router as jobs_router
from .api.metrics import build_router as build_metrics_router
from .api.results import router as results_router
from .config import Settings, load_settings
from .db import Database
from .errors import CronMetricsError
from .middleware import TracingMiddleware
from .services.aggregator import StatusAggregator
from .services.ingest import ResultIngestor
from .services.prometheus_metrics import ServiceMetrics
from .services.store import JobStore
from .utils.clock import utcnow

logger = logging.getLogger("cronmetrics.api")


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings: Settings = application.state.settings
    logger.info("cronmetrics starting up", extra={
        "component": "api", "version": __version__, "dev": settings.dev,
    })

    application.state.db.init_schema()

    logger.info("cronmetrics ready", extra={
        "component": "api", "metrics_path": settings.metrics.path,
    })
    try:
        yield
    finally:
        application.state.db.dispose()
        logger.info("cronmetrics shutting down", extra={"component": "api"})


async def cronmetrics_error_handler(request: Request, exc: CronMetricsError):
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.detail, extra={"path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "invalid request")
    detail = f"{where}: {message}" if where else message
    return JSONResponse(status_code=400, content={"detail": detail})


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = utcnow,
    db: Optional[Database] = None,
) -> FastAPI:
    """Build the HTTP application and its collaborators from settings"""
    settings = settings or load_settings()
    db = db or Database(settings.database)
    metrics = ServiceMetrics()
    store = JobStore(db)

    application = FastAPI(title="cronmetrics", version=__version__, lifespan=lifespan)
    application.state.settings = settings
    application.state.clock = clock
    application.state.db = db
    application.state.store = store
    application.state.metrics = metrics
    application.state.ingestor = ResultIngestor(store, clock=clock, metrics=metrics)
    application.state.aggregator = StatusAggregator(store)

    application.add_middleware(TracingMiddleware, metrics=metrics)
    application.add_exception_handler(CronMetricsError, cronmetrics_error_handler)
    application.add_exception_handler(RequestValidationError, validation_error_handler)

    application.include_router(health_router)
    application.include_router(jobs_router)
    application.include_router(results_router)
    application.include_router(build_metrics_router(settings.metrics))
    return application
