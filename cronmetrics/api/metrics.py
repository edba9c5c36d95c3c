"""
Prometheus endpoints: job metrics at the configured path, service
self-metrics beside it
"""

import logging
import time

from fastapi import APIRouter, Request, Response

from ..config import MetricsConfig
from ..errors import StoreUnavailable
from ..services.exposition import CONTENT_TYPE, render_counted

logger = logging.getLogger("cronmetrics.api.metrics")


def job_metrics(request: Request) -> Response:
    """
    Derived job state in Prometheus exposition format.

    Every job is evaluated against the same instant; a store failure fails
    the whole scrape with 503.
    """
    state = request.app.state
    start = time.perf_counter()
    try:
        payload, count = render_counted(state.aggregator.collect(state.clock()))
    except StoreUnavailable:
        state.metrics.increment_scrape_errors()
        raise

    state.metrics.observe_scrape(time.perf_counter() - start, count)
    logger.debug("scrape rendered", extra={"component": "metrics", "jobs": count})
    return Response(content=payload, media_type=CONTENT_TYPE)


def service_metrics(request: Request) -> Response:
    metrics = request.app.state.metrics
    return Response(content=metrics.get_metrics(), media_type=metrics.get_content_type())


def build_router(cfg: MetricsConfig) -> APIRouter:
    router = APIRouter(tags=["Metrics"])
    router.add_api_route(cfg.path, job_metrics, methods=["GET"], summary="Job metrics")
    router.add_api_route(cfg.self_path, service_metrics, methods=["GET"], summary="Service metrics")
    return router
