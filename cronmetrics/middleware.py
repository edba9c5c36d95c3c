import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging_config import trace_id_var

logger = logging.getLogger("cronmetrics.http")

# probe paths are logged only when they fail
QUIET_PATHS = ("/health",)


class TracingMiddleware(BaseHTTPMiddleware):
    """ASGI middleware for request tracing and structured logging"""

    def __init__(self, app: ASGIApp, metrics=None, quiet_paths=QUIET_PATHS):
        super().__init__(app)
        self.metrics = metrics
        self.quiet_paths = set(quiet_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate or reuse trace ID
        trace_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = trace_id_var.set(trace_id)

        client_ip = request.client.host if request.client else "unknown"
        start_time = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
                logger.error(f"Request failed: {e}", extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": 500,
                    "latency_ms": latency_ms,
                    "client_ip": client_ip,
                })
                if self.metrics is not None:
                    self.metrics.increment_requests(500, request.url.path)
                raise

            latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
            self._log_request(request.method, request.url.path, response.status_code, latency_ms, client_ip, trace_id)
            if self.metrics is not None:
                self.metrics.increment_requests(response.status_code, request.url.path)

            response.headers["X-Request-ID"] = trace_id
            return response
        finally:
            trace_id_var.reset(token)

    def _log_request(self, method: str, path: str, status: int, latency_ms: float,
                     client_ip: str, trace_id: str):
        """Log HTTP request with structured data"""
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        elif path in self.quiet_paths:
            return
        else:
            level = logging.INFO

        logger.log(level, f"{method} {path} {status}", extra={
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
            "client_ip": client_ip,
            "trace_id": trace_id,
        })
