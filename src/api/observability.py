import json
import logging
import os
import time
from datetime import UTC, datetime
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator

from src.core.common.log_context import (
    bound_log_context,
    correlation_id_var,
    request_id_var,
    trace_id_var,
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", "systematic-plans"),
            "environment": os.getenv("ENVIRONMENT", "local"),
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get() or None,
            "request_id": request_id_var.get() or None,
            "trace_id": trace_id_var.get() or None,
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps({k: v for k, v in payload.items() if v is not None}, default=str)


def configure_logging() -> None:
    """Route every logger through one JSON handler on the root logger.

    Shared by the API process and the standalone scheduler so both emit the same
    structured lines.
    """
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)


def setup_observability(app: FastAPI) -> None:
    configure_logging()
    Instrumentator(excluded_handlers=["/metrics", "/health"]).instrument(app).expose(app)
    access_logger = logging.getLogger("http.access")

    @app.middleware("http")
    async def _request_observability_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        correlation_id = request.headers.get("X-Correlation-Id") or f"corr_{uuid4().hex[:12]}"
        request_id = request.headers.get("X-Request-Id") or f"req_{uuid4().hex[:12]}"
        trace_id = trace_id_from_traceparent(request.headers.get("traceparent", ""))

        with bound_log_context(
            correlation_id=correlation_id, request_id=request_id, trace_id=trace_id
        ):
            status_code = 500
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                access_logger.info(
                    "request.completed",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "endpoint": request.url.path,
                            "status_code": status_code,
                            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                        }
                    },
                )

        response.headers.setdefault("X-Correlation-Id", correlation_id)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Trace-Id"] = trace_id
        response.headers["traceparent"] = f"00-{trace_id}-0000000000000001-01"
        return response


def trace_id_from_traceparent(traceparent: str) -> str:
    """Reuse the W3C trace id from an inbound ``traceparent`` header, else start a new trace."""
    parts = traceparent.split("-") if traceparent else []
    if len(parts) >= 4 and len(parts[1]) == 32:
        return parts[1]
    return uuid4().hex
