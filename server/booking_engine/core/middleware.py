"""Custom middleware for request correlation, trace context, logging and request metrics."""

import logging
import re
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .observability import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Adds a unique request ID to each request.

    The ID is taken from the X-Request-ID header or generated, stored on
    ``request.state``, bound into the structlog context for the duration of
    the request and echoed on the response.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


class TraceContextMiddleware(BaseHTTPMiddleware):
    """
    Handles W3C Trace Context headers.

    https://www.w3.org/TR/trace-context/
    """

    _traceparent_pattern = re.compile(
        r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$"
    )

    def _parse_traceparent(self, traceparent: str) -> Optional[dict]:
        match = self._traceparent_pattern.match(traceparent)
        if not match:
            return None

        version, trace_id, parent_id, flags = match.groups()
        if version != "00" or trace_id == "0" * 32 or parent_id == "0" * 16:
            return None

        return {"trace_id": trace_id, "parent_id": parent_id, "flags": flags}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        tracestate = request.headers.get("tracestate")
        incoming = None
        traceparent = request.headers.get("traceparent")
        if traceparent:
            incoming = self._parse_traceparent(traceparent)

        if incoming:
            trace_id = incoming["trace_id"]
            parent_span_id = incoming["parent_id"]
            flags = incoming["flags"]
        else:
            trace_id = uuid.uuid4().hex
            parent_span_id = None
            flags = "01"

        span_id = uuid.uuid4().hex[:16]
        request.state.trace_context = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": parent_span_id,
            "flags": flags,
            "tracestate": tracestate,
        }

        response = await call_next(request)

        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-{flags}"
        if tracestate:
            response.headers["tracestate"] = tracestate
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs HTTP requests and responses and records request metrics.

    Gateway webhooks and health probes are high-volume, so paths in
    ``skip_paths`` are neither logged nor measured.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/ready", "/metrics", "/favicon.ico"]

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        trace_context = getattr(request.state, "trace_context", {})
        log_data = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "trace_id": trace_context.get("trace_id", "unknown"),
            "method": request.method,
            "path": path,
            "client_ip": self._get_client_ip(request),
            "user_agent": request.headers.get("User-Agent", "unknown"),
        }
        logger.info("HTTP request started", extra=log_data)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_COUNT.labels(
                method=request.method, endpoint=path, status_code=str(status_code)
            ).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=path).observe(duration)

            log_data.update({
                "status_code": status_code,
                "duration_ms": round(duration * 1000, 2),
            })
            if status_code >= 500:
                logger.error("HTTP request completed with server error", extra=log_data)
            elif status_code >= 400:
                logger.warning("HTTP request completed with client error", extra=log_data)
            else:
                logger.info("HTTP request completed successfully", extra=log_data)


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Setup all middleware on the FastAPI app.

    Middleware added last runs first, so request IDs and trace context are
    available to the logging middleware.
    """
    if enable_logging:
        app.add_middleware(LoggingMiddleware)

    app.add_middleware(TraceContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    logger.debug("Middleware configured", extra={"environment": settings.environment})
