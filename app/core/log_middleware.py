"""
FastAPI middleware for request/correlation ID injection.

Injects request_id and correlation_id into contextvars so structlog
processors automatically include them in every log entry, including the
charge engine's audit logs.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.structured_logging import (
    request_id_var,
    correlation_id_var,
)

logger = logging.getLogger(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Inject request_id / correlation_id into contextvars for every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        # Accept inbound headers or generate UUIDs
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        corr_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex

        rid_token = request_id_var.set(req_id)
        cid_token = correlation_id_var.set(corr_id)

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else None
            logger.info(
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path_template": request.url.path,
                    "http.status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
            request_id_var.reset(rid_token)
            correlation_id_var.reset(cid_token)

        response.headers["x-request-id"] = req_id
        response.headers["x-correlation-id"] = corr_id
        return response
