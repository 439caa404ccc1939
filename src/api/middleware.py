"""
HTTP middleware.

* ``limiter``                -- slowapi limiter keyed by client address
* ``RequestLoggingMiddleware`` -- correlation id + one log line per request
"""

from __future__ import annotations

import logging
import time
import uuid

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("src.api.requests")

CORRELATION_HEADER = "X-Correlation-ID"

limiter = Limiter(key_func=get_remote_address)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s failed [cid=%s]", request.method, request.url.path, correlation_id
            )
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(
            "%s %s -> %d in %.1fms [cid=%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            correlation_id,
        )
        return response
