"""
Request Logging Middleware for PayFlow.

Structured request/response logging with timing and request IDs.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from payflow.core.rate_limit import client_ip

logger = logging.getLogger("payflow.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every HTTP request and its outcome.

    - Request ID tracking (X-Request-Id is honoured or generated)
    - Response timing (X-Response-Time)
    - Log level follows the status class
    """

    # Probes are polled constantly and would drown the log
    EXCLUDE_PATHS = {
        "/api/healthz",
        "/api/readyz",
        "/favicon.ico",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDE_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4())[:8])
        start_time = time.perf_counter()

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "client_ip": client_ip(request),
        }
        logger.debug("Request started: %s %s", request.method, path, extra=log_data)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log_data.update({"status_code": 500, "duration_ms": round(duration_ms, 2)})
            logger.exception(
                "Request failed: %s %s -> 500 (%.2fms) - %s",
                request.method, path, duration_ms, str(e),
                extra=log_data,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        })
        user_id = getattr(request.state, "user_id", None)
        if user_id:
            log_data["user_id"] = user_id

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "Request completed: %s %s -> %d (%.2fms)",
            request.method, path, response.status_code, duration_ms,
            extra=log_data,
        )

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
