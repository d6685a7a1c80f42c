"""
Request Logging Middleware

Middleware that:
- Generates unique request_id for each request (or honours X-Request-ID)
- Logs request start and end with timing
- Propagates request_id to all logs via contextvars
"""
import time
import uuid
import logging
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tyrecheck.core.logging_config import set_request_id, clear_request_id

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs all HTTP requests with timing and correlation IDs.

    For each request:
    1. Uses the caller's X-Request-ID or generates a UUID
    2. Sets request_id in context for all downstream logs (pipeline included)
    3. Logs request start (method, path, upload size)
    4. Logs request end (status code, response time in ms)
    """

    EXCLUDED_PATHS = {'/health', '/docs', '/redoc', '/openapi.json'}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        should_log = path not in self.EXCLUDED_PATHS

        if should_log:
            logger.info(
                "Request started",
                extra={
                    "event_type": "request_start",
                    "method": method,
                    "path": path,
                    "client_ip": request.client.host if request.client else "unknown",
                    "content_length": request.headers.get("content-length"),
                }
            )

        try:
            response = await call_next(request)
            response_time_ms = (time.perf_counter() - start_time) * 1000
            response.headers["X-Request-ID"] = request_id

            if should_log:
                log_level = logging.INFO if response.status_code < 400 else logging.WARNING
                if response.status_code >= 500:
                    log_level = logging.ERROR

                logger.log(
                    log_level,
                    "Request completed",
                    extra={
                        "event_type": "request_complete",
                        "method": method,
                        "path": path,
                        "status_code": response.status_code,
                        "response_time_ms": round(response_time_ms, 2),
                    }
                )

            return response

        except Exception as e:
            response_time_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    "method": method,
                    "path": path,
                    "response_time_ms": round(response_time_ms, 2),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True
            )
            raise

        finally:
            clear_request_id(token)
