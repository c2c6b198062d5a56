"""
Request timing middleware.

Tags every request with an id (taken from X-Request-ID when the caller
sends one), reports the duration in X-Request-Duration-Ms and logs the
call. Slow calls and 5xx answers are logged above DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_SKIP_LOG = frozenset({"/api/v1/health", "/api/v1/health/ready"})

SLOW_THRESHOLD_MS = 1000


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 1),
        }
        if response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        elif duration_ms > SLOW_THRESHOLD_MS:
            # Usually a slow database save behind a structural command
            level, label = logging.WARNING, "Slow request"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(level, "%s: %s %s %d (%.0fms)", label, request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
