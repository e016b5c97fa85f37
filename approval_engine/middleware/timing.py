"""
Request context & timing middleware.

Before each request: assign a request id (honouring an upstream X-Request-ID)
and note the acting user from X-User-Email, both on flask.g so
RequestContextFilter can stamp them on every log record.

After each request: add X-Request-ID / X-Request-Duration-Ms headers and log
the request, at WARNING when it took longer than SLOW_REQUEST_MS.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Liveness probes are polled constantly; never logged
_SKIP_LOG = frozenset({"/api/v1/health"})


def init_request_timing(app: Flask):
    """Register before/after hooks for request context and timing."""
    slow_ms = app.config.get("SLOW_REQUEST_MS", 1000)

    @app.before_request
    def _open_request_context():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.actor_email = (request.headers.get("X-User-Email") or "").strip().lower()

    @app.after_request
    def _close_request_context(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
        }
        if duration_ms > slow_ms:
            level = logging.WARNING
        elif response.status_code >= 500:
            level = logging.ERROR
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s -> %d", request.method, request.path, response.status_code, extra=extra)
        return response
