"""
Flask middleware for structured request logging and HTTP metrics.
"""

import time

from flask import Flask, request, g

from watchme.logging_config import get_logger
from watchme.logging_context import set_request_id, clear_context
from watchme.metrics import http_requests_total, http_request_duration_seconds

logger = get_logger(__name__)


def init_logging_middleware(app: Flask):
    """
    Register request hooks on `app`.

    Each request gets a request id (echoed back as X-Request-ID), a start
    and completion log line, and a sample in the HTTP metrics.
    """

    @app.before_request
    def before_request_logging():
        g.request_id = set_request_id(request.headers.get('X-Request-ID'))
        g.request_start_time = time.time()

        logger.info(
            "request_started",
            method=request.method,
            path=request.path,
            remote_addr=request.remote_addr,
        )

    @app.after_request
    def after_request_logging(response):
        duration = None
        if hasattr(g, 'request_start_time'):
            duration = time.time() - g.request_start_time

        endpoint = request.endpoint or 'unmatched'
        http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        if duration is not None:
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)

        logger.info(
            "request_completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2) if duration is not None else None,
        )

        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id
        return response

    @app.teardown_request
    def teardown_request_logging(exception=None):
        if exception:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.path,
                error=str(exception),
            )
        clear_context()
