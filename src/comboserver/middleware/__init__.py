"""
Middleware: code that wraps every request between the server and the
router.

    LoggingMiddleware   access log line + X-Request-ID

Compression is not a middleware here: gzip bytes are produced once per
payload and cached alongside it by the combo handler, instead of being
recomputed on every response.
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    NextHandler,
)
from .logging import LoggingMiddleware, RequestLog, ACCESS_LOGGER

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
    "ACCESS_LOGGER",
]
