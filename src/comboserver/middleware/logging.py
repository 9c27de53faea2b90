"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request on the "comboserver.access" logger, in either
Apache-style text or JSON:

    127.0.0.1 - - [19/Oct/2026:10:02:11 +0000] "GET /combo/site.css" 200 5120 gzip 1.84ms
    127.0.0.1 - - [19/Oct/2026:10:02:12 +0000] "GET /combo/site.css" 304 0 - 0.31ms

    {"request_id": "a1b2c3d4", "method": "GET", "path": "/combo/site.css",
     "status_code": 304, "content_length": 0, "encoding": "-", ...}

The access logger is separate from the application loggers so it can be
routed on its own:

    logging.getLogger("comboserver.access").addHandler(file_handler)

Each response carries the request id in X-Request-ID, so a client report
can be matched to its log line.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


ACCESS_LOGGER = "comboserver.access"

logger = logging.getLogger(ACCESS_LOGGER)


@dataclass
class RequestLog:
    """
    Structured access-log entry.

    content_length is what went over the wire, so a gzipped 200 logs the
    compressed size and a 304 logs 0.
    """
    request_id: str
    method: str
    path: str
    query: str
    scheme: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    encoding: str
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "query": self.query,
            "scheme": self.scheme,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "encoding": self.encoding,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.encoding} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Access logging with timing and request ids.

    Put it first in the pipeline so its timing covers everything after it:

        pipeline.add(LoggingMiddleware(log_format="json",
                                       skip_paths=["/health/live"]))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        """
        Args:
            log_format: "text" (Apache-style) or "json".
            include_request_id: Add X-Request-ID to every response.
            log_level: Level for access lines.
            skip_paths: Paths that are never logged (probe endpoints).
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) [{request_id}]"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        if request.path in self.skip_paths:
            return response

        content_length = response.get_header("Content-Length")
        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=_query_string(request),
            scheme=request.scheme,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=int(content_length) if content_length is not None else len(response.body),
            encoding=response.get_header("Content-Encoding") or "-",
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response


def _query_string(request: HTTPRequest) -> str:
    return "&".join(
        f"{name}={value}"
        for name, values in request.query_params.items()
        for value in values
    )
