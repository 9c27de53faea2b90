"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates raw socket bytes into structured HTTP messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py      bytes → HTTPRequest (headers, query, cookies,      │
    │                 scheme)                                             │
    │ response.py     HTTPResponse / ResponseBuilder → bytes,             │
    │                 HTTP-date formatting and parsing                    │
    │ router.py       (method, path) → handler, 404 / 405                 │
    │ status_codes.py HTTPStatus with reason phrases                      │
    │ mime_types.py   path suffix → MimeType (CSS / JS)                   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    parse_http_date,
    not_modified,
    not_found,
    method_not_allowed,
    internal_error,
    service_unavailable,
)
from .router import Router, Route, RouteMatch
from .status_codes import HTTPStatus
from .mime_types import MimeType, get_mime_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "parse_http_date",

    # Response convenience functions
    "not_modified",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "service_unavailable",

    # Routing
    "Router",
    "Route",
    "RouteMatch",

    # Status codes
    "HTTPStatus",

    # MIME types
    "MimeType",
    "get_mime_type",
]
