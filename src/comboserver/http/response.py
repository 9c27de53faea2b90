"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses per RFC 7230, plus the date helpers the caching
headers depend on.

=============================================================================
A COMBO RESPONSE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK                                                    │
    │  Content-Type: text/css; charset=UTF-8                              │
    │  Etag: "9f2c…e1"                    ← fingerprint of the inputs     │
    │  Expires: Thu, 01 Jan 2027 12:00:00 GMT                             │
    │  Cache-Control: private, max-age=31536000                           │
    │  Last-Modified: Wed, 01 Jan 2026 09:30:00 GMT  ← newest input mtime │
    │  Content-Length: 5120                                               │
    │  Date: Wed, 01 Jan 2026 12:00:00 GMT      ← auto-added              │
    │  Server: ComboServer/1.0                  ← auto-added              │
    │                                                                     │
    │  body{margin:0}.nav{display:flex}…                                  │
    └─────────────────────────────────────────────────────────────────────┘

And its conditional twin, sent when the client already holds that copy:

    HTTP/1.1 304 Not Modified
    Content-Length: 0
    Last-Modified: Wed, 01 Jan 2026 09:30:00 GMT

Headers set explicitly by a handler always win over the auto-added ones,
so a 304 can carry "Content-Length: 0" without the serializer touching it.

=============================================================================
HTTP DATES
=============================================================================

All HTTP dates are GMT with one-second resolution (RFC 7231 §7.1.1.1):

    Wed, 01 Jan 2026 12:00:00 GMT

format_http_date writes that form; parse_http_date reads it back (plus the
obsolete RFC 850 and asctime forms, which email.utils already understands)
and returns None for anything unparseable, so a garbage If-Modified-Since
simply means "not conditional".

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "ComboServer/1.0"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized onto a socket.

    Use ResponseBuilder for a more convenient way to construct responses.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 304 Not Modified" """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive lookup over the headers set so far."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def has_header(self, name: str) -> bool:
        return self.get_header(name) is not None

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def to_bytes(
        self,
        server_name: str = DEFAULT_SERVER_NAME,
        include_body: bool = True,
    ) -> bytes:
        """
        Serialize the response for socket.sendall().

            HTTP/1.1 200 OK\\r\\n            ← status line
            Content-Type: text/css\\r\\n
            Content-Length: 27\\r\\n         ← auto-added unless already set
            Date: ...\\r\\n                  ← auto-added
            Server: ComboServer/1.0\\r\\n    ← auto-added
            \\r\\n
            body bytes                      ← omitted for HEAD

        Args:
            server_name: Value for the Server header.
            include_body: False for HEAD requests; headers still describe
                the body a GET would have returned.
        """
        response_headers = dict(self.headers)

        if not self.has_header("Content-Length"):
            response_headers["Content-Length"] = str(len(self.body))

        if not self.has_header("Date"):
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if not self.has_header("Server"):
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        if not include_body:
            return header_bytes
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

    Each method returns self, so a response reads top to bottom:

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(MimeType.CSS.content_type())
            .etag(fingerprint)
            .last_modified(last_modified)
            .cache_for(max_age=31536000)
            .body(payload)
            .build())
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._server_name = server_name

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the raw body; strings are encoded as UTF-8."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=UTF-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Serialize data as the JSON body.

        ensure_ascii=False keeps non-ASCII characters readable instead of
        \\uXXXX escapes.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=UTF-8"
        return self

    # =========================================================================
    # CACHING METHODS
    # =========================================================================

    def no_cache(self) -> "ResponseBuilder":
        """
        Forbid caching (health checks, error pages).

            Cache-Control: no-store, no-cache, must-revalidate
            Pragma: no-cache      (HTTP/1.0 fallback)
            Expires: 0
        """
        self._headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        self._headers["Pragma"] = "no-cache"
        self._headers["Expires"] = "0"
        return self

    def cache_for(
        self,
        max_age: int,
        s_maxage: Optional[int] = None,
        public: bool = False,
    ) -> "ResponseBuilder":
        """
        Set Cache-Control for a long-lived, fingerprinted asset.

            cache_for(300)                          → private, max-age=300
            cache_for(300, s_maxage=600, public=True)
                                        → public, s-maxage=600, max-age=300

        "private" keeps shared caches (proxies, CDNs) from storing the
        response; s-maxage only matters to those shared caches, so it is
        written only for public responses.
        """
        if public:
            directives = ["public"]
            if s_maxage is not None:
                directives.append(f"s-maxage={s_maxage}")
        else:
            directives = ["private"]
        directives.append(f"max-age={max_age}")
        self._headers["Cache-Control"] = ", ".join(directives)
        return self

    def expires(self, when: datetime) -> "ResponseBuilder":
        return self.header("Expires", format_http_date(when))

    def last_modified(self, when: Union[datetime, float]) -> "ResponseBuilder":
        """Set Last-Modified from a datetime or a POSIX timestamp."""
        if not isinstance(when, datetime):
            when = datetime.fromtimestamp(when, timezone.utc)
        return self.header("Last-Modified", format_http_date(when))

    def etag(self, tag: str) -> "ResponseBuilder":
        """Set a strong ETag; the quotes are added here."""
        return self.header("Etag", f'"{tag}"')

    # =========================================================================
    # CONNECTION METHODS
    # =========================================================================

    def keep_alive(self, timeout: int = 5, max_requests: int = 100) -> "ResponseBuilder":
        self._headers["Connection"] = "keep-alive"
        self._headers["Keep-Alive"] = f"timeout={timeout}, max={max_requests}"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    # =========================================================================
    # BUILD METHODS
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: Union[datetime, float]) -> str:
    """
    Format a datetime (or POSIX timestamp) as an RFC 7231 HTTP-date.

        >>> format_http_date(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
        'Thu, 01 Jan 2026 12:00:00 GMT'

    Naive datetimes are taken to be UTC already; aware ones are converted.
    """
    if not isinstance(dt, datetime):
        dt = datetime.fromtimestamp(dt, timezone.utc)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: Optional[str]) -> Optional[float]:
    """
    Parse an HTTP-date into a POSIX timestamp (whole seconds).

    Returns None when the value is missing or not a date, so callers can
    treat a malformed conditional header as absent.

        >>> parse_http_date("Thu, 01 Jan 2026 12:00:00 GMT")
        1767268800.0
        >>> parse_http_date("yesterday") is None
        True
    """
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return float(int(dt.timestamp()))


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the responses the server and router produce on their own.
# Handlers with real headers to set use ResponseBuilder.
#
# =============================================================================

def not_modified(headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
    """
    304 Not Modified with an explicit zero Content-Length.

    Only the validator headers passed in are echoed; nothing describing a
    body is sent.
    """
    builder = ResponseBuilder().status(HTTPStatus.NOT_MODIFIED).header("Content-Length", "0")
    if headers:
        builder.headers(headers)
    return builder.build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).json({"error": message}).build()


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500; keep the message generic, the traceback goes to the log."""
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).json({"error": message}).build()


def service_unavailable(message: str = "Service Unavailable", retry_after: int = 1) -> HTTPResponse:
    return (ResponseBuilder()
        .status(HTTPStatus.SERVICE_UNAVAILABLE)
        .header("Retry-After", str(retry_after))
        .json({"error": message})
        .build())
