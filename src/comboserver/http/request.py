"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into an HTTPRequest.

A combo request is always a small GET; everything the pipeline needs lives
in the request line and a handful of headers:

    GET /combo/site.css?resources=reset,layout&theme=dark&v=7 HTTP/1.1\r\n
    Host: assets.example.com\r\n
    Cookie: combinatorius.theme=dark; session=abc\r\n
    If-Modified-Since: Wed, 01 Jan 2026 12:00:00 GMT\r\n
    Accept-Encoding: gzip, deflate\r\n
    \r\n

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Request part          │ Consumed by                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │ path suffix (.css)    │ descriptor resolver → MimeType              │
    │ resources / v / theme │ descriptor resolver                         │
    │ Cookie                │ descriptor resolver (theme fallback)        │
    │ If-Modified-Since     │ combo handler (304 decision)                │
    │ Accept-Encoding       │ combo handler (gzip decision)               │
    │ scheme (http/https)   │ combo handler (Cache-Control public/private)│
    └─────────────────────────────────────────────────────────────────────┘

Header names are stored lowercase; HTTP headers are case-insensitive
(RFC 7230), so every lookup goes through the lowercase key.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to answer with:

        400 Bad Request                 - Malformed request syntax
        405 Method Not Allowed          - Unknown method
        413 Payload Too Large           - Request exceeds size limit
        505 HTTP Version Not Supported  - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, HEAD, ...
        path:           URL-decoded path without the query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        header dict with lowercase keys
        query_params:   parsed query string, name → list of values
        body:           raw body bytes (empty for combo GETs)
        path_params:    values captured by the router (:name / *name)
        client_address: (ip, port) of the peer
        scheme:         "https" when the connection is TLS (or a trusted
                        proxy says so via X-Forwarded-Proto), else "http"
        raw:            original request bytes
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)
    scheme: str = "http"
    raw: bytes = b""

    _cookies: Optional[Dict[str, str]] = field(default=None, repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def host(self) -> str:
        """Host header value, port included if the client sent one."""
        return self.headers.get("host", "")

    @property
    def server_name(self) -> str:
        """
        Host name without the port.

            "assets.example.com:8443" → "assets.example.com"
            "[::1]:8080"              → "::1"
        """
        host = self.host
        if host.startswith("["):
            return host[1:host.find("]")] if "]" in host else host[1:]
        return host.split(":", 1)[0]

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after this response.

        HTTP/1.1 keeps alive unless told "close";
        HTTP/1.0 closes unless told "keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def cookies(self) -> Dict[str, str]:
        """
        Cookies from the Cookie header, parsed once and cached.

            Cookie: combinatorius.theme=dark; session="abc"
            → {"combinatorius.theme": "dark", "session": "abc"}

        The first occurrence of a name wins, matching how browsers order
        cookies (most specific path first).
        """
        if self._cookies is None:
            cookies: Dict[str, str] = {}
            for pair in self.headers.get("cookie", "").split(";"):
                name, sep, value = pair.strip().partition("=")
                if not sep or not name:
                    continue
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] == '"':
                    value = value[1:-1]
                cookies.setdefault(name.strip(), value)
            self._cookies = cookies
        return self._cookies

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        First value of a query parameter.

            # URL: /combo/a.css?v=1&v=2
            request.get_query("v")  # "1"
        """
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> list[str]:
        """All values of a repeated query parameter, in URL order."""
        return self.query_params.get(name, [])

    def get_cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookies.get(name, default)

    def accepts_encoding(self, encoding: str) -> bool:
        """
        Whether Accept-Encoding lists the given coding with a non-zero q.

            Accept-Encoding: gzip;q=0, br   → accepts_encoding("gzip") is False
        """
        for item in self.headers.get("accept-encoding", "").split(","):
            coding, _, params = item.strip().partition(";")
            if coding.strip().lower() not in (encoding.lower(), "*"):
                continue
            params = params.replace(" ", "")
            if params.startswith("q="):
                try:
                    return float(params[2:]) > 0
                except ValueError:
                    return False
            return True
        return False


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSING STEPS
    ==========================================================================

        1. Enforce max_request_size                  → 413
        2. Split headers/body at \\r\\n\\r\\n
        3. Request line: METHOD SP URI SP VERSION    → 400 / 405 / 505
        4. Headers: "Name: value", lowercase names
        5. Body: exactly Content-Length bytes
        6. Scheme: from the connection, or X-Forwarded-Proto when trusted

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(
        self,
        max_request_size: int = 10 * 1024 * 1024,
        trust_forwarded_proto: bool = False,
    ):
        """
        Args:
            max_request_size: Larger requests are rejected with 413.
            trust_forwarded_proto: Honor X-Forwarded-Proto from a TLS-
                terminating proxy in front of the server.
        """
        self.max_request_size = max_request_size
        self.trust_forwarded_proto = trust_forwarded_proto

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
        secure: bool = False,
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Raw HTTP request bytes from the socket.
            client_address: Peer (ip, port), kept for logging.
            secure: True when the bytes arrived over TLS.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        # Anything past Content-Length belongs to the next pipelined request
        body = body[:content_length]

        scheme = "https" if secure else "http"
        if self.trust_forwarded_proto:
            forwarded = headers.get("x-forwarded-proto", "").split(",")[0].strip().lower()
            if forwarded in ("http", "https"):
                scheme = forwarded

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
            scheme=scheme,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            (method, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lowercase-keyed dict.

        Continuation lines (leading whitespace) extend the previous header;
        repeated headers are joined with ", " per RFC 7230 (Cookie with
        "; "). Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ("; " if name == "cookie" else ", ") + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
    secure: bool = False,
) -> HTTPRequest:
    """Parse a request with a throwaway RequestParser."""
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address, secure=secure)
