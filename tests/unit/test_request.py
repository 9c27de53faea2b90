"""
Unit tests for HTTP request parsing.
"""

import pytest

from comboserver.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_combo_get(self, sample_get_request: bytes):
        """Test parsing a combo GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/combo/site.css"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed with lowercase names."""
        request = parse_request(sample_get_request)

        assert request.host == "assets.example.com:8080"
        assert request.user_agent == "pytest"
        assert request.headers["accept-encoding"] == "gzip, deflate"
        assert request.get_header("Accept-Encoding") == "gzip, deflate"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.get_query("resources") == "a,b"
        assert request.get_query("theme") == "dark"
        assert request.get_query("v") == "3"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_repeated_query_params_keep_order(self):
        """Test that repeated parameters are kept in URL order."""
        raw = b"GET /combo/x.js?resources=b&resources=a HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.get_query_list("resources") == ["b", "a"]
        assert request.get_query_list("missing") == []

    def test_parse_url_encoded_query(self):
        """Test URL-encoded query values are decoded."""
        raw = b"GET /combo/x.css?resources=a%2Cb HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/combo/x.css"
        assert request.get_query("resources") == "a,b"

    def test_parse_invalid_method(self):
        """Test that invalid methods are rejected."""
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_unsupported_version(self):
        """Test that unknown HTTP versions get 505."""
        raw = b"GET / HTTP/2.0\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 505

    def test_parse_rejects_dot_dot_segment(self):
        """Test that paths with .. segments are rejected."""
        raw = b"GET /combo/../secret.css HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    def test_parse_request_too_large(self):
        """Test max request size enforcement."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\nHost: test\r\n" + b"X-Pad: " + b"a" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_parse_incomplete_headers(self):
        """Test that a request without the header terminator fails."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_body_trimmed_to_content_length(self):
        """Test that pipelined bytes past Content-Length are not body."""
        raw = (
            b"POST /x HTTP/1.1\r\nHost: test\r\nContent-Length: 3\r\n\r\n"
            b"abcGET /next HTTP/1.1\r\n"
        )
        request = parse_request(raw)

        assert request.body == b"abc"

    def test_header_continuation_and_repeats(self):
        """Test folded and repeated headers."""
        raw = (
            b"GET / HTTP/1.1\r\n"
            b"Host: test\r\n"
            b"X-Multi: one\r\n"
            b"X-Multi: two\r\n"
            b"X-Folded: first\r\n"
            b"  second\r\n"
            b"\r\n"
        )
        request = parse_request(raw)

        assert request.headers["x-multi"] == "one, two"
        assert request.headers["x-folded"] == "first second"


class TestRequestScheme:
    """Tests for http/https scheme detection."""

    def test_plain_connection_is_http(self, sample_get_request: bytes):
        """Test the default scheme."""
        request = parse_request(sample_get_request)

        assert request.scheme == "http"
        assert request.is_secure is False

    def test_secure_connection_is_https(self, sample_get_request: bytes):
        """Test that TLS connections produce https requests."""
        request = parse_request(sample_get_request, secure=True)

        assert request.scheme == "https"
        assert request.is_secure is True

    def test_forwarded_proto_ignored_by_default(self):
        """Test that X-Forwarded-Proto is not trusted unless configured."""
        raw = b"GET / HTTP/1.1\r\nHost: test\r\nX-Forwarded-Proto: https\r\n\r\n"

        assert RequestParser().parse(raw).scheme == "http"

    def test_forwarded_proto_when_trusted(self):
        """Test X-Forwarded-Proto from a trusted proxy."""
        raw = b"GET / HTTP/1.1\r\nHost: test\r\nX-Forwarded-Proto: HTTPS, http\r\n\r\n"
        parser = RequestParser(trust_forwarded_proto=True)

        assert parser.parse(raw).scheme == "https"

    def test_forwarded_proto_garbage_keeps_connection_scheme(self):
        """Test that an unknown forwarded value does not change the scheme."""
        raw = b"GET / HTTP/1.1\r\nHost: test\r\nX-Forwarded-Proto: gopher\r\n\r\n"
        parser = RequestParser(trust_forwarded_proto=True)

        assert parser.parse(raw, secure=True).scheme == "https"


class TestHTTPRequest:
    """Tests for HTTPRequest accessors."""

    def test_keep_alive_http11_default(self):
        """Test HTTP/1.1 defaults to keep-alive."""
        request = HTTPRequest(method="GET", path="/", version="HTTP/1.1", headers={})
        assert request.is_keep_alive is True

    def test_keep_alive_http11_close(self):
        """Test HTTP/1.1 with Connection: close."""
        request = HTTPRequest(
            method="GET", path="/", version="HTTP/1.1",
            headers={"connection": "close"},
        )
        assert request.is_keep_alive is False

    def test_keep_alive_http10_default(self):
        """Test HTTP/1.0 defaults to close."""
        request = HTTPRequest(method="GET", path="/", version="HTTP/1.0", headers={})
        assert request.is_keep_alive is False

    def test_keep_alive_http10_explicit(self):
        """Test HTTP/1.0 with explicit keep-alive."""
        request = HTTPRequest(
            method="GET", path="/", version="HTTP/1.0",
            headers={"connection": "keep-alive"},
        )
        assert request.is_keep_alive is True

    def test_server_name_strips_port(self):
        """Test host without the port."""
        request = HTTPRequest(method="GET", path="/", headers={"host": "cdn.example.com:8443"})
        assert request.server_name == "cdn.example.com"

    def test_server_name_ipv6(self):
        """Test bracketed IPv6 hosts."""
        request = HTTPRequest(method="GET", path="/", headers={"host": "[::1]:8080"})
        assert request.server_name == "::1"

    def test_server_name_missing_host(self):
        """Test a request with no Host header."""
        request = HTTPRequest(method="GET", path="/")
        assert request.server_name == ""

    def test_cookies(self, sample_get_request: bytes):
        """Test cookie parsing, including quoted values."""
        request = parse_request(sample_get_request)

        assert request.cookies == {"combinatorius.theme": "light", "session": "abc"}
        assert request.get_cookie("combinatorius.theme") == "light"
        assert request.get_cookie("missing") is None

    def test_cookie_first_occurrence_wins(self):
        """Test duplicate cookie names."""
        request = HTTPRequest(
            method="GET", path="/",
            headers={"cookie": "theme=one; theme=two; broken; =x"},
        )

        assert request.cookies == {"theme": "one"}

    def test_repeated_cookie_headers_are_merged(self):
        """Test two Cookie header lines."""
        raw = b"GET / HTTP/1.1\r\nHost: t\r\nCookie: a=1\r\nCookie: b=2\r\n\r\n"
        request = parse_request(raw)

        assert request.cookies == {"a": "1", "b": "2"}

    @pytest.mark.parametrize("header,expected", [
        ("gzip, deflate", True),
        ("deflate, GZIP", True),
        ("gzip;q=0.5", True),
        ("gzip;q=0", False),
        ("gzip; q=0.0", False),
        ("*", True),
        ("br", False),
        ("", False),
    ])
    def test_accepts_encoding(self, header: str, expected: bool):
        """Test Accept-Encoding evaluation."""
        request = HTTPRequest(method="GET", path="/", headers={"accept-encoding": header})
        assert request.accepts_encoding("gzip") is expected
