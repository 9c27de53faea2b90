"""
Unit tests for the combo request handler.
"""

import gzip
import os

import pytest

from comboserver.combo.cache import ContentCache
from comboserver.handlers.combo import (
    ERROR_PREFIX,
    ComboHandler,
    etag_matches,
    theme_cookie,
)
from comboserver.http.response import format_http_date
from comboserver.http.status_codes import HTTPStatus

from conftest import NEW_MTIME, OLD_MTIME, write_file


NOW = 1_750_000_000.0
PLAIN_AB = b".a { color: red; }\n.b { color: blue; }"


@pytest.fixture
def make_handler(make_config):
    def factory(**overrides):
        return ComboHandler(make_config(**overrides), cache=ContentCache(), clock=lambda: NOW)
    return factory


@pytest.fixture
def handler(make_handler):
    return make_handler()


class TestSuccessfulResponse:
    """Tests for 200 responses."""

    def test_body_and_content_headers(self, handler, make_request):
        """Test the combined body and its content headers."""
        response = handler.handle(make_request("/combo/site.css?resources=a,b"))

        assert response.status == HTTPStatus.OK
        assert response.body == PLAIN_AB
        assert response.get_header("Content-Type") == "text/css; charset=UTF-8"
        assert response.get_header("Content-Length") == str(len(PLAIN_AB))

    def test_js_content_type(self, handler, make_request):
        """Test scripts are served as application/javascript."""
        response = handler.handle(make_request("/combo/app.js?resources=one"))

        assert response.body == b"var one = 1;"
        assert response.get_header("Content-Type") == "application/javascript; charset=UTF-8"

    def test_caching_headers(self, handler, make_request):
        """Test Etag, Expires, Last-Modified and Cache-Control."""
        response = handler.handle(make_request("/combo/site.css?resources=a,b"))

        etag = response.get_header("Etag")
        assert etag.startswith('"') and etag.endswith('"')
        assert len(etag) == 66
        assert response.get_header("Expires") == format_http_date(NOW + 31536000)
        assert response.get_header("Last-Modified") == format_http_date(NEW_MTIME)
        assert response.get_header("Cache-Control") == "private, max-age=31536000"

    def test_last_modified_is_newest_input(self, handler, make_request):
        """Test that Last-Modified follows the files actually served."""
        response = handler.handle(make_request("/combo/site.css?resources=a"))

        assert response.get_header("Last-Modified") == format_http_date(OLD_MTIME)

    def test_no_resources_serves_everything(self, handler, make_request):
        """Test that omitting resources combines the whole directory."""
        response = handler.handle(make_request("/combo/all.css"))

        assert response.body == PLAIN_AB + b"\n.c{color:green}"

    def test_minified(self, make_handler, make_request):
        """Test the minify flag."""
        handler = make_handler(minify_enabled=True)
        response = handler.handle(make_request("/combo/site.css?resources=a,b,c.min"))

        assert response.body == b".a{color:red}.b{color:blue}\n.c{color:green}"

    def test_built_once_per_fingerprint(self, handler, make_request):
        """Test that repeated requests reuse the cached payload."""
        for _ in range(3):
            handler.handle(make_request("/combo/site.css?resources=a,b"))

        assert handler.cache.stats.builds == 1
        assert handler.cache.stats.hits == 2

    def test_default_cache_created(self, make_config):
        """Test that a handler without a cache makes its own."""
        handler = ComboHandler(make_config())
        assert isinstance(handler.cache, ContentCache)

    def test_restart_with_new_minify_settings(self, make_config, tmp_path, make_request):
        """Test that persisted payloads from other build settings are not served."""
        cache_dir = str(tmp_path / "cache")
        before = ComboHandler(make_config(minify_enabled=True, cache_dir=cache_dir))
        minified = before.handle(make_request("/combo/site.css?resources=a,b"))

        after = ComboHandler(make_config(
            minify_enabled=True,
            minify_omit_pattern=r".*\.css$",
            cache_dir=cache_dir,
        ))
        response = after.handle(make_request("/combo/site.css?resources=a,b"))

        assert minified.body == b".a{color:red}.b{color:blue}"
        assert response.body == PLAIN_AB
        assert after.cache.stats.disk_hits == 0
        assert after.cache.stats.builds == 1



class TestCompression:
    """Tests for gzip and Vary."""

    def test_gzip_when_accepted(self, handler, make_request):
        """Test that gzip-capable clients get the compressed body."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"Accept-Encoding": "gzip, deflate"},
        ))

        assert response.get_header("Content-Encoding") == "gzip"
        assert response.get_header("Vary") == "Accept-Encoding"
        assert gzip.decompress(response.body) == PLAIN_AB
        assert response.get_header("Content-Length") == str(len(response.body))

    def test_identity_when_not_accepted(self, handler, make_request):
        """Test that other clients get the plain body, still with Vary."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"Accept-Encoding": "gzip;q=0, br"},
        ))

        assert response.get_header("Content-Encoding") is None
        assert response.get_header("Vary") == "Accept-Encoding"
        assert response.body == PLAIN_AB

    def test_gzip_is_deterministic(self, handler, make_request):
        """Test that compressed bytes do not embed a timestamp."""
        request = make_request("/combo/site.css?resources=a", headers={"Accept-Encoding": "gzip"})
        payload = handler.handle(request).body

        assert payload == gzip.compress(b".a { color: red; }", compresslevel=6, mtime=0)

    def test_compression_disabled(self, make_handler, make_request):
        """Test no gzip and no Vary when compression is off."""
        handler = make_handler(compression_enabled=False)
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"Accept-Encoding": "gzip"},
        ))

        assert response.get_header("Content-Encoding") is None
        assert response.get_header("Vary") is None
        assert response.body == PLAIN_AB


class TestCacheControl:
    """Tests for public versus private caching."""

    def test_https_with_compression_is_public(self, handler, make_request):
        """Test shared caching over TLS."""
        response = handler.handle(make_request("/combo/site.css?resources=a", secure=True))

        assert response.get_header("Cache-Control") == (
            "public, s-maxage=31536000, max-age=31536000"
        )

    def test_https_without_compression_is_private(self, make_handler, make_request):
        """Test that TLS alone is not enough."""
        handler = make_handler(compression_enabled=False)
        response = handler.handle(make_request("/combo/site.css?resources=a", secure=True))

        assert response.get_header("Cache-Control") == "private, max-age=31536000"

    def test_forwarded_https(self, handler):
        """Test a request marked secure by a trusted proxy."""
        from comboserver.http.request import RequestParser

        raw = (
            b"GET /combo/site.css?resources=a HTTP/1.1\r\n"
            b"Host: assets.example.com\r\n"
            b"X-Forwarded-Proto: https\r\n\r\n"
        )
        request = RequestParser(trust_forwarded_proto=True).parse(raw, ("10.0.0.1", 1234))

        assert handler.handle(request).get_header("Cache-Control").startswith("public")

    def test_custom_lifetimes(self, make_handler, make_request):
        """Test configured max_age and s_maxage."""
        handler = make_handler(max_age=60, s_maxage=3600)
        secure = handler.handle(make_request("/combo/site.css?resources=a", secure=True))
        plain = handler.handle(make_request("/combo/site.css?resources=a"))

        assert secure.get_header("Cache-Control") == "public, s-maxage=3600, max-age=60"
        assert plain.get_header("Cache-Control") == "private, max-age=60"
        assert plain.get_header("Expires") == format_http_date(NOW + 60)


class TestConditionalRequests:
    """Tests for 304 handling."""

    def test_if_modified_since_current(self, handler, make_request):
        """Test 304 when the client's copy is as new as the files."""
        since = format_http_date(NEW_MTIME)
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"If-Modified-Since": since},
        ))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""
        assert response.get_header("Content-Length") == "0"
        assert response.get_header("Last-Modified") == since

    def test_if_modified_since_newer(self, handler, make_request):
        """Test 304 for a date after the newest file."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"If-Modified-Since": format_http_date(NEW_MTIME + 3600)},
        ))

        assert response.status == HTTPStatus.NOT_MODIFIED

    def test_304_does_not_build(self, handler, make_request):
        """Test that nothing is combined for a 304."""
        handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"If-Modified-Since": format_http_date(NEW_MTIME)},
        ))

        stats = handler.cache.stats
        assert stats.builds == 0
        assert stats.misses == 0

    def test_if_modified_since_stale(self, handler, make_request):
        """Test 200 when a file changed after the client's date."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={"If-Modified-Since": format_http_date(OLD_MTIME)},
        ))

        assert response.status == HTTPStatus.OK
        assert response.body == PLAIN_AB

    def test_malformed_date_ignored(self, handler, make_request):
        """Test that an unparseable date is treated as absent."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a",
            headers={"If-Modified-Since": "yesterday"},
        ))

        assert response.status == HTTPStatus.OK

    def test_if_none_match(self, handler, make_request):
        """Test 304 for a matching ETag."""
        etag = handler.handle(make_request("/combo/site.css?resources=a")).get_header("Etag")

        response = handler.handle(make_request(
            "/combo/site.css?resources=a",
            headers={"If-None-Match": etag},
        ))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.get_header("Etag") == etag
        assert response.get_header("Content-Length") == "0"

    def test_mismatched_etag_falls_back_to_date(self, handler, make_request):
        """Test that a stale ETag still gets a 304 from a current date."""
        since = format_http_date(NEW_MTIME)
        response = handler.handle(make_request(
            "/combo/site.css?resources=a",
            headers={
                "If-None-Match": '"something-else"',
                "If-Modified-Since": since,
            },
        ))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.get_header("Last-Modified") == since
        assert handler.cache.stats.builds == 0

    def test_mismatched_etag_and_stale_date(self, handler, make_request):
        """Test 200 when neither validator is current."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a,b",
            headers={
                "If-None-Match": '"something-else"',
                "If-Modified-Since": format_http_date(OLD_MTIME),
            },
        ))

        assert response.status == HTTPStatus.OK

    def test_changed_file_invalidates(self, handler, assets, make_request):
        """Test that touching a file changes ETag and Last-Modified."""
        before = handler.handle(make_request("/combo/site.css?resources=a"))
        newer = NEW_MTIME + 60
        os.utime(assets.css_dir / "a.css", (newer, newer))

        after = handler.handle(make_request(
            "/combo/site.css?resources=a",
            headers={"If-None-Match": before.get_header("Etag")},
        ))

        assert after.status == HTTPStatus.OK
        assert after.get_header("Etag") != before.get_header("Etag")
        assert after.get_header("Last-Modified") == format_http_date(newer)

    def test_version_changes_etag(self, handler, make_request):
        """Test that v=N is part of the validator."""
        one = handler.handle(make_request("/combo/site.css?resources=a&v=1"))
        two = handler.handle(make_request("/combo/site.css?resources=a&v=2"))

        assert one.get_header("Etag") != two.get_header("Etag")
        assert one.body == two.body


class TestThemes:
    """Tests for theme overrides and the theme cookie."""

    def test_theme_param_overrides_and_sets_cookie(self, handler, make_request):
        """Test the override body and the remembering cookie."""
        response = handler.handle(make_request("/combo/site.css?resources=a,b&theme=dark"))

        assert response.body == b".a { color: black; }\n.b { color: blue; }"
        assert response.get_header("Set-Cookie") == (
            "combinatorius.theme=dark; Domain=assets.example.com; Path=/"
        )

    def test_theme_cookie_not_echoed(self, handler, make_request):
        """Test that a theme taken from the cookie is not set again."""
        response = handler.handle(make_request(
            "/combo/site.css?resources=a",
            headers={"Cookie": "combinatorius.theme=dark"},
        ))

        assert response.body == b".a { color: black; }"
        assert response.get_header("Set-Cookie") is None

    def test_no_theme_no_cookie(self, handler, make_request):
        """Test that unthemed responses set no cookie."""
        response = handler.handle(make_request("/combo/site.css?resources=a"))
        assert response.get_header("Set-Cookie") is None

    def test_theme_changes_etag(self, handler, make_request):
        """Test that the theme is part of the validator."""
        plain = handler.handle(make_request("/combo/site.css?resources=b"))
        themed = handler.handle(make_request("/combo/site.css?resources=b&theme=dark"))

        assert plain.body == themed.body
        assert plain.get_header("Etag") != themed.get_header("Etag")


class TestErrors:
    """Tests for 400 responses."""

    def assert_plain_400(self, response):
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.get_header("Content-Type") == "text/plain; charset=UTF-8"
        assert response.get_header("Cache-Control") == "no-store, no-cache, must-revalidate"

    def test_huge_version(self, handler, make_request):
        """Test that an enormous v= value is a 400, not a crash."""
        response = handler.handle(make_request("/combo/site.css?resources=a&v=" + "9" * 5000))

        self.assert_plain_400(response)
        assert response.body.decode().startswith(ERROR_PREFIX + "Version must be")

    def test_unknown_theme(self, handler, make_request):
        """Test the invalid theme message."""
        response = handler.handle(make_request("/combo/site.css?theme=wrong"))

        self.assert_plain_400(response)
        assert response.body.decode() == (
            ERROR_PREFIX + "Error getting 'wrong' theme. Please make sure the theme "
            "name is correctly specified via 'theme' URL parameter or as "
            "'combinatorius.theme' cookie value."
        )

    def test_directory_not_configured(self, make_handler, make_request):
        """Test that configuration errors have no prefix."""
        handler = make_handler(js_dir=None)
        response = handler.handle(make_request("/combo/app.js"))

        self.assert_plain_400(response)
        assert response.body == b"JS directory not specified"

    def test_unsupported_extension(self, handler, make_request):
        """Test a path that is neither CSS nor JS."""
        response = handler.handle(make_request("/combo/site.txt"))

        self.assert_plain_400(response)
        assert response.body == (
            ERROR_PREFIX + "Unsupported resource type for path: /combo/site.txt"
        ).encode()

    def test_missing_resource(self, handler, make_request):
        """Test a resource name with no file."""
        response = handler.handle(make_request("/combo/site.css?resources=a,nope"))

        self.assert_plain_400(response)
        assert response.body.startswith((ERROR_PREFIX + "Error getting files from").encode())

    def test_invalid_version(self, handler, make_request):
        """Test a non-numeric version."""
        response = handler.handle(make_request("/combo/site.css?v=x"))

        self.assert_plain_400(response)

    def test_minification_failure(self, make_handler, assets, make_request):
        """Test that a transform failure is a 400 and is not cached."""
        write_file(assets.css_dir / "broken.css", ".x { /* open")
        handler = make_handler(minify_enabled=True)

        response = handler.handle(make_request("/combo/site.css?resources=broken"))

        self.assert_plain_400(response)
        assert response.body.startswith(ERROR_PREFIX.encode())
        assert len(handler.cache) == 0

    def test_unexpected_errors_propagate(self, handler, make_request, monkeypatch):
        """Test that non-combo failures are left to the server loop."""
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(handler, "build_payload", explode)

        with pytest.raises(RuntimeError):
            handler.handle(make_request("/combo/site.css?resources=a"))


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize("header,expected", [
        ('"abc"', True),
        ("abc", True),
        ('W/"abc"', True),
        ('"x", "abc"', True),
        ("*", True),
        ('"x"', False),
        ('"abcd"', False),
    ])
    def test_etag_matches(self, header, expected):
        """Test If-None-Match list matching."""
        assert etag_matches(header, "abc") is expected

    def test_theme_cookie(self):
        """Test the cookie value with and without a domain."""
        assert theme_cookie("dark", "example.com") == (
            "combinatorius.theme=dark; Domain=example.com; Path=/"
        )
        assert theme_cookie("dark", "") == "combinatorius.theme=dark; Path=/"
