"""
=============================================================================
COMBO HANDLER
=============================================================================

Serves GET <url_prefix>/<anything>.css|.js: resolves the request to files,
answers conditional requests with 304, and otherwise returns the combined
payload with long-lived caching headers.

=============================================================================
REQUEST FLOW
=============================================================================

    GET /combo/site.css?resources=a,b&theme=dark&v=3
        │
        ├─ resolve_descriptor ─────────────► 400 on bad suffix/name/version
        ├─ resolve_files ──────────────────► 400 on config/dir/theme errors
        ├─ compute_fingerprint
        │
        ├─ If-None-Match matches ETag? ────► 304 (Content-Length: 0, Etag)
        ├─ If-Modified-Since >= newest? ───► 304 (Content-Length: 0,
        │                                        Last-Modified echoed)
        │        nothing below this line runs for a 304
        │
        ├─ cache.get_or_build(fingerprint)
        │        └─ miss: combine + minify + gzip, once per fingerprint
        │
        └─ 200 with Content-Type, Etag, Expires, Cache-Control,
               Last-Modified, Content-Length (+ Content-Encoding, Vary)

=============================================================================
CACHE-CONTROL
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ request                      │ Cache-Control                        │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ https + compression enabled  │ public, s-maxage=S, max-age=M        │
    │ anything else                │ private, max-age=M                   │
    └──────────────────────────────┴──────────────────────────────────────┘

Shared caches only get to store responses that travelled over TLS and
that carry Vary: Accept-Encoding, so a proxy never hands gzip bytes to a
client that did not ask for them.

=============================================================================
ERRORS
=============================================================================

Every ComboError becomes a 400 with a text/plain body:

    Error trying to get content: Error getting 'wrong' theme. Please ...
    CSS directory not specified

They are caller or operator mistakes, not server faults. Anything else
propagates to the server loop, which logs it and answers 500.

=============================================================================
"""

from typing import Callable, Optional
import gzip
import logging
import time

from ..combo.cache import ContentCache, CachedPayload
from ..combo.combiner import combine
from ..combo.descriptor import RequestDescriptor, resolve_descriptor
from ..combo.errors import ComboError, ConfigurationError, THEME_COOKIE
from ..combo.fingerprint import compute_fingerprint
from ..combo.resolver import ResolvedFileSet, resolve_files
from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    parse_http_date,
    not_modified,
)
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error trying to get content: "


class ComboHandler:
    """
    HTTP handler for combo requests.

    Example:
        config = ComboConfig(css_dir="assets/css", themes_dir="assets/themes")
        handler = ComboHandler(config)
        router.add_route("/combo/*bundle", handler.handle, method="GET")
    """

    def __init__(
        self,
        config,
        cache: Optional[ContentCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            config: ComboConfig (directories, minify/compression flags,
                max_age/s_maxage).
            cache: Shared ContentCache; a memory-only one is created when
                omitted (or one persisting to config.cache_dir).
            clock: Source of "now" for Expires.
        """
        self.config = config
        self.cache = cache if cache is not None else ContentCache(
            config.cache_dir, namespace=config.build_digest,
        )
        self._clock = clock

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        try:
            descriptor = resolve_descriptor(request)
            file_set = resolve_files(descriptor, self.config)
            fingerprint = compute_fingerprint(
                file_set,
                descriptor.theme_name,
                self.config.minify_enabled,
                descriptor.version,
            )

            conditional = self.check_conditional(request, fingerprint, file_set.last_modified)
            if conditional is not None:
                return conditional

            payload = self.cache.get_or_build(
                fingerprint,
                lambda: self.build_payload(descriptor, file_set, fingerprint),
                extension=descriptor.extension,
            )
        except ConfigurationError as e:
            logger.warning(f"{request.path}: {e}")
            return self.error_response(str(e))
        except ComboError as e:
            logger.warning(f"{request.path}: {e}")
            return self.error_response(ERROR_PREFIX + str(e))

        builder = ResponseBuilder(self.config.server_name).status(HTTPStatus.OK)
        self.set_response_headers(builder, request, descriptor, payload)
        return builder.build()

    # =========================================================================
    # CONDITIONAL GET
    # =========================================================================

    def check_conditional(
        self,
        request: HTTPRequest,
        fingerprint: str,
        last_modified: float,
    ) -> Optional[HTTPResponse]:
        """
        Return a 304 if the client's copy is current, else None.

        A matching If-None-Match answers first. If it is absent or names
        another ETag, If-Modified-Since still gets its turn, compared at
        second precision since HTTP dates carry no fractions.
        """
        if_none_match = request.get_header("if-none-match")
        if if_none_match and etag_matches(if_none_match, fingerprint):
            logger.debug(f"ETag match for {request.path}")
            return not_modified({"Etag": f'"{fingerprint}"'})

        if_modified_since = request.get_header("if-modified-since")
        since = parse_http_date(if_modified_since)
        if since is not None and since >= int(last_modified):
            logger.debug(f"Not modified since {if_modified_since}: {request.path}")
            return not_modified({"Last-Modified": if_modified_since})
        return None

    # =========================================================================
    # PAYLOAD
    # =========================================================================

    def build_payload(
        self,
        descriptor: RequestDescriptor,
        file_set: ResolvedFileSet,
        fingerprint: str,
    ) -> CachedPayload:
        """Combine, minify and gzip one fingerprint's files."""
        started = time.perf_counter()
        body = combine(
            file_set,
            descriptor.mime_type,
            self.config.minify_enabled,
            self.config.minify_options(descriptor.mime_type),
        )
        gzipped = None
        if self.config.compression_enabled:
            gzipped = gzip.compress(body, compresslevel=self.config.gzip_level, mtime=0)

        logger.info(
            f"Built {descriptor.mime_type.label} payload {fingerprint[:12]} "
            f"from {len(file_set)} file(s): {len(body)} bytes"
            f"{f', {len(gzipped)} gzipped' if gzipped is not None else ''} "
            f"in {(time.perf_counter() - started) * 1000:.1f}ms"
        )
        return CachedPayload(
            body=body,
            gzipped=gzipped,
            last_modified=file_set.last_modified,
            fingerprint=fingerprint,
        )

    # =========================================================================
    # RESPONSE HEADERS
    # =========================================================================

    def shared_cacheable(self, request: HTTPRequest) -> bool:
        """Whether proxies and CDNs may store this response (public)."""
        return request.is_secure and self.config.compression_enabled

    def set_response_headers(
        self,
        builder: ResponseBuilder,
        request: HTTPRequest,
        descriptor: RequestDescriptor,
        payload: CachedPayload,
    ) -> ResponseBuilder:
        """Apply content, validator and caching headers plus the body."""
        now = self._clock()

        builder.content_type(descriptor.mime_type.content_type("UTF-8"))
        builder.etag(payload.fingerprint)
        builder.header("Expires", format_http_date(now + self.config.max_age))
        builder.cache_for(
            self.config.max_age,
            s_maxage=self.config.s_maxage,
            public=self.shared_cacheable(request),
        )
        builder.last_modified(payload.last_modified)

        body = payload.body
        if self.config.compression_enabled:
            builder.header("Vary", "Accept-Encoding")
            if payload.gzipped is not None and request.accepts_encoding("gzip"):
                body = payload.gzipped
                builder.header("Content-Encoding", "gzip")

        if descriptor.theme_source == "param":
            builder.header("Set-Cookie", theme_cookie(descriptor.theme_name, request.server_name))

        builder.header("Content-Length", str(len(body)))
        builder.body(body)
        return builder

    def error_response(self, message: str) -> HTTPResponse:
        return (ResponseBuilder(self.config.server_name)
            .status(HTTPStatus.BAD_REQUEST)
            .text(message)
            .no_cache()
            .build())


def etag_matches(header: str, fingerprint: str) -> bool:
    """
    Weak comparison of an If-None-Match list against our ETag.

        etag_matches('W/"abc", "def"', "abc")  → True
        etag_matches('*', "abc")               → True
    """
    for candidate in header.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == fingerprint:
            return True
    return False


def theme_cookie(theme_name: str, domain: str) -> str:
    """Set-Cookie value remembering the theme for the serving host."""
    cookie = f"{THEME_COOKIE}={theme_name}"
    if domain:
        cookie += f"; Domain={domain}"
    return cookie + "; Path=/"
