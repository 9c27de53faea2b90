"""
=============================================================================
COMBOSERVER - Combined, Cached CSS/JS Delivery over HTTP/1.1
=============================================================================

One request, many stylesheets or scripts:

    GET /combo/site.css?resources=reset,layout,forms&theme=dark&v=12

returns reset.css, layout.css and forms.css (each replaced by the dark
theme's copy where one exists) concatenated, optionally minified and
gzipped, with an ETag, a far-future Expires and a Cache-Control policy
that lets browsers and proxies keep it for a year. A conditional request
whose validators still match gets a 304 without anything being read or
combined.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    comboserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m comboserver)
    ├── server.py            # ComboServer: sockets + pool + router wiring
    ├── config.py            # ComboConfig: defaults, properties, COMBO_* env
    ├── combo/               # The pipeline itself
    │   ├── descriptor.py    # request → RequestDescriptor
    │   ├── resolver.py      # descriptor → ordered files (theme overrides)
    │   ├── fingerprint.py   # files + options → cache key / ETag
    │   ├── minify.py        # CSS and JS minifiers
    │   ├── combiner.py      # concatenate, minify non-omitted runs
    │   ├── cache.py         # single-flight content cache (+ disk)
    │   └── errors.py        # ComboError hierarchy
    ├── core/                # socket server, connections, thread pool
    ├── http/                # request parsing, responses, routing
    ├── middleware/          # pipeline + access logging
    └── handlers/            # ComboHandler, HealthHandler

=============================================================================
QUICK START
=============================================================================

    from comboserver import ComboServer, ComboConfig

    config = ComboConfig(css_dir="assets/css", js_dir="assets/js",
                         themes_dir="assets/themes", minify_enabled=True)
    config.validate()
    ComboServer(config).run()

Or from the command line:

    python -m comboserver --css-dir assets/css --js-dir assets/js --minify

=============================================================================
"""

__version__ = "1.0.0"
__author__ = "ComboServer Contributors"

from .server import ComboServer, create_app
from .config import ComboConfig
from .combo import (
    ComboError,
    ContentCache,
    CachedPayload,
    RequestDescriptor,
    MinifyOptions,
    resolve_descriptor,
    resolve_files,
    compute_fingerprint,
    combine,
)
from .handlers import ComboHandler, HealthHandler
from .http import HTTPRequest, HTTPResponse, ResponseBuilder, HTTPStatus, Router
from .middleware import Middleware, LoggingMiddleware

__all__ = [
    # Server
    "ComboServer",
    "create_app",
    "ComboConfig",

    # Pipeline
    "ComboError",
    "ContentCache",
    "CachedPayload",
    "RequestDescriptor",
    "MinifyOptions",
    "resolve_descriptor",
    "resolve_files",
    "compute_fingerprint",
    "combine",

    # Handlers
    "ComboHandler",
    "HealthHandler",

    # HTTP
    "HTTPRequest",
    "HTTPResponse",
    "ResponseBuilder",
    "HTTPStatus",
    "Router",

    # Middleware
    "Middleware",
    "LoggingMiddleware",

    "__version__",
]
