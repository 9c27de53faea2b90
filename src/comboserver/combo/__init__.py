"""
=============================================================================
COMBO PIPELINE
=============================================================================

Everything between "an HTTP request arrived" and "here are the bytes":

    HTTPRequest
        │  descriptor.resolve_descriptor
        ▼
    RequestDescriptor  (mime type, resource names, theme, version)
        │  resolver.resolve_files
        ▼
    ResolvedFileSet    (ordered paths + mtimes)
        │  fingerprint.compute_fingerprint
        ▼
    fingerprint ──► cache.ContentCache.get_or_build
                        │ (miss)
                        ▼
                    combiner.combine  ──►  minify.TRANSFORMS[mime]
                        │
                        ▼
                    CachedPayload

The HTTP side (validators, 304, headers, gzip) lives in
comboserver.handlers.combo.

=============================================================================
"""

from .errors import (
    ComboError,
    ConfigurationError,
    DirectoryError,
    InvalidTheme,
    InvalidExtension,
    InvalidResourceName,
    InvalidVersion,
    MinificationError,
    ContentReadError,
    THEME_COOKIE,
    THEME_PARAM,
)
from .descriptor import RequestDescriptor, resolve_descriptor, THEME_STRATEGIES
from .resolver import ResolvedFile, ResolvedFileSet, resolve_files
from .fingerprint import compute_fingerprint
from .minify import MinifyOptions, Transform, TRANSFORMS, minify_css, minify_js
from .combiner import combine
from .cache import ContentCache, CachedPayload, CacheStats

__all__ = [
    # Errors
    "ComboError",
    "ConfigurationError",
    "DirectoryError",
    "InvalidTheme",
    "InvalidExtension",
    "InvalidResourceName",
    "InvalidVersion",
    "MinificationError",
    "ContentReadError",
    "THEME_COOKIE",
    "THEME_PARAM",

    # Descriptor
    "RequestDescriptor",
    "resolve_descriptor",
    "THEME_STRATEGIES",

    # Resolution
    "ResolvedFile",
    "ResolvedFileSet",
    "resolve_files",
    "compute_fingerprint",

    # Combining
    "MinifyOptions",
    "Transform",
    "TRANSFORMS",
    "minify_css",
    "minify_js",
    "combine",

    # Caching
    "ContentCache",
    "CachedPayload",
    "CacheStats",
]
