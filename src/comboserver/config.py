"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One ComboConfig is built at startup and never changes afterwards; the only
per-request variation comes from the request itself (resources, theme,
version).

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m comboserver --css-dir ./css --port 3000          │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── COMBO_CSS_DIR=./css COMBO_PORT=3000 python -m comboserver  │
    │                                                                     │
    │   3. Properties file                                                │
    │      └── python -m comboserver --config combo.properties            │
    │                                                                     │
    │   4. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

A properties file is plain "key = value" lines; "#" and "!" start comment
lines, and keys may use dots or dashes instead of underscores:

    # combo.properties
    css.dir = /srv/assets/css
    js.dir = /srv/assets/js
    themes.dir = /srv/assets/themes
    compression.enabled = true
    max-age = 31536000

=============================================================================
WHAT VALIDATION DOES NOT CHECK
=============================================================================

A missing css_dir or js_dir is *not* a startup error. A deployment may
serve only stylesheets; a request for the type nobody configured gets a
400 "JS directory not specified" instead of the whole server refusing to
start.

=============================================================================
"""

import hashlib
import os
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union, get_args

from .combo.minify import MinifyOptions, DEFAULT_OMIT_PATTERN
from .http.mime_types import MimeType


ENV_PREFIX = "COMBO_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class ComboConfig:
    """
    Configuration for the combo server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK         host, port, backlog, buffer_size, timeout
    HTTP            keep_alive, keep_alive_timeout, max_request_size
    THREADING       min_workers, max_workers, queue_size
    TLS             certfile, keyfile, trust_forwarded_proto
    RESOURCES       url_prefix, css_dir, js_dir, themes_dir, cache_dir
    COMPRESSION     compression_enabled, gzip_level
    MINIFICATION    minify_enabled, minify_omit_pattern, css_line_break,
                    js_line_break, js_preserve_semicolons, js_munge,
                    minify_verbose
    CACHING         max_age, s_maxage
    LOGGING         log_level, log_format
    IDENTITY        server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """IP address to bind; "0.0.0.0" for every interface."""

    port: int = 8080

    backlog: int = 128
    """Queued connections before the kernel refuses new ones."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for reading a request."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 64 * 1024
    """Combo requests are GETs; anything bigger is refused with 413."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    queue_size: int = 100
    """Pending connections per pool before new ones get 503."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    certfile: Optional[str] = None
    """PEM certificate; with keyfile, the listener speaks HTTPS."""

    keyfile: Optional[str] = None

    trust_forwarded_proto: bool = False
    """
    Believe X-Forwarded-Proto. Only enable behind a proxy that sets it,
    otherwise any client can claim to be on HTTPS.
    """

    # ─────────────────────────────────────────────────────────────────────
    # RESOURCES
    # ─────────────────────────────────────────────────────────────────────

    url_prefix: str = "/combo"
    """Combo URLs live under this path: /combo/<name>.css"""

    css_dir: Optional[str] = None
    """Default directory for stylesheets."""

    js_dir: Optional[str] = None
    """Default directory for scripts."""

    themes_dir: Optional[str] = None
    """Root holding one override directory per theme."""

    cache_dir: Optional[str] = None
    """If set, built payloads are also persisted here."""

    # ─────────────────────────────────────────────────────────────────────
    # COMPRESSION
    # ─────────────────────────────────────────────────────────────────────

    compression_enabled: bool = True
    """
    Serve gzip to clients that accept it. Also what makes an HTTPS
    response eligible for shared caches (Cache-Control: public).
    """

    gzip_level: int = 6

    # ─────────────────────────────────────────────────────────────────────
    # MINIFICATION
    # ─────────────────────────────────────────────────────────────────────

    minify_enabled: bool = False
    minify_omit_pattern: str = DEFAULT_OMIT_PATTERN
    css_line_break: int = -1
    js_line_break: int = -1
    js_preserve_semicolons: bool = False
    js_munge: bool = True
    minify_verbose: bool = False

    # ─────────────────────────────────────────────────────────────────────
    # HTTP CACHING
    # ─────────────────────────────────────────────────────────────────────

    max_age: int = 31536000
    """Browser cache lifetime in seconds (one year)."""

    s_maxage: int = 31536000
    """Shared-cache lifetime, sent only on public responses."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format: 'text' (Apache-style) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "ComboServer/1.0"

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    def resource_dir(self, mime_type: MimeType) -> Optional[str]:
        """Default directory for a MIME type (css_dir or js_dir)."""
        if mime_type is MimeType.CSS:
            return self.css_dir
        return self.js_dir

    def minify_options(self, mime_type: MimeType) -> MinifyOptions:
        if mime_type is MimeType.CSS:
            return MinifyOptions(
                line_break=self.css_line_break,
                preserve_semicolons=False,
                munge=False,
                verbose=self.minify_verbose,
                omit_pattern=self.minify_omit_pattern,
            )
        return MinifyOptions(
            line_break=self.js_line_break,
            preserve_semicolons=self.js_preserve_semicolons,
            munge=self.js_munge,
            verbose=self.minify_verbose,
            omit_pattern=self.minify_omit_pattern,
        )

    @property
    def tls_enabled(self) -> bool:
        return bool(self.certfile and self.keyfile)

    # Settings that change the bytes a build produces for the same files.
    BUILD_FIELDS = (
        "minify_enabled",
        "minify_omit_pattern",
        "css_line_break",
        "js_line_break",
        "js_preserve_semicolons",
        "js_munge",
        "compression_enabled",
        "gzip_level",
    )

    @property
    def build_digest(self) -> str:
        """
        Short hash of BUILD_FIELDS.

        Persisted payloads live under cache_dir/<build_digest>/, so a
        restart with different minify or gzip settings never picks up
        files built under the old ones.
        """
        digest = hashlib.sha256()
        for name in self.BUILD_FIELDS:
            digest.update(f"{name}={getattr(self, name)!r}\x00".encode("utf-8"))
        return digest.hexdigest()[:16]


    # =========================================================================
    # LOADING
    # =========================================================================

    def merge(self, values: Mapping[str, Any]) -> "ComboConfig":
        """
        Return a copy with the given fields overridden.

        String values are coerced to the field's type, so the same method
        serves environment variables, properties files and CLI flags.
        None values are skipped.

        Raises:
            ValueError: unknown field or uncoercible value
        """
        known = {f.name: f for f in fields(self)}
        changes = {}
        for name, raw in values.items():
            if raw is None:
                continue
            if name not in known:
                raise ValueError(f"Unknown configuration key: {name}")
            changes[name] = _coerce(name, known[name].type, raw)
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ComboConfig":
        """
        Build configuration from COMBO_* environment variables.

        Every field has a variable: COMBO_<FIELD NAME IN CAPS>.

            COMBO_CSS_DIR=/srv/css COMBO_COMPRESSION_ENABLED=false \\
                python -m comboserver
        """
        return cls().merge(env_values(environ))

    @classmethod
    def from_properties(cls, path: Union[str, Path]) -> "ComboConfig":
        return cls().merge(read_properties(path))

    @classmethod
    def load(
        cls,
        properties_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "ComboConfig":
        """
        Layer every source: defaults < properties < environment < overrides.
        """
        config = cls()
        if properties_path:
            config = config.merge(read_properties(properties_path))
        config = config.merge(env_values(environ))
        if overrides:
            config = config.merge(overrides)
        return config

    def validate(self) -> None:
        """
        Fail fast on values that would break the server at runtime.

        Raises:
            ValueError: with a message naming the bad setting
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.max_age < 0 or self.s_maxage < 0:
            raise ValueError("max_age and s_maxage must be >= 0")

        if not 0 <= self.gzip_level <= 9:
            raise ValueError("gzip_level must be between 0 and 9")

        if bool(self.certfile) != bool(self.keyfile):
            raise ValueError("certfile and keyfile must be given together")

        if not self.url_prefix.startswith("/"):
            raise ValueError(f"url_prefix must start with '/': {self.url_prefix}")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', not {self.log_format!r}")

        try:
            re.compile(self.minify_omit_pattern)
        except re.error as e:
            raise ValueError(f"Invalid minify_omit_pattern: {e}")


# =============================================================================
# SOURCE READERS
# =============================================================================

def _normalize_key(key: str) -> str:
    return key.strip().lower().replace(".", "_").replace("-", "_")


def env_values(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """COMBO_* variables that name a config field, as {field: raw value}."""
    environ = os.environ if environ is None else environ
    names = {f.name for f in fields(ComboConfig)}
    values = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in names:
            values[name] = value
    return values


def read_properties(path: Union[str, Path]) -> Dict[str, str]:
    """
    Parse a "key = value" properties file.

    Blank lines and lines starting with "#" or "!" are ignored; "key: value"
    is accepted too. Keys are normalized to field names.

    Raises:
        OSError: the file cannot be read
        ValueError: a line has no separator
    """
    values = {}
    text = Path(path).read_text(encoding="utf-8")
    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line[0] in "#!":
            continue
        match = re.match(r"^([^=:\s]+)\s*[=:]\s*(.*)$", line)
        if not match:
            raise ValueError(f"{path}:{number}: expected 'key = value', got {line!r}")
        key, value = match.groups()
        values[_normalize_key(key)] = value.strip()
    return values


def _coerce(name: str, annotation: Any, raw: Any) -> Any:
    """Convert a raw (usually string) value to the type of a config field."""
    if not isinstance(raw, str):
        return raw

    args = get_args(annotation)
    optional = type(None) in args
    target = next((a for a in args if a is not type(None)), annotation)

    if optional and raw.strip() == "":
        return None

    try:
        if target is bool:
            lowered = raw.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(raw)
        if target is float:
            return float(raw)
        if target is int:
            return int(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}")
    return raw
