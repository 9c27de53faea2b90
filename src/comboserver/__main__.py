"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m comboserver [options]

Configuration is layered, later sources winning:

    defaults  <  --config FILE (properties)  <  COMBO_* env  <  flags

    python -m comboserver --css-dir assets/css --js-dir assets/js
    python -m comboserver --config /etc/combo.properties --port 9000
    COMBO_MINIFY_ENABLED=true python -m comboserver --css-dir assets/css

Exit status is 2 for a bad configuration, 1 if the port cannot be bound.

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .combo.errors import ComboError
from .config import ComboConfig
from .server import ComboServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="comboserver",
        description="Serve combined, minified and cached CSS/JS bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m comboserver --css-dir ./css --js-dir ./js
  python -m comboserver --themes-dir ./themes --minify
  python -m comboserver --certfile cert.pem --keyfile key.pem --port 8443
  python -m comboserver --config combo.properties --log-format json
        """
    )

    parser.add_argument(
        "--config", "-c",
        metavar="FILE",
        help="Properties file (key = value) with configuration"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Minimum worker threads; the maximum becomes 4x this"
    )
    parser.add_argument("--certfile", help="PEM certificate chain; enables TLS with --keyfile")
    parser.add_argument("--keyfile", help="PEM private key")
    parser.add_argument(
        "--trust-forwarded-proto",
        action="store_const", const=True, default=None,
        help="Take the request scheme from X-Forwarded-Proto"
    )

    # ─────────────────────────────────────────────────────────────────────
    # RESOURCES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--url-prefix", help="Path the bundles are served under (default: /combo)")
    parser.add_argument("--css-dir", help="Directory of default .css files")
    parser.add_argument("--js-dir", help="Directory of default .js files")
    parser.add_argument("--themes-dir", help="Directory with one subdirectory per theme")
    parser.add_argument("--cache-dir", help="Persist combined bundles here across restarts")

    # ─────────────────────────────────────────────────────────────────────
    # OUTPUT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--minify",
        dest="minify_enabled",
        action="store_const", const=True, default=None,
        help="Minify bundles"
    )
    parser.add_argument(
        "--no-compression",
        dest="compression_enabled",
        action="store_const", const=False, default=None,
        help="Never gzip responses"
    )
    parser.add_argument("--max-age", type=int, help="Cache-Control max-age in seconds")
    parser.add_argument("--s-maxage", type=int, help="Cache-Control s-maxage in seconds")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"comboserver {__version__}"
    )

    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Flags the user actually gave, as ComboConfig field names."""
    overrides = {
        name: getattr(args, name)
        for name in (
            "host", "port", "certfile", "keyfile", "trust_forwarded_proto",
            "url_prefix", "css_dir", "js_dir", "themes_dir", "cache_dir",
            "minify_enabled", "compression_enabled", "max_age", "s_maxage",
            "log_level", "log_format",
        )
    }
    if args.workers is not None:
        overrides["min_workers"] = args.workers
        overrides["max_workers"] = args.workers * 4
    return {name: value for name, value in overrides.items() if value is not None}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ComboConfig.load(
            properties_path=args.config,
            overrides=overrides_from_args(args),
        )
        config.validate()
        server = ComboServer(config)
    except (ValueError, OSError, ComboError) as e:
        print(f"comboserver: configuration error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"comboserver: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
