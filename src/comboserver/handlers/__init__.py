"""
Request handlers.

    ComboHandler    GET <url_prefix>/*bundle → combined CSS/JS
    HealthHandler   GET /health, /health/live, /health/ready
"""

from .combo import ComboHandler, etag_matches, theme_cookie
from .health import HealthHandler, HealthStatus, directory_check

__all__ = [
    "ComboHandler",
    "etag_matches",
    "theme_cookie",
    "HealthHandler",
    "HealthStatus",
    "directory_check",
]
