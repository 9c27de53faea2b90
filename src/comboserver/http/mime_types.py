"""
=============================================================================
MIME TYPES
=============================================================================

The combo server serves exactly two kinds of content, selected by the
suffix of the request path:

    GET /combo/site.css?resources=reset,layout   →  text/css
    GET /combo/app.js?resources=vendor,main      →  application/javascript

Anything else is rejected before any file is touched. The enum value is the
bare MIME type; content_type adds the charset parameter used for the
Content-Type header.

=============================================================================
"""

from enum import Enum
from pathlib import PurePosixPath
from typing import Optional


class MimeType(Enum):
    """Content types the combo server can produce."""

    CSS = "text/css"
    JS = "application/javascript"

    @property
    def extension(self) -> str:
        """Canonical lower-case file suffix, without the dot."""
        return _EXTENSIONS[self]

    @property
    def label(self) -> str:
        """Human name used in operator-facing messages ('CSS', 'JS')."""
        return self.name

    def content_type(self, charset: str = "UTF-8") -> str:
        return f"{self.value}; charset={charset}"


_EXTENSIONS = {
    MimeType.CSS: "css",
    MimeType.JS: "js",
}

# Accepted suffixes (lowercase, without dot) → MimeType
SUFFIX_TYPES = {
    "css": MimeType.CSS,
    "js": MimeType.JS,
}


def get_mime_type(path: str) -> Optional[MimeType]:
    """
    Map a request path to a MimeType by its suffix.

    Examples:
        >>> get_mime_type("/combo/all.css")
        <MimeType.CSS: 'text/css'>
        >>> get_mime_type("/combo/all.JS")
        <MimeType.JS: 'application/javascript'>
        >>> get_mime_type("/combo/all.txt") is None
        True
    """
    suffix = PurePosixPath(path).suffix.lower().lstrip(".")
    return SUFFIX_TYPES.get(suffix)
