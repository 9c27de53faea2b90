"""
=============================================================================
REQUEST DESCRIPTOR
=============================================================================

Turns an HTTPRequest into the immutable RequestDescriptor the rest of the
pipeline works from:

    GET /combo/site.css?resources=reset,layout&resources=nav&v=7
    Cookie: combinatorius.theme=dark

        → RequestDescriptor(
              mime_type=MimeType.CSS,
              resource_names=("reset", "layout", "nav"),
              theme_name="dark",
              theme_source="cookie",
              version=7,
              extension="css",
          )

=============================================================================
THEME LOOKUP
=============================================================================

The theme comes from an ordered list of strategies. Each one looks at the
request and returns a theme name or None; the first non-empty answer wins:

    THEME_STRATEGIES = [
        ("param",  ?theme=...),                   ← explicit choice first
        ("cookie", combinatorius.theme=...),       ← remembered choice
    ]

No answer means "no theme", which is never an error. Adding a new source
(a header, a per-host default) is one more entry in the list.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple, List
import logging

from ..http.request import HTTPRequest
from ..http.mime_types import MimeType, get_mime_type
from .errors import (
    InvalidExtension,
    InvalidResourceName,
    InvalidVersion,
    THEME_COOKIE,
    THEME_PARAM,
)


logger = logging.getLogger(__name__)

RESOURCES_PARAM = "resources"
VERSION_PARAM = "v"

ThemeStrategy = Callable[[HTTPRequest], Optional[str]]


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Everything the resolver needs to know about one combo request.

    Attributes:
        mime_type:      CSS or JS, from the path suffix
        resource_names: requested names in URL order; empty means "all"
        theme_name:     theme override, None when no theme applies
        theme_source:   which strategy supplied the theme ("param",
                        "cookie") or None
        version:        cache-busting token; only ever hashed
        extension:      lowercase suffix used to build file names
    """

    mime_type: MimeType
    resource_names: Tuple[str, ...] = ()
    theme_name: Optional[str] = None
    theme_source: Optional[str] = None
    version: int = 0
    extension: str = ""

    @property
    def has_theme(self) -> bool:
        return bool(self.theme_name)


def _theme_from_param(request: HTTPRequest) -> Optional[str]:
    return request.get_query(THEME_PARAM)


def _theme_from_cookie(request: HTTPRequest) -> Optional[str]:
    return request.get_cookie(THEME_COOKIE)


THEME_STRATEGIES: List[Tuple[str, ThemeStrategy]] = [
    ("param", _theme_from_param),
    ("cookie", _theme_from_cookie),
]


def resolve_theme(request: HTTPRequest) -> Tuple[Optional[str], Optional[str]]:
    """
    Run the theme strategies in order.

    Returns:
        (theme_name, source) of the first strategy that produced a
        non-blank value, or (None, None).
    """
    for source, strategy in THEME_STRATEGIES:
        value = strategy(request)
        if value and value.strip():
            return value.strip(), source
    return None, None


def validate_resource_name(name: str) -> str:
    """
    Reject names that could address a file outside the resource directory.

    A resource name is a bare file stem: no "/" or "\\", no "..", no NUL.
    """
    if (
        "/" in name
        or "\\" in name
        or "\x00" in name
        or name in (".", "..")
        or ".." in name
    ):
        raise InvalidResourceName(name)
    return name


def parse_resource_names(values: List[str]) -> Tuple[str, ...]:
    """
    Flatten the resources parameter into an ordered tuple of names.

        ["reset,layout", "nav", " , grid "] → ("reset", "layout", "nav", "grid")

    Blank items are dropped; duplicates are kept, the resolver removes
    them by path.
    """
    names = []
    for value in values:
        for item in value.split(","):
            item = item.strip()
            if item:
                names.append(validate_resource_name(item))
    return tuple(names)


def parse_version(value: Optional[str]) -> int:
    """Parse the v parameter; absent or blank means 0."""
    if value is None or not value.strip():
        return 0
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidVersion(value)
    try:
        return int(value)
    except ValueError:
        # longer than sys.get_int_max_str_digits()
        raise InvalidVersion(value)



def resolve_descriptor(request: HTTPRequest) -> RequestDescriptor:
    """
    Build the RequestDescriptor for a combo request.

    Raises:
        InvalidExtension: path suffix is neither .css nor .js
        InvalidResourceName: a resource name tries to leave its directory
        InvalidVersion: v is not a non-negative integer
    """
    mime_type = get_mime_type(request.path)
    if mime_type is None:
        raise InvalidExtension(request.path)

    theme_name, theme_source = resolve_theme(request)

    descriptor = RequestDescriptor(
        mime_type=mime_type,
        resource_names=parse_resource_names(request.get_query_list(RESOURCES_PARAM)),
        theme_name=theme_name,
        theme_source=theme_source,
        version=parse_version(request.get_query(VERSION_PARAM)),
        extension=mime_type.extension,
    )
    logger.debug(f"Resolved descriptor: {descriptor}")
    return descriptor
