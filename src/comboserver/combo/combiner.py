"""
=============================================================================
COMBINER
=============================================================================

Reads resolved files in order and joins them into one payload.

    files:   reset.css   grid.css   vendor.min.css   site.css
                 │           │            │              │
                 └─────┬─────┘            │              │
                 minified together     verbatim       minified
                       │                  │              │
    payload:   <segment 1>       \\n   <vendor>   \\n   <segment 2>

Files are always separated by "\\n" so that the last token of one file
cannot fuse with the first token of the next (a script without a trailing
semicolon followed by one starting with "(" is the classic case).

When minification is on, files whose name matches the omit pattern
(already-minified vendor bundles, by default *.min.css / *.min.js) are
copied as they are. The remaining files are grouped into runs of
consecutive files and each run goes through the transform as one buffer,
so the output order is always the resolved order.

=============================================================================
"""

from pathlib import Path
from typing import List, Optional
import logging
import re

from ..http.mime_types import MimeType
from .errors import ContentReadError, MinificationError
from .minify import MinifyOptions, TRANSFORMS, get_transform  # noqa: F401  (TRANSFORMS re-exported)
from .resolver import ResolvedFileSet


logger = logging.getLogger(__name__)

SEPARATOR = b"\n"


def read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        logger.warning(f"Failed to read {path}: {e}")
        raise ContentReadError(path, e)


def _compile_omit(pattern: Optional[str]) -> Optional[re.Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise MinificationError(f"Invalid omit pattern {pattern!r}: {e}")


def combine(
    file_set: ResolvedFileSet,
    mime_type: MimeType,
    minify_enabled: bool,
    options: Optional[MinifyOptions] = None,
) -> bytes:
    """
    Produce the combined (and optionally minified) payload.

    Args:
        file_set: Files in output order.
        mime_type: Selects the transform from TRANSFORMS.
        minify_enabled: When False the files are only concatenated.
        options: Transform tunables, including the omit pattern.

    Raises:
        ContentReadError: a file could not be read
        MinificationError: the transform rejected its input
    """
    contents = [(resolved.path, read_file(resolved.path)) for resolved in file_set]

    if not minify_enabled:
        return SEPARATOR.join(data for _, data in contents)

    options = options or MinifyOptions()
    transform = get_transform(mime_type)
    omit = _compile_omit(options.omit_pattern)

    pieces: List[bytes] = []
    segment: List[bytes] = []

    def flush() -> None:
        if not segment:
            return
        buffer = SEPARATOR.join(segment)
        try:
            pieces.append(transform(buffer, options))
        except MinificationError:
            raise
        except Exception as e:
            raise MinificationError(f"{mime_type.label} minification failed: {e}")
        segment.clear()

    for path, data in contents:
        if omit is not None and omit.match(path.name):
            flush()
            pieces.append(data)
        else:
            segment.append(data)
    flush()

    return SEPARATOR.join(pieces)
