"""
Content fingerprint: the cache key and ETag for a combo response.

The digest covers every input that can change the bytes served:

    for each resolved file, in order:   path, mtime
    then:                               theme, minify flag, version

Touching any file (new mtime), reordering the request, switching theme,
toggling minification or bumping ?v= all produce a new fingerprint, so a
cached payload can never be served for inputs it was not built from.
"""

import hashlib
from typing import Optional

from .resolver import ResolvedFileSet


def compute_fingerprint(
    file_set: ResolvedFileSet,
    theme_name: Optional[str],
    minify_enabled: bool,
    version: int,
) -> str:
    """
    SHA-256 hex digest over the resolved inputs.

    Fields are NUL-separated so that adjacent values cannot run together
    ("ab" + "c" and "a" + "bc" hash differently).
    """
    digest = hashlib.sha256()
    for resolved in file_set:
        digest.update(str(resolved.path).encode("utf-8"))
        digest.update(b"\x00")
        digest.update(repr(resolved.mtime).encode("ascii"))
        digest.update(b"\x00")
    digest.update(b"theme=" + (theme_name or "").encode("utf-8") + b"\x00")
    digest.update(b"minify=" + (b"1" if minify_enabled else b"0") + b"\x00")
    digest.update(b"v=" + str(version).encode("ascii"))
    return digest.hexdigest()
