"""
=============================================================================
FILE RESOLVER
=============================================================================

Maps a RequestDescriptor to the ordered list of files to combine.

=============================================================================
DIRECTORY LAYOUT
=============================================================================

    css/                    ← css_dir (default directory for .css)
    ├── a.css
    ├── b.css
    └── c.css
    themes/                 ← themes_dir
    └── dark/               ← one directory per theme
        ├── a.css           ← overrides css/a.css in place
        └── extra.css       ← theme-only file

=============================================================================
RESOLUTION
=============================================================================

    No resources requested, no theme:   [css/a, css/b, css/c]
    No resources requested, theme=dark: [dark/a, css/b, css/c, dark/extra]
                                          ▲                       ▲
                                  replaced in place      theme-only, appended
    resources=c,a,  theme=dark:         [css/c, dark/a]
    resources=extra, theme=dark:        [dark/extra]
    resources=zzz:                      DirectoryError (never a shorter list)

Checks run in a fixed order, so the first problem reported is always the
most fundamental one:

    1. default directory configured?          → ConfigurationError
    2. default directory exists and lists?    → DirectoryError
    3. theme directory exists (if a theme)?   → InvalidTheme
    4. every requested name found?            → DirectoryError

Duplicates (the same name requested twice) collapse to the first position.

=============================================================================
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging
import os

from .descriptor import RequestDescriptor
from .errors import ConfigurationError, DirectoryError, InvalidTheme


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedFile:
    """A file chosen for the combo, with the mtime it had when resolved."""

    path: Path
    mtime: float

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class ResolvedFileSet:
    """Ordered, duplicate-free files for one descriptor."""

    files: Tuple[ResolvedFile, ...] = ()

    def __iter__(self):
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    @property
    def paths(self) -> List[Path]:
        return [f.path for f in self.files]

    @property
    def last_modified(self) -> float:
        """Newest mtime in the set, 0 when the set is empty."""
        return max((f.mtime for f in self.files), default=0.0)


def default_directory(descriptor: RequestDescriptor, config) -> Path:
    """
    The configured default directory for the descriptor's MIME type.

    Raises:
        ConfigurationError: css_dir / js_dir is not set
    """
    directory = config.resource_dir(descriptor.mime_type)
    if not directory:
        raise ConfigurationError(descriptor.mime_type.label)
    return Path(directory)


def _list_files(directory: Path, extension: str) -> Dict[str, Path]:
    """
    Regular files in directory with the given extension, keyed by name.

    Raises:
        OSError: the directory cannot be listed
    """
    suffix = "." + extension
    found = {}
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.name.endswith(suffix) and entry.is_file():
                found[entry.name] = Path(entry.path)
    return found


def theme_directory(theme_name: str, config) -> Path:
    """
    Locate the directory for a theme.

    Raises:
        InvalidTheme: no themes root configured, the name is not a plain
            directory name, or no such directory exists
    """
    if not config.themes_dir:
        raise InvalidTheme(theme_name)
    if "/" in theme_name or "\\" in theme_name or theme_name in (".", ".."):
        raise InvalidTheme(theme_name)

    directory = Path(config.themes_dir) / theme_name
    if not directory.is_dir():
        raise InvalidTheme(theme_name)
    return directory


def _stat(path: Path) -> ResolvedFile:
    try:
        return ResolvedFile(path=path, mtime=path.stat().st_mtime)
    except OSError as e:
        raise DirectoryError(path.parent, e.strerror or str(e))


def resolve_files(descriptor: RequestDescriptor, config) -> ResolvedFileSet:
    """
    Resolve a descriptor to its ordered ResolvedFileSet.

    Args:
        descriptor: Parsed request.
        config: Anything with css_dir/js_dir/themes_dir and resource_dir(),
            normally ComboConfig.

    Raises:
        ConfigurationError, DirectoryError, InvalidTheme
    """
    base_dir = default_directory(descriptor, config)
    extension = descriptor.extension

    try:
        default_files = _list_files(base_dir, extension)
    except OSError as e:
        logger.warning(f"Cannot list {base_dir}: {e}")
        raise DirectoryError(base_dir, e.strerror or "")

    theme_files: Dict[str, Path] = {}
    theme_dir: Optional[Path] = None
    if descriptor.has_theme:
        theme_dir = theme_directory(descriptor.theme_name, config)
        try:
            theme_files = _list_files(theme_dir, extension)
        except OSError as e:
            logger.warning(f"Cannot list {theme_dir}: {e}")
            raise DirectoryError(theme_dir, e.strerror or "")

    if descriptor.resource_names:
        paths = []
        for name in descriptor.resource_names:
            file_name = f"{name}.{extension}"
            if file_name in theme_files:
                paths.append(theme_files[file_name])
            elif file_name in default_files:
                paths.append(default_files[file_name])
            else:
                raise DirectoryError(base_dir, f"resource '{file_name}' not found")
    else:
        paths = [
            theme_files.get(name, default_files[name])
            for name in sorted(default_files)
        ]
        paths.extend(
            theme_files[name]
            for name in sorted(theme_files)
            if name not in default_files
        )

    seen = set()
    resolved = []
    for path in paths:
        if path in seen:
            continue
        seen.add(path)
        resolved.append(_stat(path))

    logger.debug(
        f"Resolved {len(resolved)} {descriptor.mime_type.label} file(s)"
        f"{f' with theme {descriptor.theme_name}' if theme_dir else ''}"
    )
    return ResolvedFileSet(files=tuple(resolved))
