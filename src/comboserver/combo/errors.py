"""
=============================================================================
COMBO ERRORS
=============================================================================

Every failure the combo pipeline can raise while turning a request into a
payload. All of them are caller- or operator-correctable (a bad theme name,
a missing resource, a directory nobody configured), so each one carries a
400 status code in the same way HTTPParseError carries its own status:

    ComboError (400)
    ├── ConfigurationError      resource directory not configured
    ├── DirectoryError          directory missing/unreadable, resource missing
    ├── InvalidTheme            theme directory not found
    ├── InvalidExtension        path suffix is neither .css nor .js
    ├── InvalidResourceName     resource name escapes its directory
    ├── InvalidVersion          version token is not a non-negative integer
    ├── MinificationError       transform rejected its input
    └── ContentReadError        I/O error reading a resolved file

The combo handler catches ComboError at its boundary and turns it into a
400 response. Anything else is a genuine server fault and propagates.

=============================================================================
"""

THEME_COOKIE = "combinatorius.theme"
THEME_PARAM = "theme"


class ComboError(Exception):
    """Base class for combo pipeline failures."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(ComboError):
    """
    A required resource directory is not configured at all.

    Distinct from DirectoryError: the path is absent from configuration,
    not merely absent from disk.
    """

    def __init__(self, resource_type: str):
        super().__init__(f"{resource_type} directory not specified")
        self.resource_type = resource_type


class DirectoryError(ComboError):
    """A configured directory (or a resource inside it) cannot be read."""

    def __init__(self, path, reason: str = ""):
        message = f"Error getting files from {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.path = path


class InvalidTheme(ComboError):
    """The requested theme has no matching directory."""

    def __init__(self, theme_name: str):
        super().__init__(
            f"Error getting '{theme_name}' theme. Please make sure the theme "
            f"name is correctly specified via '{THEME_PARAM}' URL parameter "
            f"or as '{THEME_COOKIE}' cookie value."
        )
        self.theme_name = theme_name


class InvalidExtension(ComboError):
    def __init__(self, path: str):
        super().__init__(f"Unsupported resource type for path: {path}")
        self.path = path


class InvalidResourceName(ComboError):
    def __init__(self, name: str):
        super().__init__(f"Invalid resource name: {name!r}")
        self.name = name


class InvalidVersion(ComboError):
    def __init__(self, value: str):
        super().__init__(f"Version must be a non-negative integer, got {value!r}")
        self.value = value


class MinificationError(ComboError):
    """A minification transform failed; the combine fails closed."""


class ContentReadError(ComboError):
    """Reading a resolved file failed."""

    def __init__(self, path, cause: OSError):
        super().__init__(f"Error reading {path}: {cause.strerror or cause}")
        self.path = path
