"""NFS export exception hierarchy.

Maps exportfs error patterns to structured exceptions with HTTP status codes.
Used by route handlers to return appropriate error responses.
"""

import re


class ExportError(Exception):
    """Base exception for export file and exportfs failures."""

    status_code: int = 500

    def __init__(self, message: str, stderr: str = "", returncode: int = 1) -> None:
        self.message = message
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)


class ExportNotFoundError(ExportError):
    """Exported directory or referenced file does not exist."""

    status_code = 404


class ExportPermissionError(ExportError):
    """Insufficient permissions to edit exports or reload the export table."""

    status_code = 403


class ExportInvalidArgumentError(ExportError):
    """exportfs rejected an option, address or export line."""

    status_code = 400


class IdentityNotFoundError(ExportError):
    """Anonymous user or group name has no entry in the system directory."""

    status_code = 400


# --- Stderr pattern matching ---
# Ordered by specificity — first match wins.
_ERROR_PATTERNS: list[tuple[re.Pattern[str], type[ExportError]]] = [
    (re.compile(r"failed to stat", re.IGNORECASE), ExportNotFoundError),
    (re.compile(r"no such file or directory", re.IGNORECASE), ExportNotFoundError),
    (re.compile(r"does not exist", re.IGNORECASE), ExportNotFoundError),
    (re.compile(r"permission denied", re.IGNORECASE), ExportPermissionError),
    (re.compile(r"operation not permitted", re.IGNORECASE), ExportPermissionError),
    (re.compile(r"unknown keyword", re.IGNORECASE), ExportInvalidArgumentError),
    (re.compile(r"bad option", re.IGNORECASE), ExportInvalidArgumentError),
    (re.compile(r"invalid .*address", re.IGNORECASE), ExportInvalidArgumentError),
    (re.compile(r"syntax error", re.IGNORECASE), ExportInvalidArgumentError),
    (re.compile(r"invalid option", re.IGNORECASE), ExportInvalidArgumentError),
]


def parse_exportfs_error(stderr: str, returncode: int = 1) -> ExportError:
    """Parse exportfs stderr output and return the appropriate exception.

    Scans stderr for known error patterns and returns a specific exception
    type. Falls back to base ExportError if no pattern matches.
    """
    for pattern, exc_class in _ERROR_PATTERNS:
        if pattern.search(stderr):
            first_line = stderr.strip().split("\n")[0]
            return exc_class(message=first_line, stderr=stderr, returncode=returncode)

    first_line = stderr.strip().split("\n")[0] if stderr.strip() else "Unknown exportfs error"
    return ExportError(message=first_line, stderr=stderr, returncode=returncode)
