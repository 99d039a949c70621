from __future__ import annotations

import errno
from pathlib import Path, PurePath


class BackupError(Exception):
    """Base class for every error raised by the backup engine."""

    def __init__(self, message: str, path: PurePath | str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        return self.message


class PathNotFound(BackupError):
    pass


class PermissionDenied(BackupError):
    pass


class TypeConflict(BackupError):
    pass


class BackupIOError(BackupError):
    pass


class InvalidArguments(BackupError):
    pass


class UnsupportedFileType(BackupError):
    pass


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


def reason_from_os_error(exc: OSError) -> str:
    if isinstance(exc, FileNotFoundError):
        return f"not found: {_describe(exc)}"
    if isinstance(exc, PermissionError):
        return f"permission denied: {_describe(exc)}"
    if exc.errno == errno.ELOOP:
        return f"symlink loop: {_describe(exc)}"
    if exc.errno == errno.ENOTDIR:
        return f"not a directory: {_describe(exc)}"
    return f"I/O error: {_describe(exc)}"


def from_os_error(exc: OSError, path: Path | str) -> BackupError:
    """Wrap an `OSError` into the matching taxonomy exception."""
    reason = reason_from_os_error(exc)
    if isinstance(exc, FileNotFoundError):
        return PathNotFound(reason, path)
    if isinstance(exc, PermissionError):
        return PermissionDenied(reason, path)
    return BackupIOError(reason, path)
