from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

from .errors import (
    InvalidArguments,
    PathNotFound,
    PermissionDenied,
    TypeConflict,
    from_os_error,
)

ROOT_RELPATH = PurePosixPath(".")


def safe_relpath(value: PurePosixPath | str) -> PurePosixPath:
    """Return `value` as a relative path that cannot escape its root."""
    text = value.as_posix() if isinstance(value, PurePosixPath) else str(value)
    relpath = PurePosixPath(text)
    if relpath.is_absolute():
        raise InvalidArguments(f"absolute path not allowed: {text}", text)
    if any(part == ".." for part in relpath.parts):
        raise InvalidArguments(f"path escapes its root: {text}", text)
    return relpath


def join_under(root: Path, relpath: PurePosixPath | str) -> Path:
    relative = safe_relpath(relpath)
    if relative == ROOT_RELPATH:
        return root
    return root.joinpath(*relative.parts)


def child_relpath(parent: PurePosixPath, name: str) -> PurePosixPath:
    if parent == ROOT_RELPATH:
        return PurePosixPath(name)
    return parent / name


def prepare_roots(source: Path, target: Path) -> tuple[Path, Path]:
    """Validate the backup roots, creating the target when needed.

    Raises a `BackupError` subclass for anything that must stop the run
    before the walk starts.
    """
    source_root = source.expanduser().resolve()
    target_root = target.expanduser().resolve()

    if not source_root.exists():
        raise PathNotFound(f"Source directory not found: {source_root}", source_root)
    if not source_root.is_dir():
        raise InvalidArguments(
            f"Source path is not a directory: {source_root}", source_root
        )
    if not os.access(source_root, os.R_OK | os.X_OK):
        raise PermissionDenied(
            f"Source directory is not readable: {source_root}", source_root
        )

    if source_root == target_root:
        raise InvalidArguments("Source and target are the same directory", target_root)
    if source_root in target_root.parents:
        raise InvalidArguments(
            f"Target directory is inside the source: {target_root}", target_root
        )
    if target_root in source_root.parents:
        raise InvalidArguments(
            f"Source directory is inside the target: {source_root}", source_root
        )

    if target_root.exists() or target_root.is_symlink():
        if not target_root.is_dir():
            raise TypeConflict(
                f"Target path exists but is not a directory: {target_root}",
                target_root,
            )
        return source_root, target_root

    try:
        target_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise from_os_error(exc, target_root) from exc
    return source_root, target_root
