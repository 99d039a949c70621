from __future__ import annotations

import os
import stat
from pathlib import Path

from .errors import UnsupportedFileType, from_os_error
from .models import EntryKind, Metadata


def _special_name(st_mode: int) -> str:
    if stat.S_ISFIFO(st_mode):
        return "named pipe"
    if stat.S_ISSOCK(st_mode):
        return "socket"
    if stat.S_ISCHR(st_mode):
        return "character device"
    if stat.S_ISBLK(st_mode):
        return "block device"
    return f"mode 0o{stat.S_IFMT(st_mode):o}"


def kind_from_mode(st_mode: int) -> EntryKind | None:
    """Map a mode to an entry kind; None for anything but file, dir or link."""
    if stat.S_ISLNK(st_mode):
        return EntryKind.SYMLINK
    if stat.S_ISDIR(st_mode):
        return EntryKind.DIR
    if stat.S_ISREG(st_mode):
        return EntryKind.FILE
    return None


def probe(path: Path) -> Metadata:
    """Read metadata for `path` without following symlinks.

    A missing path is reported as `exists=False`; every other `OSError` is
    raised as the matching `BackupError` subclass. Pipes, sockets and device
    nodes raise `UnsupportedFileType` so they are never opened for copying.
    """
    try:
        st = path.lstat()
    except FileNotFoundError:
        return Metadata.missing()
    except OSError as exc:
        raise from_os_error(exc, path) from exc

    kind = kind_from_mode(st.st_mode)
    if kind is None:
        raise UnsupportedFileType(
            f"unsupported file type: {_special_name(st.st_mode)}", path
        )
    link_target = None
    if kind == EntryKind.SYMLINK:
        try:
            link_target = os.readlink(path)
        except OSError as exc:
            raise from_os_error(exc, path) from exc

    return Metadata(
        exists=True,
        kind=kind,
        size=st.st_size,
        mtime_ns=st.st_mtime_ns,
        mode=stat.S_IMODE(st.st_mode),
        link_target=link_target,
    )
