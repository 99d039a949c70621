from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

import pytest

from diffbackup.models import Entry, EntryKind, Metadata

SECOND_NS = 1_000_000_000


def mk_meta(
    *,
    kind: EntryKind = EntryKind.FILE,
    size: int = 0,
    mtime_ns: int = 0,
    mode: int = 0o644,
    link_target: str | None = None,
) -> Metadata:
    return Metadata(
        exists=True,
        kind=kind,
        size=size,
        mtime_ns=mtime_ns,
        mode=mode,
        link_target=link_target,
    )


def mk_entry(relpath: str, kind: EntryKind = EntryKind.FILE) -> Entry:
    return Entry(relpath=PurePosixPath(relpath), kind=kind)


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, ns=(seconds * SECOND_NS, seconds * SECOND_NS), follow_symlinks=False)


def write_file(root: Path, relpath: str, size: int, mtime: int) -> Path:
    path = root / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    set_mtime(path, mtime)
    return path


def snapshot(root: Path) -> dict[str, tuple[str, int, int, bytes | str | None]]:
    """Map every path under `root` to (kind, size, mtime_ns, content)."""
    result: dict[str, tuple[str, int, int, bytes | str | None]] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        st = path.lstat()
        if path.is_symlink():
            result[rel] = ("symlink", 0, 0, os.readlink(path))
        elif path.is_dir():
            result[rel] = ("dir", 0, 0, None)
        else:
            result[rel] = ("file", st.st_size, st.st_mtime_ns, path.read_bytes())
    return result


@pytest.fixture
def roots(tmp_path) -> tuple[Path, Path]:
    source = tmp_path / "source"
    target = tmp_path / "target"
    source.mkdir()
    return source, target
