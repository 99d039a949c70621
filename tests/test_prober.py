from __future__ import annotations

import errno
import os
from pathlib import Path

import pytest

from diffbackup.errors import BackupIOError, PermissionDenied, UnsupportedFileType
from diffbackup.models import EntryKind
from diffbackup.prober import probe

from conftest import SECOND_NS, write_file


def test_missing_path_is_not_an_error(tmp_path) -> None:
    meta = probe(tmp_path / "nope.txt")
    assert meta.exists is False
    assert meta.kind is None


def test_file_metadata(tmp_path) -> None:
    path = write_file(tmp_path, "a.txt", size=100, mtime=10)

    meta = probe(path)

    assert meta.exists is True
    assert meta.kind == EntryKind.FILE
    assert meta.size == 100
    assert meta.mtime_ns == 10 * SECOND_NS
    assert meta.link_target is None


def test_directory_metadata(tmp_path) -> None:
    (tmp_path / "d").mkdir()
    assert probe(tmp_path / "d").kind == EntryKind.DIR


def test_symlink_is_not_followed(tmp_path) -> None:
    (tmp_path / "real").mkdir()
    os.symlink("real", tmp_path / "link")
    os.symlink("missing-target", tmp_path / "broken")

    link = probe(tmp_path / "link")
    broken = probe(tmp_path / "broken")

    assert link.kind == EntryKind.SYMLINK
    assert link.link_target == "real"
    assert broken.exists is True
    assert broken.kind == EntryKind.SYMLINK
    assert broken.link_target == "missing-target"


def test_path_below_a_file_raises_io_error(tmp_path) -> None:
    write_file(tmp_path, "a.txt", size=1, mtime=1)

    with pytest.raises(BackupIOError) as excinfo:
        probe(tmp_path / "a.txt" / "child")

    assert "not a directory" in str(excinfo.value)


class _DeniedPath:
    def __init__(self, path: Path) -> None:
        self.path = path

    def lstat(self):
        raise PermissionError(errno.EACCES, "Permission denied", str(self.path))

    def __str__(self) -> str:
        return str(self.path)


def test_permission_error_is_wrapped(tmp_path) -> None:
    with pytest.raises(PermissionDenied) as excinfo:
        probe(_DeniedPath(tmp_path / "secret"))

    assert excinfo.value.path == str(tmp_path / "secret")
    assert str(excinfo.value).startswith("permission denied:")


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="named pipes need os.mkfifo")
def test_named_pipe_is_unsupported(tmp_path) -> None:
    os.mkfifo(tmp_path / "pipe")

    with pytest.raises(UnsupportedFileType) as excinfo:
        probe(tmp_path / "pipe")

    assert str(excinfo.value) == "unsupported file type: named pipe"
    assert excinfo.value.path == str(tmp_path / "pipe")
