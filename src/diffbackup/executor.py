from __future__ import annotations

import logging
import os
import secrets
import stat
import tempfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import BinaryIO, TypeAlias, assert_never

from .classifier import classify_paths
from .config import COPY_CHUNK_SIZE, TEMP_PREFIX, TEMP_SUFFIX, SyncSettings
from .errors import (
    BackupError,
    BackupIOError,
    PathNotFound,
    UnsupportedFileType,
    reason_from_os_error,
)
from .models import (
    Classification,
    ClassificationKind,
    Entry,
    EntryKind,
    Metadata,
    SyncReport,
    WalkFailure,
)
from .paths import ROOT_RELPATH, join_under, prepare_roots
from .walker import TreeWalker

logger = logging.getLogger(__name__)

ProgressCallback: TypeAlias = Callable[[int, PurePosixPath, Classification], None]
ByteProgressCallback: TypeAlias = Callable[[int, int], None]
FileBytesCallback: TypeAlias = Callable[[PurePosixPath, int, int], None]


def _clear_readonly(path: Path) -> None:
    # Windows refuses to replace read-only files.
    if os.name != "nt":
        return
    try:
        mode = path.lstat().st_mode
    except FileNotFoundError:
        return
    if not mode & stat.S_IWRITE:
        os.chmod(path, stat.S_IMODE(mode) | stat.S_IWRITE)


def _open_regular(source: Path) -> tuple[BinaryIO, os.stat_result]:
    # O_NONBLOCK keeps a pipe swapped in after classification from blocking.
    nonblock = getattr(os, "O_NONBLOCK", 0)
    fd = os.open(source, os.O_RDONLY | getattr(os, "O_BINARY", 0) | nonblock)
    try:
        source_stat = os.fstat(fd)
        if not stat.S_ISREG(source_stat.st_mode):
            raise UnsupportedFileType(
                f"unsupported file type: {source} is not a regular file", source
            )
        if nonblock:
            os.set_blocking(fd, True)
    except BaseException:
        os.close(fd)
        raise
    return os.fdopen(fd, "rb"), source_stat


def _copy_chunks(
    src_handle: BinaryIO,
    dst_handle: BinaryIO,
    total: int,
    progress: ByteProgressCallback | None,
) -> int:
    copied = 0
    while True:
        chunk = src_handle.read(COPY_CHUNK_SIZE)
        if not chunk:
            break
        dst_handle.write(chunk)
        copied += len(chunk)
        if progress is not None:
            progress(copied, total)
    return copied


def copy_file_atomic(
    source: Path,
    destination: Path,
    *,
    preserve_mode: bool = True,
    progress: ByteProgressCallback | None = None,
) -> int:
    """Copy `source` over `destination` so that it appears all at once.

    Bytes go to a hidden temporary file next to the destination, which gets
    the source's timestamps (and permission bits) before being renamed into
    place. The temporary is removed on any failure. `progress` receives
    (bytes copied, total bytes) after every chunk. Returns the byte count.
    """
    src_handle, source_stat = _open_regular(source)
    with src_handle:
        fd, tmp_name = tempfile.mkstemp(
            prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=destination.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as dst_handle:
                written = _copy_chunks(
                    src_handle, dst_handle, source_stat.st_size, progress
                )
            if preserve_mode:
                os.chmod(tmp_path, stat.S_IMODE(source_stat.st_mode))
            os.utime(tmp_path, ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns))
            _clear_readonly(destination)
            os.replace(tmp_path, destination)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
    return written


def replace_symlink(link_target: str, destination: Path) -> None:
    tmp_path = destination.parent / f"{TEMP_PREFIX}{secrets.token_hex(8)}{TEMP_SUFFIX}"
    os.symlink(link_target, tmp_path)
    try:
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class SyncExecutor:
    """Mirror one source tree into one target tree for a single run."""

    def __init__(
        self,
        source_root: Path,
        target_root: Path,
        settings: SyncSettings | None = None,
        progress_cb: ProgressCallback | None = None,
        bytes_cb: FileBytesCallback | None = None,
    ) -> None:
        self.source_root = source_root
        self.target_root = target_root
        self.settings = settings or SyncSettings()
        self.progress_cb = progress_cb
        self.bytes_cb = bytes_cb
        self.report = SyncReport()
        self._blocked: set[PurePosixPath] = set()
        self._done = 0

    def run(self) -> SyncReport:
        walker = TreeWalker(self.source_root, self.settings.exclude)
        for item in walker:
            if isinstance(item, WalkFailure):
                self._walk_failure(item)
                continue
            self._process(item)

        if self.settings.delete_orphans:
            purge_orphans(
                self.source_root,
                self.target_root,
                report=self.report,
                exclude=self.settings.exclude,
            )
        return self.report

    def _fail(self, relpath: PurePosixPath, reason: str) -> None:
        logger.warning("failed %s: %s", relpath.as_posix(), reason)
        self.report.add_failure(relpath, reason)

    def _walk_failure(self, failure: WalkFailure) -> None:
        self._blocked.add(failure.relpath)
        self._fail(failure.relpath, f"cannot list directory: {failure.reason}")

    def _blocked_parent(self, relpath: PurePosixPath) -> PurePosixPath | None:
        for parent in relpath.parents:
            if parent in self._blocked:
                return parent
        return None

    def _notify(self, relpath: PurePosixPath, classification: Classification) -> None:
        self._done += 1
        if self.progress_cb is not None:
            self.progress_cb(self._done, relpath, classification)

    def _byte_progress(self, relpath: PurePosixPath) -> ByteProgressCallback | None:
        bytes_cb = self.bytes_cb
        if bytes_cb is None:
            return None
        return lambda copied, total: bytes_cb(relpath, copied, total)

    def _process(self, entry: Entry) -> None:
        blocked = self._blocked_parent(entry.relpath)
        source_meta: Metadata | None = None
        if blocked is not None:
            classification = Classification(
                ClassificationKind.ERROR,
                f"parent directory not synced: {blocked.as_posix()}",
            )
        else:
            classification, source_meta = classify_paths(
                entry,
                self.source_root,
                self.target_root,
                checksum=self.settings.checksum,
            )

        logger.debug("%s %s", classification.kind.value, entry.relpath.as_posix())
        if classification.is_failure or source_meta is None:
            if entry.kind == EntryKind.DIR:
                self._blocked.add(entry.relpath)
            reason = classification.reason or classification.kind.value
            self._fail(entry.relpath, reason)
        else:
            try:
                self._apply(entry, classification, source_meta)
            except BackupError as exc:
                self._apply_failed(entry, str(exc))
            except OSError as exc:
                self._apply_failed(entry, reason_from_os_error(exc))
        self._notify(entry.relpath, classification)

    def _apply_failed(self, entry: Entry, reason: str) -> None:
        if entry.kind == EntryKind.DIR:
            self._blocked.add(entry.relpath)
        self._fail(entry.relpath, reason)

    def _apply(
        self, entry: Entry, classification: Classification, source_meta: Metadata
    ) -> None:
        source_path = join_under(self.source_root, entry.relpath)
        target_path = join_under(self.target_root, entry.relpath)
        kind = source_meta.kind
        if kind is None:
            raise PathNotFound("source vanished during the walk", source_path)

        if kind == EntryKind.DIR:
            if classification.kind == ClassificationKind.NEW:
                target_path.mkdir(exist_ok=True)
                self.report.directories_created += 1
            return
        if kind == EntryKind.FILE:
            if not classification.needs_copy:
                self.report.skipped += 1
                return
            written = copy_file_atomic(
                source_path,
                target_path,
                preserve_mode=self.settings.preserve_mode,
                progress=self._byte_progress(entry.relpath),
            )
            self.report.copied += 1
            self.report.bytes_copied += written
            return
        if kind == EntryKind.SYMLINK:
            if not classification.needs_copy:
                self.report.skipped += 1
                return
            if source_meta.link_target is None:
                raise BackupIOError("symlink target unreadable", source_path)
            replace_symlink(source_meta.link_target, target_path)
            self.report.copied += 1
            return
        assert_never(kind)


def sync(
    source_root: Path,
    target_root: Path,
    settings: SyncSettings | None = None,
    progress_cb: ProgressCallback | None = None,
    bytes_cb: FileBytesCallback | None = None,
) -> SyncReport:
    """Bring `target_root` in line with `source_root` and report what happened.

    Invalid roots raise a `BackupError` before anything is walked; every
    per-entry problem is recorded in the returned report instead.
    `bytes_cb(relpath, copied, total)` follows each file copy chunk by chunk.
    """
    source, target = prepare_roots(Path(source_root), Path(target_root))
    logger.debug("syncing %s -> %s", source, target)
    executor = SyncExecutor(
        source, target, settings=settings, progress_cb=progress_cb, bytes_cb=bytes_cb
    )
    return executor.run()


def _depth(entry: Entry) -> int:
    return len(entry.relpath.parts)


def purge_orphans(
    source_root: Path,
    target_root: Path,
    *,
    report: SyncReport | None = None,
    exclude: tuple[str, ...] = (),
) -> SyncReport:
    """Delete target entries that have no counterpart under `source_root`.

    Entries are visited deepest first so a directory is emptied before it is
    removed. Excluded paths are left alone. The target root is never removed.
    """
    result = report if report is not None else SyncReport()
    entries: list[Entry] = []
    for item in TreeWalker(target_root, exclude):
        if isinstance(item, WalkFailure):
            logger.warning("cannot list %s: %s", item.relpath.as_posix(), item.reason)
            result.add_failure(item.relpath, f"cannot list directory: {item.reason}")
            continue
        entries.append(item)

    entries.sort(key=_depth, reverse=True)
    for entry in entries:
        if entry.relpath == ROOT_RELPATH:
            continue
        counterpart = join_under(source_root, entry.relpath)
        if os.path.lexists(counterpart):
            continue
        path = join_under(target_root, entry.relpath)
        try:
            _clear_readonly(path)
            if entry.kind == EntryKind.DIR:
                path.rmdir()
            else:
                path.unlink()
        except OSError as exc:
            reason = reason_from_os_error(exc)
            logger.warning("failed to delete %s: %s", entry.relpath.as_posix(), reason)
            result.add_failure(entry.relpath, f"delete failed: {reason}")
            continue
        logger.debug("deleted %s", entry.relpath.as_posix())
        result.deleted += 1
    return result
