from __future__ import annotations

import filecmp
import logging
from pathlib import Path
from typing import assert_never

from .errors import BackupError, reason_from_os_error
from .models import (
    MODIFIED,
    NEW,
    UNCHANGED,
    Classification,
    ClassificationKind,
    Entry,
    EntryKind,
    Metadata,
)
from .paths import join_under
from .prober import probe

logger = logging.getLogger(__name__)


def _error(reason: str) -> Classification:
    return Classification(ClassificationKind.ERROR, reason)


def classify(
    entry: Entry, source_meta: Metadata, target_meta: Metadata
) -> Classification:
    """Decide what the target needs for `entry` from metadata alone.

    Files are modified when the source is newer or the sizes differ; there is
    no content comparison here, so an equal-size edit with an older timestamp
    goes unnoticed.
    """
    if not source_meta.exists or source_meta.kind is None:
        return _error("source vanished during the walk")
    if not target_meta.exists:
        return NEW
    if source_meta.kind != target_meta.kind:
        target_kind = target_meta.kind.value if target_meta.kind else "unknown"
        return Classification(
            ClassificationKind.TYPE_CONFLICT,
            f"type conflict: source is {source_meta.kind.value}, "
            f"target is {target_kind}",
        )

    kind = source_meta.kind
    if kind == EntryKind.DIR:
        return UNCHANGED
    if kind == EntryKind.FILE:
        if source_meta.mtime_ns > target_meta.mtime_ns:
            return MODIFIED
        if source_meta.size != target_meta.size:
            return MODIFIED
        return UNCHANGED
    if kind == EntryKind.SYMLINK:
        if source_meta.link_target != target_meta.link_target:
            return MODIFIED
        return UNCHANGED
    assert_never(kind)


def _same_content(source_path: Path, target_path: Path) -> bool:
    return filecmp.cmp(source_path, target_path, shallow=False)


def classify_paths(
    entry: Entry,
    source_root: Path,
    target_root: Path,
    *,
    checksum: bool = False,
) -> tuple[Classification, Metadata | None]:
    """Read metadata for both sides of `entry` and classify it.

    Returns the classification together with the source metadata (None when
    the source could not be read). Metadata errors become ERROR classifications.
    """
    source_path = join_under(source_root, entry.relpath)
    target_path = join_under(target_root, entry.relpath)
    try:
        source_meta = probe(source_path)
    except BackupError as exc:
        return _error(str(exc)), None
    try:
        target_meta = probe(target_path)
    except BackupError as exc:
        return _error(str(exc)), source_meta

    result = classify(entry, source_meta, target_meta)
    if (
        checksum
        and result.kind == ClassificationKind.UNCHANGED
        and source_meta.kind == EntryKind.FILE
    ):
        try:
            if not _same_content(source_path, target_path):
                logger.debug("content differs for %s", entry.relpath)
                result = MODIFIED
        except OSError as exc:
            result = _error(reason_from_os_error(exc))
    return result, source_meta
