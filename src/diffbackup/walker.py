from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath
from typing import TypeAlias

from .errors import reason_from_os_error
from .models import Entry, EntryKind, WalkFailure
from .paths import ROOT_RELPATH, child_relpath, join_under

WalkItem: TypeAlias = Entry | WalkFailure


def _entry_kind(item: os.DirEntry[str]) -> EntryKind:
    if item.is_symlink():
        return EntryKind.SYMLINK
    if item.is_dir(follow_symlinks=False):
        return EntryKind.DIR
    return EntryKind.FILE


def is_excluded(relpath: PurePosixPath, patterns: Iterable[str]) -> bool:
    text = relpath.as_posix()
    for pattern in patterns:
        if fnmatch.fnmatch(relpath.name, pattern) or fnmatch.fnmatch(text, pattern):
            return True
    return False


def _list_children(
    root: Path, relpath: PurePosixPath, exclude: tuple[str, ...]
) -> Iterator[WalkItem]:
    with os.scandir(join_under(root, relpath)) as it:
        items = sorted(it, key=lambda item: item.name)
    children: list[WalkItem] = []
    for item in items:
        rel = child_relpath(relpath, item.name)
        if exclude and is_excluded(rel, exclude):
            continue
        try:
            children.append(Entry(relpath=rel, kind=_entry_kind(item)))
        except OSError as exc:
            children.append(WalkFailure(relpath=rel, reason=reason_from_os_error(exc)))
    return iter(children)


def walk(root: Path, exclude: Iterable[str] = ()) -> Iterator[WalkItem]:
    """Yield every entry under `root`, each directory before its children.

    Symlinks are reported but never descended into. A root that cannot be
    listed produces a single `WalkFailure` for "." instead of an empty walk.
    """
    patterns = tuple(exclude)
    try:
        stack = [_list_children(root, ROOT_RELPATH, patterns)]
    except OSError as exc:
        yield WalkFailure(relpath=ROOT_RELPATH, reason=reason_from_os_error(exc))
        return

    while stack:
        item = next(stack[-1], None)
        if item is None:
            stack.pop()
            continue
        yield item
        if isinstance(item, Entry) and item.kind == EntryKind.DIR:
            try:
                stack.append(_list_children(root, item.relpath, patterns))
            except OSError as exc:
                yield WalkFailure(
                    relpath=item.relpath, reason=reason_from_os_error(exc)
                )


class TreeWalker:
    """Restartable walk over `root`: each iteration starts from scratch."""

    def __init__(self, root: Path, exclude: Iterable[str] = ()) -> None:
        self.root = root
        self.exclude = tuple(exclude)

    def __iter__(self) -> Iterator[WalkItem]:
        return walk(self.root, self.exclude)


def count_entries(root: Path, exclude: Iterable[str] = ()) -> int:
    """Number of entries a walk of `root` would yield, failures not counted."""
    return sum(1 for item in walk(root, exclude) if isinstance(item, Entry))
