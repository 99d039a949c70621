from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath


class EntryKind(str, Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"


class ClassificationKind(str, Enum):
    UNCHANGED = "unchanged"
    NEW = "new"
    MODIFIED = "modified"
    TYPE_CONFLICT = "type_conflict"
    ERROR = "error"


@dataclass(frozen=True)
class Entry:
    relpath: PurePosixPath
    kind: EntryKind


@dataclass(frozen=True)
class WalkFailure:
    """A directory the walker could not list; `relpath` is "." for the root."""

    relpath: PurePosixPath
    reason: str


@dataclass(frozen=True)
class Metadata:
    exists: bool
    kind: EntryKind | None = None
    size: int = 0
    mtime_ns: int = 0
    mode: int = 0
    link_target: str | None = None

    @classmethod
    def missing(cls) -> Metadata:
        return cls(exists=False)


@dataclass(frozen=True)
class Classification:
    kind: ClassificationKind
    reason: str | None = None

    @property
    def needs_copy(self) -> bool:
        return self.kind in {ClassificationKind.NEW, ClassificationKind.MODIFIED}

    @property
    def is_failure(self) -> bool:
        return self.kind in {ClassificationKind.TYPE_CONFLICT, ClassificationKind.ERROR}


UNCHANGED = Classification(ClassificationKind.UNCHANGED)
NEW = Classification(ClassificationKind.NEW)
MODIFIED = Classification(ClassificationKind.MODIFIED)


@dataclass(frozen=True)
class SyncFailure:
    relpath: str
    reason: str


@dataclass
class SyncReport:
    copied: int = 0
    skipped: int = 0
    directories_created: int = 0
    deleted: int = 0
    bytes_copied: int = 0
    failures: list[SyncFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_failure(self, relpath: PurePosixPath | str, reason: str) -> None:
        text = relpath.as_posix() if isinstance(relpath, PurePosixPath) else relpath
        self.failures.append(SyncFailure(relpath=text, reason=reason))
