"""Differential backup: mirror a source tree, copying only what changed."""

from .classifier import classify, classify_paths
from .executor import purge_orphans, sync
from .models import (
    Classification,
    ClassificationKind,
    Entry,
    EntryKind,
    Metadata,
    SyncFailure,
    SyncReport,
    WalkFailure,
)
from .prober import probe
from .walker import TreeWalker, walk

__all__ = [
    "Classification",
    "ClassificationKind",
    "Entry",
    "EntryKind",
    "Metadata",
    "SyncFailure",
    "SyncReport",
    "TreeWalker",
    "WalkFailure",
    "classify",
    "classify_paths",
    "probe",
    "purge_orphans",
    "sync",
    "walk",
]
