from __future__ import annotations

from dataclasses import dataclass

TEMP_PREFIX = ".diffbackup-"
TEMP_SUFFIX = ".tmp"
COPY_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class SyncSettings:
    delete_orphans: bool = False
    checksum: bool = False
    preserve_mode: bool = True
    exclude: tuple[str, ...] = ()
    progress_emit_every_ms: int = 100
