from __future__ import annotations

import logging
import time
from pathlib import Path, PurePosixPath

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.progress import (
    BarColumn,
    DownloadColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .config import SyncSettings
from .errors import BackupError
from .executor import sync
from .models import Classification, SyncReport
from .walker import count_entries

app = typer.Typer(
    help=(
        "Performs differential backups from a source directory "
        "to a target directory."
    ),
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)
console = Console()


class SyncProgressReporter:
    """Drive the overall entry bar and the per-file byte bar.

    Bar positions follow every callback; the description text is only
    refreshed every `emit_every_ms`.
    """

    def __init__(
        self,
        progress: Progress,
        task_id: TaskID,
        emit_every_ms: int,
        file_progress: Progress | None = None,
        file_task_id: TaskID | None = None,
    ) -> None:
        self.progress = progress
        self.task_id = task_id
        self.emit_every = emit_every_ms / 1000
        self.last_rendered: float | None = None
        self.file_progress = file_progress
        self.file_task_id = file_task_id
        self.current_file: PurePosixPath | None = None

    def update(
        self, done: int, relpath: PurePosixPath, classification: Classification
    ) -> None:
        self.progress.update(self.task_id, completed=done)
        now = time.monotonic()
        if (
            self.last_rendered is not None
            and (now - self.last_rendered) < self.emit_every
        ):
            return
        self.progress.update(
            self.task_id,
            description=f"{relpath.as_posix()}  [{classification.kind.value}]",
        )
        self.last_rendered = now

    def update_bytes(self, relpath: PurePosixPath, copied: int, total: int) -> None:
        if self.file_progress is None or self.file_task_id is None:
            return
        if relpath != self.current_file:
            self.current_file = relpath
            self.file_progress.reset(
                self.file_task_id,
                total=total,
                completed=0,
                description=relpath.as_posix(),
            )
        self.file_progress.update(self.file_task_id, completed=copied)


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("diffbackup").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{value} B"


def print_summary(report: SyncReport, elapsed: float) -> None:
    console.print()
    console.print(f"Copied: {report.copied} ({_format_bytes(report.bytes_copied)})")
    console.print(f"Skipped (unchanged): {report.skipped}")
    console.print(f"Directories created: {report.directories_created}")
    if report.deleted:
        console.print(f"Deleted orphans: {report.deleted}")
    console.print(f"Failed: {report.failed}")
    console.print(f"Time: {elapsed:.2f}s")
    if report.failures:
        console.print()
        console.print("[red]Failures:[/red]")
        for failure in report.failures:
            console.print(f"  {failure.relpath}: {failure.reason}", markup=False)


def _run_backup(
    source_dir: Path,
    target_dir: Path,
    settings: SyncSettings,
    show_progress: bool,
) -> SyncReport:
    if not show_progress:
        return sync(source_dir, target_dir, settings=settings)

    total = count_entries(source_dir, settings.exclude)
    overall = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}", markup=False),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )
    file_progress = Progress(
        TextColumn("  {task.description}", markup=False),
        BarColumn(),
        DownloadColumn(),
        console=console,
    )
    task_id = overall.add_task("Backing up...", total=total or None)
    file_task_id = file_progress.add_task("", total=None)
    reporter = SyncProgressReporter(
        overall,
        task_id,
        settings.progress_emit_every_ms,
        file_progress=file_progress,
        file_task_id=file_task_id,
    )
    with Live(Group(overall, file_progress), console=console, transient=True):
        return sync(
            source_dir,
            target_dir,
            settings=settings,
            progress_cb=reporter.update,
            bytes_cb=reporter.update_bytes,
        )


@app.command()
def backup(
    source_dir: Path = typer.Option(
        ...,
        "-s",
        "--source_dir",
        help="Source directory to backup",
    ),
    target_dir: Path = typer.Option(
        ...,
        "-t",
        "--target_dir",
        help="Target directory where backup will be stored",
    ),
    delete: bool = typer.Option(
        False,
        "--delete",
        help="Also delete anything present in the target but absent in the source",
    ),
    checksum: bool = typer.Option(
        False,
        "--checksum",
        help="Compare contents of files whose size and mtime look unchanged",
    ),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Glob of names or relative paths to leave out (repeatable)",
    ),
    show_progress: bool = typer.Option(
        True,
        "--progress/--no-progress",
        help="Show progress bars while the backup runs",
    ),
    verbose: bool = typer.Option(
        False,
        "-v",
        "--verbose",
        help="Log every classification and action",
    ),
) -> None:
    """Copy new and modified files from the source into the target."""
    _configure_logging(verbose)
    settings = SyncSettings(
        delete_orphans=delete,
        checksum=checksum,
        exclude=tuple(exclude or ()),
    )

    started = time.perf_counter()
    try:
        report = _run_backup(source_dir, target_dir, settings, show_progress)
    except BackupError as exc:
        console.print(f"[red]Backup failed:[/red] {exc}", highlight=False)
        raise typer.Exit(1)

    print_summary(report, time.perf_counter() - started)
    if not report.ok:
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
