from __future__ import annotations

import io
from pathlib import PurePosixPath

from rich.console import Console
from rich.progress import Progress
from typer.testing import CliRunner

from diffbackup.cli import SyncProgressReporter, app
from diffbackup.models import NEW, UNCHANGED

from conftest import write_file

runner = CliRunner()


def test_help_exits_zero() -> None:
    for flag in ("--help", "-h"):
        result = runner.invoke(app, [flag])
        assert result.exit_code == 0
        assert "--source_dir" in result.output
        assert "--target_dir" in result.output


def test_missing_required_options_is_a_usage_error() -> None:
    result = runner.invoke(app, ["-s", "somewhere"])
    assert result.exit_code == 2


def test_backup_prints_summary(roots) -> None:
    source, target = roots
    write_file(source, "a.txt", size=100, mtime=10)
    write_file(source, "dir/b.txt", size=50, mtime=5)

    first = runner.invoke(
        app, ["-s", str(source), "-t", str(target), "--no-progress"]
    )
    second = runner.invoke(
        app, ["--source_dir", str(source), "--target_dir", str(target)]
    )

    assert first.exit_code == 0, first.output
    assert "Copied: 2" in first.output
    assert "Failed: 0" in first.output
    assert second.exit_code == 0, second.output
    assert "Copied: 0" in second.output
    assert "Skipped (unchanged): 2" in second.output


def test_unreadable_source_exits_non_zero(tmp_path) -> None:
    result = runner.invoke(
        app, ["-s", str(tmp_path / "missing"), "-t", str(tmp_path / "out")]
    )

    assert result.exit_code == 1
    assert "Backup failed" in result.output
    assert not (tmp_path / "out").exists()


def test_failures_are_listed_and_exit_non_zero(roots) -> None:
    source, target = roots
    write_file(source, "x", size=1, mtime=1)
    (target / "x").mkdir(parents=True)

    result = runner.invoke(app, ["-s", str(source), "-t", str(target)])

    assert result.exit_code == 1
    assert "Failed: 1" in result.output
    assert "x: type conflict: source is file, target is dir" in result.output


def test_delete_flag_removes_orphans(roots) -> None:
    source, target = roots
    write_file(source, "keep.txt", size=1, mtime=1)
    write_file(target, "orphan.txt", size=1, mtime=1)

    result = runner.invoke(
        app, ["-s", str(source), "-t", str(target), "--delete", "--no-progress"]
    )

    assert result.exit_code == 0, result.output
    assert "Deleted orphans: 1" in result.output
    assert not (target / "orphan.txt").exists()


def _quiet_progress() -> Progress:
    return Progress(console=Console(file=io.StringIO()))


def test_reporter_advances_overall_bar_on_every_entry() -> None:
    progress = _quiet_progress()
    task_id = progress.add_task("start", total=3)
    reporter = SyncProgressReporter(progress, task_id, emit_every_ms=60_000)

    reporter.update(1, PurePosixPath("a.txt"), NEW)
    reporter.update(2, PurePosixPath("b.txt"), UNCHANGED)

    task = progress.tasks[0]
    assert task.completed == 2
    assert task.description == "a.txt  [new]"


def test_reporter_resets_file_bar_for_each_new_file() -> None:
    overall = _quiet_progress()
    files = _quiet_progress()
    reporter = SyncProgressReporter(
        overall,
        overall.add_task("start", total=None),
        emit_every_ms=0,
        file_progress=files,
        file_task_id=files.add_task("", total=None),
    )

    reporter.update_bytes(PurePosixPath("big.bin"), 4, 10)
    reporter.update_bytes(PurePosixPath("big.bin"), 10, 10)
    reporter.update_bytes(PurePosixPath("small.bin"), 1, 3)

    task = files.tasks[0]
    assert task.description == "small.bin"
    assert task.total == 3
    assert task.completed == 1


def test_progress_bars_do_not_change_the_outcome(roots) -> None:
    source, target = roots
    write_file(source, "a.txt", size=2048, mtime=10)
    write_file(source, "dir/b.txt", size=10, mtime=5)

    result = runner.invoke(app, ["-s", str(source), "-t", str(target), "--progress"])

    assert result.exit_code == 0, result.output
    assert "Copied: 2" in result.output
    assert (target / "dir" / "b.txt").stat().st_size == 10
