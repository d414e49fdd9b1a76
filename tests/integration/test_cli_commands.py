"""Integration tests for the document, narration, merge, and worker commands."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from audiotale.cli import app


STORY = "The door opened and Anna asked who was there. Tom laughed."


def _invoke(runner: CliRunner, data_dir: Path, *args: str):
    """Run one CLI command against `data_dir`."""

    return runner.invoke(app, [*args, "--data-dir", str(data_dir)])


def _add_story(runner: CliRunner, tmp_path: Path) -> Path:
    """Add the sample story as document 1 and return the data directory."""

    source = tmp_path / "story.txt"
    source.write_text(STORY, encoding="utf-8")
    data_dir = tmp_path / "data"
    result = _invoke(runner, data_dir, "add", str(source), "--title", "Story", "--genre", "drama")
    assert result.exit_code == 0, result.output
    return data_dir


def test_init_db_reports_database_url(cli_runner: CliRunner, tmp_path: Path) -> None:
    """The default database lives in the data directory."""

    result = _invoke(cli_runner, tmp_path / "data", "init-db")

    assert result.exit_code == 0, result.output
    assert "Database ready: sqlite:///" in result.output
    assert (tmp_path / "data" / "audiotale.db").is_file()


def test_add_then_status_show_pending_chunks(cli_runner: CliRunner, tmp_path: Path) -> None:
    """A small document is chunked synchronously and reported as pending."""

    source = tmp_path / "story.txt"
    source.write_text(STORY, encoding="utf-8")

    added = _invoke(cli_runner, tmp_path / "data", "add", str(source))
    status = _invoke(cli_runner, tmp_path / "data", "status", "1")

    assert added.exit_code == 0, added.output
    assert "Document id: 1" in added.output
    assert "Status: pending" in added.output
    assert "Chunks: 1" in added.output
    assert status.exit_code == 0, status.output
    assert "Document 1: story" in status.output
    assert "  pending: 1" in status.output


def test_narrate_waits_for_background_work(cli_runner: CliRunner, tmp_path: Path) -> None:
    """The narrate command reports every chunk completed."""

    data_dir = _add_story(cli_runner, tmp_path)

    result = _invoke(cli_runner, data_dir, "narrate", "1")

    assert result.exit_code == 0, result.output
    assert "Chunks scheduled: 1" in result.output
    assert "  completed: 1" in result.output


def test_merge_queues_worker_produces_then_merge_is_ready(
    cli_runner: CliRunner, tmp_path: Path
) -> None:
    """Merge enqueues, the worker drains one job, and the repeat request is a cache hit."""

    data_dir = _add_story(cli_runner, tmp_path)

    queued = _invoke(cli_runner, data_dir, "merge", "1", "0", "0")
    worker = _invoke(cli_runner, data_dir, "worker", "--once")
    ready = _invoke(cli_runner, data_dir, "merge", "1", "0", "0")
    groups = _invoke(cli_runner, data_dir, "groups", "1")
    idle = _invoke(cli_runner, data_dir, "worker", "--once")

    assert "Status: queued" in queued.output
    assert "Job: 1 (new)" in queued.output
    assert worker.exit_code == 0, worker.output
    assert "Job 1: complete" in worker.output
    assert "Status: ready" in ready.output
    assert "Audio: " in ready.output
    assert "Job:" not in ready.output
    assert "0-0. " in groups.output
    assert "No queued jobs." in idle.output


def test_merge_wait_processes_the_job_in_process(cli_runner: CliRunner, tmp_path: Path) -> None:
    """`--wait` runs the queue until the requested job finishes."""

    data_dir = _add_story(cli_runner, tmp_path)

    result = _invoke(cli_runner, data_dir, "merge", "1", "0", "0", "--wait")
    status = _invoke(cli_runner, data_dir, "status", "1")

    assert result.exit_code == 0, result.output
    assert "Job status: complete" in result.output
    assert "Audio: " in result.output
    assert "Status: completed" in status.output


def test_groups_without_artifacts(cli_runner: CliRunner, tmp_path: Path) -> None:
    """An unproduced document lists no groups."""

    data_dir = _add_story(cli_runner, tmp_path)

    result = _invoke(cli_runner, data_dir, "groups", "1")

    assert result.exit_code == 0, result.output
    assert "No chunk groups recorded." in result.output
