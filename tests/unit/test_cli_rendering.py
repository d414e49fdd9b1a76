"""Unit tests for CLI output and error rendering helpers."""

from __future__ import annotations

import pytest
import typer

from audiotale.cli_rendering import (
    echo_chunking_outcome,
    echo_document_progress,
    echo_group_list,
    echo_group_outcome,
    exit_with_command_error,
)
from audiotale.errors import PipelineStageError, TextLimitError
from audiotale.models.datatypes import ChunkingOutcome, DocumentProgress, GroupRequestOutcome
from audiotale.models.records import ChunkGroupRecord


def test_exit_with_command_error_renders_stage_error_with_hint(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Renderer should print stage diagnostics and hint before exiting with code 1."""

    error = PipelineStageError(
        stage="config",
        detail="Config file not found: `missing.yml`.",
        hint="Provide an existing path via `--config <path.yaml>`.",
    )

    with pytest.raises(typer.Exit) as exc_info:
        exit_with_command_error("add", error)

    captured = capsys.readouterr()
    assert exc_info.value.exit_code == 1
    assert "add failed at stage `config`" in captured.err
    assert "Hint: Provide an existing path via `--config <path.yaml>`." in captured.err


def test_exit_with_command_error_renders_non_stage_fallback(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Renderer should print fallback exception text for non-stage failures."""

    with pytest.raises(typer.Exit) as exc_info:
        exit_with_command_error("status", RuntimeError("Document 9 does not exist."))

    captured = capsys.readouterr()
    assert exc_info.value.exit_code == 1
    assert "status failed: Document 9 does not exist." in captured.err


def test_exit_with_command_error_hints_smaller_range_for_text_limit(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Merge-limit failures suggest requesting fewer chunks."""

    error = TextLimitError("too much text", limit=2000, actual=2400)

    with pytest.raises(typer.Exit):
        exit_with_command_error("merge", error)

    captured = capsys.readouterr()
    assert "merge failed: too much text" in captured.err
    assert "smaller chunk range" in captured.err


def test_echo_chunking_outcome_marks_estimates(capsys: pytest.CaptureFixture[str]) -> None:
    """Background chunking reports an estimated count."""

    echo_chunking_outcome(
        ChunkingOutcome(document_id=3, status="chunking", chunk_count=42, asynchronous=True)
    )

    output = capsys.readouterr().out
    assert "Document id: 3" in output
    assert "Chunks (estimated): 42" in output
    assert "background" in output


def test_echo_document_progress_orders_chunk_statuses(capsys: pytest.CaptureFixture[str]) -> None:
    """Chunk status counts print in a stable order."""

    echo_document_progress(
        DocumentProgress(
            document_id=1,
            title="Book",
            status="processing",
            chunk_total=5,
            chunk_statuses={"pending": 2, "completed": 2, "failed": 1},
            last_error="boom",
        )
    )

    lines = capsys.readouterr().out.splitlines()
    assert lines[:3] == ["Document 1: Book", "Status: processing", "Chunks: 5"]
    assert lines[3:6] == ["  completed: 2", "  failed: 1", "  pending: 2"]
    assert lines[6] == "Last error: boom"


def test_echo_group_outcome_and_list(capsys: pytest.CaptureFixture[str]) -> None:
    """Merge outcomes and recorded groups render one fact per line."""

    echo_group_outcome(GroupRequestOutcome(status="queued", job_id=4, enqueued=True))
    echo_group_outcome(GroupRequestOutcome(status="ready", audio_path="/out/a.mp3"))
    echo_group_list([])
    echo_group_list(
        [ChunkGroupRecord(document_id=1, start_index=0, end_index=2, audio_path="/out/a.mp3")]
    )

    assert capsys.readouterr().out.splitlines() == [
        "Status: queued",
        "Job: 4 (new)",
        "Status: ready",
        "Audio: /out/a.mp3",
        "No chunk groups recorded.",
        "0-2. /out/a.mp3",
    ]
