"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
ingest outcomes, document progress, merge requests, and recorded chunk groups.
"""

from __future__ import annotations

from typing import NoReturn, Sequence

import typer

from .errors import PipelineStageError, TextLimitError
from .models.datatypes import ChunkingOutcome, DocumentProgress, GroupRequestOutcome
from .models.records import ChunkGroupRecord


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
        if isinstance(exc, TextLimitError):
            typer.secho(
                "Hint: request a smaller chunk range.", fg=typer.colors.YELLOW, err=True
            )
    raise typer.Exit(code=1) from exc


def echo_chunking_outcome(outcome: ChunkingOutcome) -> None:
    typer.echo(f"Document id: {outcome.document_id}")
    typer.echo(f"Status: {outcome.status}")
    if outcome.asynchronous:
        typer.echo(f"Chunks (estimated): {outcome.chunk_count}")
        typer.echo("Chunking continues in the background.")
    else:
        typer.echo(f"Chunks: {outcome.chunk_count}")


def echo_document_progress(progress: DocumentProgress) -> None:
    """Print document status with deterministic chunk status ordering."""

    typer.echo(f"Document {progress.document_id}: {progress.title}")
    typer.echo(f"Status: {progress.status}")
    typer.echo(f"Chunks: {progress.chunk_total}")
    for status, count in sorted(progress.chunk_statuses.items()):
        typer.echo(f"  {status}: {count}")
    if progress.audio_path:
        typer.echo(f"Audio: {progress.audio_path}")
    if progress.last_error:
        typer.secho(f"Last error: {progress.last_error}", fg=typer.colors.YELLOW)


def echo_group_outcome(outcome: GroupRequestOutcome) -> None:
    typer.echo(f"Status: {outcome.status}")
    if outcome.audio_path:
        typer.echo(f"Audio: {outcome.audio_path}")
    if outcome.job_id is not None:
        suffix = " (new)" if outcome.enqueued else ""
        typer.echo(f"Job: {outcome.job_id}{suffix}")


def echo_group_list(groups: Sequence[ChunkGroupRecord]) -> None:
    if not groups:
        typer.echo("No chunk groups recorded.")
        return
    for group in groups:
        typer.echo(f"{group.start_index}-{group.end_index}. {group.audio_path}")
