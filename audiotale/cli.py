"""Command-line interface for audiotale.

Responsibilities:
- Expose user-facing commands for document ingest, narration, merging, and
  the processing queue worker.
- Convert CLI arguments into `AudiotaleConfig` and a `PipelineContext`.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Callable

import typer

from .cli_rendering import (
    echo_chunking_outcome,
    echo_document_progress,
    echo_group_list,
    echo_group_outcome,
    exit_with_command_error,
)
from .config import (
    PROVIDER_ELEVENLABS,
    PROVIDER_OPENAI,
    AudiotaleConfig,
    ConfigLoader,
    RuntimeConfigSources,
)
from .context import PipelineContext
from .credentials import CredentialStore, create_credential_store
from .errors import PipelineStageError
from .models.records import JobStatus
from .parsing import normalize_optional_string

app = typer.Typer(
    name="audiotale",
    no_args_is_help=True,
    help="audiotale CLI: turn documents into multi-voice audiobooks.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to a YAML config file."),
]
DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", help="Data directory (overrides config value)."),
]
OpenAIKeyOption = Annotated[
    str | None,
    typer.Option("--openai-api-key", help="OpenAI API key for this run only."),
]
SoundKeyOption = Annotated[
    str | None,
    typer.Option("--elevenlabs-api-key", help="Sound-generation API key for this run only."),
]


def _load_config(config_path: Path | None) -> AudiotaleConfig:
    """Load YAML config when requested, else environment config; map failures to stage errors."""

    if config_path is None:
        try:
            return ConfigLoader.from_env()
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=f"Invalid environment configuration: {exc}",
                hint="Fix the `AUDIOTALE_*` variables and rerun.",
            ) from exc
    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _resolve_config(
    config_path: Path | None,
    data_dir: Path | None,
    openai_api_key: str | None = None,
    elevenlabs_api_key: str | None = None,
    credential_store_factory: Callable[[], CredentialStore] | None = None,
) -> AudiotaleConfig:
    """Resolve effective config with CLI overrides and runtime key sources attached."""

    factory = credential_store_factory or create_credential_store
    config = _load_config(config_path)
    if data_dir is not None:
        config.data_dir = data_dir
    runtime_cli_values: dict[str, str] = {}
    for key, value in (
        ("openai_api_key", openai_api_key),
        ("elevenlabs_api_key", elevenlabs_api_key),
    ):
        normalized = normalize_optional_string(value)
        if normalized is not None:
            runtime_cli_values[key] = normalized
    return config.with_runtime_sources(
        RuntimeConfigSources(
            cli=runtime_cli_values,
            secure=factory().secure_values(),
            env=os.environ,
        )
    )


def _open_context(
    config_path: Path | None,
    data_dir: Path | None,
    openai_api_key: str | None = None,
    elevenlabs_api_key: str | None = None,
) -> PipelineContext:
    config = _resolve_config(config_path, data_dir, openai_api_key, elevenlabs_api_key)
    try:
        return PipelineContext.from_config(config)
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=str(exc),
            hint="Fix config schema/values and rerun.",
        ) from exc


@app.command("init-db")
def init_db_command(config_file: ConfigOption = None, data_dir: DataDirOption = None) -> None:
    """Create the database schema and data directories."""

    try:
        context = _open_context(config_file, data_dir)
        url = context.database.url
        context.close()
    except Exception as exc:
        exit_with_command_error("init-db", exc)
    typer.echo(f"Database ready: {url}")


@app.command("add")
def add_command(
    source: Annotated[Path, typer.Argument(help="Source document (txt, pdf, epub, mobi, azw3).")],
    title: Annotated[str | None, typer.Option("--title", help="Document title.")] = None,
    author: Annotated[str | None, typer.Option("--author", help="Author name.")] = None,
    category: Annotated[str | None, typer.Option("--category", help="Category label.")] = None,
    genre: Annotated[str | None, typer.Option("--genre", help="Genre label.")] = None,
    owner: Annotated[str | None, typer.Option("--owner", help="Owning user id.")] = None,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Register a document and split its text into chunks."""

    try:
        context = _open_context(config_file, data_dir)
        try:
            document_id = context.service.create_document(
                title or source.stem,
                owner_id=owner,
                author=author,
                category=category,
                genre=genre,
                source_path=source,
            )
            outcome = context.service.ingest(document_id, source)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("add", exc)
    echo_chunking_outcome(outcome)


@app.command("status")
def status_command(
    document_id: Annotated[int, typer.Argument(help="Document id.")],
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """Show document lifecycle status and chunk progress."""

    try:
        context = _open_context(config_file, data_dir)
        try:
            progress = context.service.document_status(document_id)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("status", exc)
    echo_document_progress(progress)


@app.command("narrate")
def narrate_command(
    document_id: Annotated[int, typer.Argument(help="Document id.")],
    start: Annotated[int | None, typer.Option("--start", help="First chunk index.")] = None,
    end: Annotated[int | None, typer.Option("--end", help="Last chunk index.")] = None,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
    openai_api_key: OpenAIKeyOption = None,
) -> None:
    """Narrate chunks with per-character voices."""

    if (start is None) != (end is None):
        exit_with_command_error(
            "narrate",
            PipelineStageError(
                stage="narrate-input",
                detail="`--start` and `--end` must be given together.",
                hint="Omit both to narrate every chunk.",
            ),
        )
    try:
        context = _open_context(config_file, data_dir, openai_api_key=openai_api_key)
        try:
            indices = range(start, end + 1) if start is not None and end is not None else None
            scheduled = context.service.narrate_chunks(document_id, indices)
            context.service.wait_for_background(document_id)
            progress = context.service.document_status(document_id)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("narrate", exc)
    typer.echo(f"Chunks scheduled: {scheduled}")
    echo_document_progress(progress)


@app.command("merge")
def merge_command(
    document_id: Annotated[int, typer.Argument(help="Document id.")],
    start: Annotated[int, typer.Argument(help="First chunk index of the range.")],
    end: Annotated[int, typer.Argument(help="Last chunk index of the range.")],
    wait: Annotated[
        bool,
        typer.Option("--wait", help="Process queued jobs in this process until the job ends."),
    ] = False,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
    openai_api_key: OpenAIKeyOption = None,
    elevenlabs_api_key: SoundKeyOption = None,
) -> None:
    """Request a merged, scored, foley-enhanced track for a chunk range."""

    try:
        context = _open_context(config_file, data_dir, openai_api_key, elevenlabs_api_key)
        try:
            outcome = context.service.request_group(document_id, start, end)
            job = None
            if wait and outcome.job_id is not None:
                job = context.queue.get(outcome.job_id)
                while job is not None and job.status in JobStatus.ACTIVE:
                    if context.worker.run_once() is None:
                        break
                    job = context.queue.get(outcome.job_id)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("merge", exc)
    echo_group_outcome(outcome)
    if job is not None:
        typer.echo(f"Job status: {job.status}")
        if job.result_path:
            typer.echo(f"Audio: {job.result_path}")
        if job.error:
            typer.secho(f"Job error: {job.error}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)


@app.command("groups")
def groups_command(
    document_id: Annotated[int, typer.Argument(help="Document id.")],
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
) -> None:
    """List recorded chunk-group artifacts of a document."""

    try:
        context = _open_context(config_file, data_dir)
        try:
            groups = context.service.list_groups(document_id)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("groups", exc)
    echo_group_list(groups)


@app.command("worker")
def worker_command(
    once: Annotated[
        bool, typer.Option("--once", help="Process at most one queued job and exit.")
    ] = False,
    config_file: ConfigOption = None,
    data_dir: DataDirOption = None,
    openai_api_key: OpenAIKeyOption = None,
    elevenlabs_api_key: SoundKeyOption = None,
) -> None:
    """Run the processing queue worker."""

    try:
        context = _open_context(config_file, data_dir, openai_api_key, elevenlabs_api_key)
    except Exception as exc:
        exit_with_command_error("worker", exc)
    try:
        if once:
            job = context.worker.run_once()
            typer.echo("No queued jobs." if job is None else f"Job {job.id}: {job.status}")
            return
        context.worker.start()
        typer.echo("Worker running; press Ctrl+C to stop.")
        try:
            while context.worker.running:
                context.worker.stop_requested.wait(1.0)
        except KeyboardInterrupt:
            typer.echo("Stopping worker.")
    except Exception as exc:
        exit_with_command_error("worker", exc)
    finally:
        context.close()


@app.command("credentials")
def credentials_command(
    provider: Annotated[
        str,
        typer.Option("--provider", help="Provider account: `openai` or `elevenlabs`."),
    ] = PROVIDER_OPENAI,
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored provider credentials."""

    if provider not in (PROVIDER_OPENAI, PROVIDER_ELEVENLABS):
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail=f"Unknown provider `{provider}`.",
                hint="Use `--provider openai` or `--provider elevenlabs`.",
            ),
        )
    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                f"{provider} API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(provider, prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo(f"{provider} API key stored in secure credential storage.")
        return

    if clear_api_key:
        if credential_store.clear_api_key(provider):
            typer.echo(f"Stored {provider} API key cleared from secure credential storage.")
        else:
            typer.echo(f"No stored {provider} API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    status = "present" if credential_store.get_api_key(provider) is not None else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored {provider} API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
