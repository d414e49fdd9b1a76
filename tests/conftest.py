"""Shared pytest fixtures for the full audiotale test suite."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Callable, Iterator

import pytest

from audiotale.config import AudiotaleConfig
from audiotale.context import PipelineContext
from audiotale.io.database import Database
from audiotale.io.storage import ArtifactStore
from audiotale.telemetry.logger import RunLogger
from tests.doubles import (
    FakeMediaTool,
    RecordingSoundClient,
    RecordingSpeechClient,
    ScriptedChatClient,
)


@pytest.fixture
def log_stream() -> io.StringIO:
    """Provide an in-memory sink that collects run log lines."""

    return io.StringIO()


@pytest.fixture
def run_logger(log_stream: io.StringIO) -> Iterator[RunLogger]:
    """Provide a run logger writing to `log_stream`, detached after the test."""

    logger = RunLogger(sink=log_stream)
    yield logger
    logger.close()


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    """Provide an initialized SQLite database in the test directory."""

    db = Database(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    """Provide an artifact store rooted in the test directory."""

    return ArtifactStore(tmp_path / "data")


@pytest.fixture
def media() -> FakeMediaTool:
    """Provide an ffmpeg-free media tool double."""

    return FakeMediaTool()


@pytest.fixture
def chat_client() -> ScriptedChatClient:
    """Provide a chat client double with default scripted answers."""

    return ScriptedChatClient()


@pytest.fixture
def speech_client() -> RecordingSpeechClient:
    """Provide a speech client double that always succeeds."""

    return RecordingSpeechClient()


@pytest.fixture
def sound_client() -> RecordingSoundClient:
    """Provide a sound-generation client double that always succeeds."""

    return RecordingSoundClient()


@pytest.fixture
def make_context(
    tmp_path: Path,
    log_stream: io.StringIO,
    chat_client: ScriptedChatClient,
    speech_client: RecordingSpeechClient,
    sound_client: RecordingSoundClient,
    media: FakeMediaTool,
) -> Iterator[Callable[..., PipelineContext]]:
    """Build offline pipeline contexts sharing the test doubles; closes them afterwards."""

    contexts: list[PipelineContext] = []

    def _build(extractor=None, **overrides: object) -> PipelineContext:
        """Return a context over `tmp_path/data` with config overrides applied."""

        values: dict[str, object] = {
            "data_dir": tmp_path / "data",
            "worker_idle_seconds": 0.0,
            "worker_backoff_seconds": 0.0,
        }
        values.update(overrides)
        context = PipelineContext.from_config(
            AudiotaleConfig(**values),
            run_logger=RunLogger(sink=log_stream),
            chat_client=chat_client,
            speech_client=speech_client,
            sound_client=sound_client,
            media=media,
            extractor=extractor,
        )
        contexts.append(context)
        return context

    yield _build
    for context in contexts:
        context.close()


@pytest.fixture
def write_source(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper writing a UTF-8 text source file under `tmp_path/sources`."""

    def _write(name: str, text: str) -> Path:
        """Write `text` to `sources/<name>` and return the path."""

        path = tmp_path / "sources" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
