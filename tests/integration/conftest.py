"""Integration-test fixtures for running the CLI without network or keyring access."""

from __future__ import annotations

import io

import pytest
from typer.testing import CliRunner

from audiotale import cli
from audiotale.context import PipelineContext
from audiotale.telemetry.logger import RunLogger
from tests.doubles import (
    FakeMediaTool,
    RecordingSoundClient,
    RecordingSpeechClient,
    ScriptedChatClient,
)


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self, **initial_keys: str) -> None:
        """Initialize the store with optional pre-seeded keys per provider."""

        self._keys: dict[str, str] = dict(initial_keys)

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI status command."""

        return True

    def get_api_key(self, provider: str) -> str | None:
        """Return currently stored API key value for `provider`."""

        return self._keys.get(provider)

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist a normalized API key value."""

        self._keys[provider] = api_key.strip()

    def clear_api_key(self, provider: str) -> bool:
        """Clear API key and return whether one existed."""

        return self._keys.pop(provider, None) is not None

    def secure_values(self) -> dict[str, str]:
        """Return stored keys mapped to config field names."""

        return {f"{provider}_api_key": key for provider, key in self._keys.items()}


@pytest.fixture
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Route every CLI credential lookup to one in-memory store."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr(cli, "create_credential_store", lambda: store)
    return store


@pytest.fixture
def cli_runner(
    monkeypatch: pytest.MonkeyPatch,
    credential_store: InMemoryCredentialStore,
    log_stream: io.StringIO,
    chat_client: ScriptedChatClient,
    speech_client: RecordingSpeechClient,
    sound_client: RecordingSoundClient,
    media: FakeMediaTool,
) -> CliRunner:
    """Return a runner whose commands build contexts over the shared test doubles."""

    _ = credential_store
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("XI_API_KEY", raising=False)
    build_context = PipelineContext.from_config

    def _offline_context(config, **kwargs: object) -> PipelineContext:
        """Build a context with provider clients and ffmpeg replaced by doubles."""

        _ = kwargs
        return build_context(
            config,
            run_logger=RunLogger(sink=log_stream),
            chat_client=chat_client,
            speech_client=speech_client,
            sound_client=sound_client,
            media=media,
        )

    monkeypatch.setattr(PipelineContext, "from_config", _offline_context)
    return CliRunner()
