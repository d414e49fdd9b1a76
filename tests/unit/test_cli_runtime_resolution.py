"""Unit tests for CLI config and provider key resolution helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from audiotale import cli
from audiotale.config import PROVIDER_ELEVENLABS, PROVIDER_OPENAI
from audiotale.errors import PipelineStageError


class InMemoryCredentialStore:
    """In-memory credential store implementation for runtime-resolution tests."""

    def __init__(self, **stored: str) -> None:
        """Initialize the store with keys per provider."""

        self._keys = dict(stored)

    def secure_values(self) -> dict[str, str]:
        """Return stored keys mapped to config field names."""

        return {f"{provider}_api_key": key for provider, key in self._keys.items()}


class FailingCredentialStore:
    """Credential store whose backend read fails."""

    def secure_values(self) -> dict[str, str]:
        """Raise deterministic backend failure used for error-path assertions."""

        raise RuntimeError("no keyring backend")


@pytest.fixture(autouse=True)
def _clear_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host provider keys out of resolution assertions."""

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("XI_API_KEY", raising=False)


def test_cli_key_beats_secure_and_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keys resolve with precedence CLI, then keyring, then environment."""

    monkeypatch.setenv("OPENAI_API_KEY", "env-openai")
    monkeypatch.setenv("XI_API_KEY", "env-xi")
    store = InMemoryCredentialStore(openai="secure-openai")

    config = cli._resolve_config(
        None,
        tmp_path,
        openai_api_key=" cli-openai ",
        credential_store_factory=lambda: store,
    )

    assert config.data_dir == tmp_path
    assert config.resolve_api_key(PROVIDER_OPENAI) == "cli-openai"
    assert config.resolve_api_key(PROVIDER_ELEVENLABS) == "env-xi"

    config = cli._resolve_config(None, None, credential_store_factory=lambda: store)

    assert config.resolve_api_key(PROVIDER_OPENAI) == "secure-openai"


def test_blank_cli_key_is_ignored(tmp_path: Path) -> None:
    """Whitespace-only CLI keys do not shadow lower-precedence sources."""

    config = cli._resolve_config(
        None,
        tmp_path,
        openai_api_key="   ",
        credential_store_factory=lambda: InMemoryCredentialStore(openai="secure-openai"),
    )

    assert config.resolve_api_key(PROVIDER_OPENAI) == "secure-openai"
    assert config.resolve_api_key(PROVIDER_ELEVENLABS) is None


def test_module_level_store_factory_is_used_by_default(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Without an explicit factory the module's credential store factory is called."""

    monkeypatch.setattr(
        cli, "create_credential_store", lambda: InMemoryCredentialStore(elevenlabs="xi-stored")
    )

    config = cli._resolve_config(None, tmp_path)

    assert config.resolve_api_key(PROVIDER_ELEVENLABS) == "xi-stored"


def test_credential_backend_failure_propagates(tmp_path: Path) -> None:
    """Backend errors surface to the command error handler."""

    with pytest.raises(RuntimeError, match="no keyring backend"):
        cli._resolve_config(None, tmp_path, credential_store_factory=FailingCredentialStore)


def test_missing_config_file_maps_to_config_stage_error(tmp_path: Path) -> None:
    """A missing YAML file yields config-stage diagnostics with a hint."""

    with pytest.raises(PipelineStageError) as exc_info:
        cli._load_config(tmp_path / "missing.yaml")

    assert exc_info.value.stage == "config"
    assert "Config file not found" in exc_info.value.detail
    assert "--config" in (exc_info.value.hint or "")


def test_invalid_environment_maps_to_config_stage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """Malformed `AUDIOTALE_*` values are reported against the environment."""

    monkeypatch.setenv("AUDIOTALE_CHUNK_SIZE_CHARS", "lots")

    with pytest.raises(PipelineStageError) as exc_info:
        cli._load_config(None)

    assert exc_info.value.stage == "config"
    assert "environment" in exc_info.value.detail
