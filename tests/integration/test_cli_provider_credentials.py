"""Integration tests for CLI provider key resolution and secure credential flows."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from audiotale.cli import app
from audiotale.config import PROVIDER_ELEVENLABS, PROVIDER_OPENAI
from audiotale.context import PipelineContext


@pytest.fixture
def captured_configs(cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> list:
    """Record every config the CLI builds a context from."""

    _ = cli_runner
    configs: list = []
    build_context = PipelineContext.from_config

    def _capture(config, **kwargs: object) -> PipelineContext:
        """Record `config` and delegate to the offline context builder."""

        configs.append(config)
        return build_context(config, **kwargs)

    monkeypatch.setattr(PipelineContext, "from_config", _capture)
    return configs


def test_credentials_status_reports_availability_and_presence(
    cli_runner: CliRunner, credential_store
) -> None:
    """The default action shows backend availability and whether a key is stored."""

    credential_store.set_api_key(PROVIDER_ELEVENLABS, "xi-key")

    openai_status = cli_runner.invoke(app, ["credentials"])
    sound_status = cli_runner.invoke(app, ["credentials", "--provider", "elevenlabs"])

    assert openai_status.exit_code == 0, openai_status.output
    assert "Secure credential storage: available" in openai_status.output
    assert "Stored openai API key: not set" in openai_status.output
    assert "Stored elevenlabs API key: present" in sound_status.output
    assert "xi-key" not in sound_status.output


def test_credentials_set_and_clear_api_key(cli_runner: CliRunner, credential_store) -> None:
    """Keys are prompted with hidden input, stored, and cleared per provider."""

    stored = cli_runner.invoke(app, ["credentials", "--set-api-key"], input="  sk-secret  \n")

    assert stored.exit_code == 0, stored.output
    assert "openai API key stored in secure credential storage." in stored.output
    assert "sk-secret" not in stored.output
    assert credential_store.get_api_key(PROVIDER_OPENAI) == "sk-secret"

    cleared = cli_runner.invoke(app, ["credentials", "--clear-api-key"])
    cleared_again = cli_runner.invoke(app, ["credentials", "--clear-api-key"])

    assert "Stored openai API key cleared" in cleared.output
    assert "No stored openai API key found" in cleared_again.output
    assert credential_store.get_api_key(PROVIDER_OPENAI) is None


def test_credentials_rejects_blank_key_and_conflicting_flags(cli_runner: CliRunner) -> None:
    """Empty prompts and contradictory actions fail at the credentials stage."""

    blank = cli_runner.invoke(app, ["credentials", "--set-api-key"], input="   \n")
    both = cli_runner.invoke(app, ["credentials", "--set-api-key", "--clear-api-key"])
    unknown = cli_runner.invoke(app, ["credentials", "--provider", "acme"])

    assert blank.exit_code == 1
    assert "No API key entered." in blank.output
    assert both.exit_code == 1
    assert "cannot be used together" in both.output
    assert unknown.exit_code == 1
    assert "Unknown provider `acme`." in unknown.output


def test_cli_key_overrides_stored_and_environment_keys(
    cli_runner: CliRunner,
    credential_store,
    captured_configs: list,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Per-run CLI keys win over keyring values, which win over the environment."""

    credential_store.set_api_key(PROVIDER_OPENAI, "secure-openai")
    monkeypatch.setenv("OPENAI_API_KEY", "env-openai")
    monkeypatch.setenv("XI_API_KEY", "env-xi")
    data_dir = str(tmp_path / "data")

    with_cli = cli_runner.invoke(
        app, ["worker", "--once", "--data-dir", data_dir, "--openai-api-key", "cli-openai"]
    )
    without_cli = cli_runner.invoke(app, ["worker", "--once", "--data-dir", data_dir])

    assert with_cli.exit_code == 0, with_cli.output
    assert without_cli.exit_code == 0, without_cli.output
    first, second = captured_configs
    assert first.resolve_api_key(PROVIDER_OPENAI) == "cli-openai"
    assert second.resolve_api_key(PROVIDER_OPENAI) == "secure-openai"
    assert second.resolve_api_key(PROVIDER_ELEVENLABS) == "env-xi"
    assert "cli-openai" not in with_cli.output


def test_missing_keys_do_not_block_offline_commands(
    cli_runner: CliRunner, captured_configs: list, tmp_path: Path
) -> None:
    """Commands that make no provider calls run without any key configured."""

    result = cli_runner.invoke(app, ["status", "1", "--data-dir", str(tmp_path / "data")])

    assert "status failed: Document 1 does not exist." in result.output
    assert captured_configs[0].resolve_api_key(PROVIDER_OPENAI) is None
