"""CLI error-handling tests for concise diagnostics."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from audiotale.cli import app


def test_missing_config_file_reports_config_stage(cli_runner: CliRunner, tmp_path: Path) -> None:
    """A missing `--config` path fails with stage-aware diagnostics."""

    result = cli_runner.invoke(app, ["status", "1", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "status failed at stage `config`" in result.output
    assert "Hint: Provide an existing path via `--config <path.yaml>`." in result.output


def test_invalid_config_values_report_config_stage(cli_runner: CliRunner, tmp_path: Path) -> None:
    """Schema violations in YAML are reported with the offending field."""

    config_path = tmp_path / "audiotale.yaml"
    config_path.write_text("chunk_size_chars: 0\n", encoding="utf-8")

    result = cli_runner.invoke(app, ["init-db", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "init-db failed at stage `config`" in result.output
    assert "chunk_size_chars" in result.output


def test_unknown_document_reports_plain_error(cli_runner: CliRunner, tmp_path: Path) -> None:
    """Non-stage exceptions still exit with code 1 and a short message."""

    result = cli_runner.invoke(app, ["status", "7", "--data-dir", str(tmp_path / "data")])

    assert result.exit_code == 1
    assert "status failed: Document 7 does not exist." in result.output


def test_drm_format_is_refused_at_add(cli_runner: CliRunner, tmp_path: Path) -> None:
    """KFX sources are rejected with conversion guidance."""

    source = tmp_path / "book.kfx"
    source.write_bytes(b"\x00")

    result = cli_runner.invoke(app, ["add", str(source), "--data-dir", str(tmp_path / "data")])

    assert result.exit_code == 1
    assert "KFX format is not supported" in result.output


def test_narrate_requires_both_range_bounds(cli_runner: CliRunner, tmp_path: Path) -> None:
    """A half-open narrate range is an input error."""

    result = cli_runner.invoke(
        app, ["narrate", "1", "--start", "0", "--data-dir", str(tmp_path / "data")]
    )

    assert result.exit_code == 1
    assert "narrate failed at stage `narrate-input`" in result.output


def test_oversized_merge_suggests_smaller_range(cli_runner: CliRunner, tmp_path: Path) -> None:
    """The merge text limit is reported with a hint."""

    source = tmp_path / "long.txt"
    source.write_text("word " * 500, encoding="utf-8")
    data_dir = str(tmp_path / "data")
    added = cli_runner.invoke(app, ["add", str(source), "--data-dir", data_dir])
    assert added.exit_code == 0, added.output

    result = cli_runner.invoke(app, ["merge", "1", "0", "2", "--data-dir", data_dir])

    assert result.exit_code == 1
    assert "merge failed:" in result.output
    assert "Hint: request a smaller chunk range." in result.output
