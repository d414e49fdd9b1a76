"""Unit tests for deterministic runtime executable resolution."""

from __future__ import annotations

from pathlib import Path

from pytest import MonkeyPatch

from audiotale import runtime_tools


def test_resolve_executable_prefers_environment_override(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """An explicit `AUDIOTALE_<TOOL>_PATH` wins over bundled and PATH tools."""

    monkeypatch.setenv("AUDIOTALE_EBOOK_CONVERT_PATH", "/opt/calibre/ebook-convert")
    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: "/usr/bin/ebook-convert")

    assert runtime_tools.resolve_executable("ebook-convert") == "/opt/calibre/ebook-convert"


def test_resolve_executable_prefers_bundled_bin_over_path(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Bundled `bin` executable should take precedence over PATH discovery."""

    bundled_bin = tmp_path / "bin"
    bundled_bin.mkdir(parents=True, exist_ok=True)
    bundled_tool = bundled_bin / "ffmpeg"
    bundled_tool.write_text("stub", encoding="utf-8")
    monkeypatch.delenv("AUDIOTALE_FFMPEG_PATH", raising=False)
    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: "/usr/bin/ffmpeg")

    resolved = runtime_tools.resolve_executable("ffmpeg")

    assert resolved == str(bundled_tool)


def test_resolve_executable_falls_back_to_path_then_raw_name(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """PATH lookup is used when nothing is bundled, then the bare command name."""

    monkeypatch.delenv("AUDIOTALE_PDFTOTEXT_PATH", raising=False)
    monkeypatch.setattr(runtime_tools, "_app_root", lambda: tmp_path)
    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: "/usr/bin/pdftotext")

    assert runtime_tools.resolve_executable("pdftotext") == "/usr/bin/pdftotext"

    monkeypatch.setattr(runtime_tools.shutil, "which", lambda _: None)

    assert runtime_tools.resolve_executable("pdftotext") == "pdftotext"


def test_install_hint_names_the_right_package() -> None:
    """Missing-tool hints point at the package that ships the tool."""

    assert "FFmpeg" in runtime_tools.install_hint("ffprobe")
    assert "Calibre" in runtime_tools.install_hint("ebook-convert")
    assert "`sox`" in runtime_tools.install_hint("sox")
