"""External executable resolution for media and e-book conversion tools.

Responsibilities:
- Resolve `ffmpeg`, `ffprobe`, `pdftotext`, and `ebook-convert` with an
  explicit-override, then bundled, then `PATH` precedence.
- Report missing tools with an actionable install hint.
"""

from __future__ import annotations

import os
from pathlib import Path
import shutil
import sys


_INSTALL_HINTS = {
    "ffmpeg": "Install FFmpeg and make sure `ffmpeg` is on PATH.",
    "ffprobe": "Install FFmpeg and make sure `ffprobe` is on PATH.",
    "pdftotext": "Install poppler-utils to enable `pdftotext`.",
    "ebook-convert": "Install Calibre to enable MOBI/AZW/AZW3 conversion.",
}


def resolve_executable(command_name: str) -> str:
    """Resolve an executable path.

    Resolution order:
    1. `AUDIOTALE_<TOOL>_PATH` environment override (dashes become underscores).
    2. Bundled `./bin/<tool>` next to the package root.
    3. System `PATH`.
    4. The raw command name, so subprocess raises its native missing-binary error.
    """

    normalized = command_name.strip()
    if not normalized:
        return command_name

    override = os.environ.get(_override_variable(normalized), "").strip()
    if override:
        return override

    for candidate in _bundled_candidates(normalized):
        if candidate.is_file():
            return str(candidate)

    resolved_path = shutil.which(normalized)
    if resolved_path is not None:
        return resolved_path
    return normalized


def install_hint(command_name: str) -> str:
    """Return an installation hint for a missing external tool."""

    return _INSTALL_HINTS.get(command_name, f"Install `{command_name}` and add it to PATH.")


def _override_variable(command_name: str) -> str:
    return f"AUDIOTALE_{command_name.upper().replace('-', '_')}_PATH"


def _bundled_candidates(command_name: str) -> list[Path]:
    app_root = _app_root()
    names = [command_name]
    if not command_name.lower().endswith(".exe"):
        names.append(f"{command_name}.exe")
    return [app_root / "bin" / name for name in names]


def _app_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]
