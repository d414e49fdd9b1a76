"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic stage-level logs through `loguru`.
- Keep secrets and provider payload text out of log lines.
"""

from __future__ import annotations

import sys
import threading
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic stage logs for CLI- and test-observable pipeline activity.

    Each instance binds its own loguru sink filtered by a per-instance tag, so
    several pipeline contexts in one process do not duplicate each other's lines.
    """

    _instance_counter = 0
    _counter_lock = threading.Lock()

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        with RunLogger._counter_lock:
            RunLogger._instance_counter += 1
            self._tag = f"audiotale-{RunLogger._instance_counter}"
        self._logger = _loguru_logger.bind(run_logger=self._tag)
        self._sink_id = _loguru_logger.add(
            sink or sys.stderr,
            format="{message}",
            level=level,
            colorize=False,
            filter=lambda record: record["extra"].get("run_logger") == self._tag,
        )

    def close(self) -> None:
        """Detach this logger's sink."""

        try:
            _loguru_logger.remove(self._sink_id)
        except ValueError:
            return

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        self._logger.log(level, line)

    def log_stage_start(self, stage: str, **context: object) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage, **context)

    def log_stage_complete(self, stage: str, **context: object) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage, **context)

    def log_stage_failure(self, stage: str, error_type: str, **context: object) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type, **context)

    def log_event(self, stage: str, event: str, **context: object) -> None:
        """Emit an informational event inside a stage (cache hit, job claimed)."""

        self._emit("INFO", event, stage, **context)

    def log_warning(self, stage: str, event: str, **context: object) -> None:
        """Emit a degraded-path event (fallback used, cue discarded)."""

        self._emit("WARNING", event, stage, **context)
