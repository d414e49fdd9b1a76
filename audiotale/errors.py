"""Domain exceptions for pipeline, worker, and CLI diagnostics."""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class InputError(ValueError):
    """Base class for caller errors that are rejected without any retry."""


class UnsupportedFormatError(InputError):
    """Raised when a source document extension cannot be extracted."""


class EmptyTextError(InputError):
    """Raised when a document or synthesis unit contains no speakable characters."""


class TextLimitError(InputError):
    """Raised when text exceeds a configured provider or merge-request limit."""

    def __init__(self, message: str, *, limit: int, actual: int) -> None:
        super().__init__(message)
        self.limit = limit
        self.actual = actual


class InvalidRangeError(InputError):
    """Raised when a requested chunk range is malformed or not fully chunked."""


class DataIntegrityError(RuntimeError):
    """Raised when persisted state contradicts an invariant (missing chunk, hash drift)."""


class ChunkPersistenceError(RuntimeError):
    """Raised when a chunk batch write fails; reports how many chunks were committed."""

    def __init__(self, message: str, *, written: int) -> None:
        super().__init__(message)
        self.written = written
