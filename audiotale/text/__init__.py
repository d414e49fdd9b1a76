"""Text cleanup and chunking components."""

from .chunking import DocumentChunker
from .cleaners import NarrationCleaner, clean_for_narration

__all__ = ["DocumentChunker", "NarrationCleaner", "clean_for_narration"]
