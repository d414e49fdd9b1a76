"""Input/output components for audiotale.

This package contains document text extraction, the relational store, and the
filesystem artifact layout used by the pipeline.
"""

from .database import Database
from .storage import ArtifactStore
from .text_extractor import TextExtractor

__all__ = ["ArtifactStore", "Database", "TextExtractor"]
