"""Shared data models for audiotale.

`datatypes` holds transient stage records; `records` holds the ORM rows.
"""

from .datatypes import (
    AGE_CLASSES,
    GENDERS,
    NARRATOR,
    Character,
    ChunkingOutcome,
    DialogueLine,
    DocumentProgress,
    EventExtraction,
    GroupRequestOutcome,
    MoodSegment,
)
from .records import (
    Base,
    ChunkGroupRecord,
    ChunkRecord,
    ChunkStatus,
    DocumentRecord,
    DocumentStatus,
    JobStatus,
    ProcessingJobRecord,
)

__all__ = [
    "AGE_CLASSES",
    "GENDERS",
    "NARRATOR",
    "Base",
    "Character",
    "ChunkGroupRecord",
    "ChunkRecord",
    "ChunkStatus",
    "ChunkingOutcome",
    "DialogueLine",
    "DocumentProgress",
    "DocumentRecord",
    "DocumentStatus",
    "EventExtraction",
    "GroupRequestOutcome",
    "JobStatus",
    "MoodSegment",
    "ProcessingJobRecord",
]
