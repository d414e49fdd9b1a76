"""Transient datatypes exchanged between pipeline stages.

Responsibilities:
- Represent analysis results (characters, attributed lines, mood segments, cues).
- Describe outcomes returned to callers (chunking, group requests).

None of these records are persisted; see `models.records` for ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field


GENDERS = ("male", "female", "neutral")
AGE_CLASSES = ("adult", "child", "elderly")
NARRATOR = "Narrator"


@dataclass(frozen=True, slots=True)
class Character:
    """A speaking entity detected in a text excerpt.

    Attributes:
        name: Character name or role label.
        gender: One of `male`, `female`, `neutral`.
        age: One of `adult`, `child`, `elderly`.
        voice: Provider voice identifier assigned from gender and age.
    """

    name: str
    gender: str
    age: str
    voice: str

    @property
    def is_narrator(self) -> bool:
        return self.name.strip().lower() == NARRATOR.lower()


@dataclass(frozen=True, slots=True)
class DialogueLine:
    """An ordered, attributed slice of text inside one synthesis unit."""

    speaker: str
    text: str
    is_dialogue: bool


@dataclass(frozen=True, slots=True)
class MoodSegment:
    """A mood-labelled span `[start, end)` of a narration timeline, in seconds."""

    start: float
    end: float
    mood: str

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)


@dataclass(frozen=True, slots=True)
class EventExtraction:
    """Accepted foley cues plus the identifiers rejected as outside the vocabulary.

    Attributes:
        events: Event identifier mapped to ascending cue offsets in seconds.
        discarded: Identifiers returned by the provider but not in the vocabulary.
    """

    events: dict[str, list[float]] = field(default_factory=dict)
    discarded: tuple[str, ...] = ()

    @property
    def cue_count(self) -> int:
        return sum(len(offsets) for offsets in self.events.values())


@dataclass(frozen=True, slots=True)
class ChunkingOutcome:
    """Result of a chunking request.

    Attributes:
        document_id: Chunked document.
        status: Document status right after the call (`pending` or `chunking`).
        chunk_count: Exact count for synchronous runs, estimate for background runs.
        asynchronous: Whether chunking continues in a supervised background task.
    """

    document_id: int
    status: str
    chunk_count: int
    asynchronous: bool


@dataclass(frozen=True, slots=True)
class GroupRequestOutcome:
    """Result of a chunk-group merge request.

    Attributes:
        status: `ready` for a cache hit, otherwise the job status.
        audio_path: Artifact path when `status == "ready"`.
        job_id: Queue job handling the request, when one exists.
        enqueued: Whether this call created a new job.
    """

    status: str
    audio_path: str | None = None
    job_id: int | None = None
    enqueued: bool = False


@dataclass(frozen=True, slots=True)
class DocumentProgress:
    """Snapshot of a document's lifecycle for status polling.

    Attributes:
        document_id: Document identifier.
        title: Document title.
        status: Document lifecycle status.
        chunk_total: Number of persisted chunks.
        chunk_statuses: Chunk count per synthesis status.
        audio_path: Final merged audio, once the whole document is produced.
        last_error: Most recent failure reason, if any.
    """

    document_id: int
    title: str
    status: str
    chunk_total: int
    chunk_statuses: dict[str, int] = field(default_factory=dict)
    audio_path: str | None = None
    last_error: str | None = None
