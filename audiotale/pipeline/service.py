"""Caller-facing audiobook operations.

Responsibilities:
- Register documents and ingest their source files.
- Schedule chunk narration as detached, supervised background work.
- Answer merge requests from the cache, from an active job, or by enqueueing.
- Report document progress and recorded chunk groups.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from sqlalchemy import func, select

from ..errors import DataIntegrityError, InvalidRangeError, TextLimitError
from ..io.database import Database
from ..models.datatypes import ChunkingOutcome, DocumentProgress, GroupRequestOutcome
from ..models.records import ChunkGroupRecord, ChunkRecord, DocumentRecord, JobStatus
from ..telemetry.logger import RunLogger
from ..text.chunking import DocumentChunker
from .group_cache import ChunkGroupCache
from .narration import ChunkNarrator
from .production import validate_range
from .supervisor import TaskSupervisor
from .worker import ProcessingQueue


READY = "ready"


class AudiobookService:
    """Entry point composing chunking, narration, caching, and the job queue."""

    def __init__(
        self,
        *,
        database: Database,
        chunker: DocumentChunker,
        narrator: ChunkNarrator,
        cache: ChunkGroupCache,
        queue: ProcessingQueue,
        supervisor: TaskSupervisor,
        run_logger: RunLogger,
        group_text_limit_bytes: int = 2000,
    ) -> None:
        self.database = database
        self.chunker = chunker
        self.narrator = narrator
        self.cache = cache
        self.queue = queue
        self.supervisor = supervisor
        self.run_logger = run_logger
        self.group_text_limit_bytes = group_text_limit_bytes

    def create_document(
        self,
        title: str,
        *,
        owner_id: str | None = None,
        author: str | None = None,
        category: str | None = None,
        genre: str | None = None,
        source_path: Path | None = None,
    ) -> int:
        if not title.strip():
            raise ValueError("Document title must not be empty.")
        with self.database.session_scope() as session:
            document = DocumentRecord(
                title=title.strip(),
                owner_id=owner_id,
                author=author,
                category=category,
                genre=genre,
                source_path=str(source_path) if source_path is not None else None,
            )
            session.add(document)
            session.flush()
            document_id = document.id
        self.run_logger.log_event("service", "document_created", document_id=document_id)
        return document_id

    def ingest(self, document_id: int, path: Path) -> ChunkingOutcome:
        """Extract and chunk `path` for an existing document."""

        with self.database.session_scope() as session:
            document = session.get(DocumentRecord, document_id)
            if document is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            document.source_path = str(path)
        return self.chunker.chunk_file(document_id, path)

    def narrate_chunks(self, document_id: int, indices: Iterable[int] | None = None) -> int:
        """Schedule narration of `indices` (all chunks by default) and return at once.

        Chunks are narrated in ascending index order by one background task.
        Returns the number of chunks scheduled.
        """

        with self.database.session_scope() as session:
            if session.get(DocumentRecord, document_id) is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            existing = list(
                session.scalars(
                    select(ChunkRecord.index)
                    .where(ChunkRecord.document_id == document_id)
                    .order_by(ChunkRecord.index)
                )
            )
        if indices is None:
            ordered = existing
        else:
            requested = sorted(set(indices))
            missing = sorted(set(requested).difference(existing))
            if missing:
                raise InvalidRangeError(
                    f"Document {document_id} has no chunks with indices {missing}."
                )
            ordered = requested
        if not ordered:
            return 0
        self.supervisor.submit(document_id, "narrate", self._narrate_in_order, document_id, ordered)
        return len(ordered)

    def _narrate_in_order(self, document_id: int, indices: list[int]) -> int:
        completed = 0
        for index in indices:
            try:
                self.narrator.narrate(document_id, index)
            except Exception as exc:
                # The chunk row already carries `failed` and the reason.
                self.run_logger.log_warning(
                    "service", "chunk_failed", document_id=document_id, index=index,
                    reason=type(exc).__name__,
                )
                continue
            completed += 1
        return completed

    def request_group(
        self, document_id: int, start_index: int, end_index: int
    ) -> GroupRequestOutcome:
        """Return a ready artifact, the active job for the range, or a new job.

        Raises:
            InvalidRangeError: The range is malformed or not fully chunked.
            TextLimitError: The combined chunk text exceeds the merge limit.
        """

        validate_range(start_index, end_index)
        cached = self.cache.lookup(document_id, start_index, end_index)
        if cached is not None:
            return GroupRequestOutcome(status=READY, audio_path=cached)

        active = self.queue.find_active(document_id, start_index, end_index)
        if active is not None:
            return GroupRequestOutcome(status=active.status, job_id=active.id)

        size = self._range_text_bytes(document_id, start_index, end_index)
        if size > self.group_text_limit_bytes:
            raise TextLimitError(
                f"Chunks {start_index}-{end_index} hold {size} bytes of text; the merge "
                f"limit is {self.group_text_limit_bytes}.",
                limit=self.group_text_limit_bytes,
                actual=size,
            )
        job = self.queue.enqueue(document_id, start_index, end_index)
        self.run_logger.log_event(
            "service", "job_enqueued", job_id=job.id, document_id=document_id,
            start=start_index, end=end_index,
        )
        return GroupRequestOutcome(status=JobStatus.QUEUED, job_id=job.id, enqueued=True)

    def _range_text_bytes(self, document_id: int, start_index: int, end_index: int) -> int:
        with self.database.session_scope() as session:
            if session.get(DocumentRecord, document_id) is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            contents = list(
                session.scalars(
                    select(ChunkRecord.content).where(
                        ChunkRecord.document_id == document_id,
                        ChunkRecord.index.between(start_index, end_index),
                    )
                )
            )
        if len(contents) != end_index - start_index + 1:
            raise InvalidRangeError(
                f"Chunks {start_index}-{end_index} of document {document_id} are not all present."
            )
        return sum(len(content.encode("utf-8")) for content in contents)

    def document_status(self, document_id: int) -> DocumentProgress:
        with self.database.session_scope() as session:
            document = session.get(DocumentRecord, document_id)
            if document is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            rows = session.execute(
                select(ChunkRecord.status, func.count())
                .where(ChunkRecord.document_id == document_id)
                .group_by(ChunkRecord.status)
            ).all()
            counts = {status: int(count) for status, count in rows}
            return DocumentProgress(
                document_id=document.id,
                title=document.title,
                status=document.status,
                chunk_total=sum(counts.values()),
                chunk_statuses=counts,
                audio_path=document.audio_path,
                last_error=document.last_error,
            )

    def list_groups(self, document_id: int) -> list[ChunkGroupRecord]:
        return self.cache.list_groups(document_id)

    def wait_for_background(
        self, document_id: int | None = None, timeout: float | None = None
    ) -> bool:
        return self.supervisor.wait(document_id, timeout=timeout)
