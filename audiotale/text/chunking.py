"""Document-to-chunk segmentation and persistence.

Responsibilities:
- Split normalized text into fixed-length runs of Unicode code points.
- Persist chunks with dense, zero-based indices in bounded batches.
- Route large documents to a supervised background task and keep the
  document status (`chunking`, `pending`, `chunking_failed`) in step.
"""

from __future__ import annotations

from hashlib import sha256
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ChunkPersistenceError, DataIntegrityError, EmptyTextError
from ..io.database import Database
from ..io.text_extractor import TextExtractionError, TextExtractor
from ..models.datatypes import ChunkingOutcome
from ..models.records import ChunkRecord, DocumentRecord, DocumentStatus
from ..telemetry.logger import RunLogger

if TYPE_CHECKING:
    from ..pipeline.supervisor import TaskSupervisor


TRUNCATION_MARKER = "...[truncated]"


def content_digest(text: str) -> str:
    """Return the sha256 hex digest used as a content hash."""

    return sha256(text.encode("utf-8")).hexdigest()


def truncate_preview(text: str, limit: int) -> str:
    """Cap a stored preview at `limit` characters, marking the cut."""

    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


class DocumentChunker:
    """Split document text into persisted chunks."""

    def __init__(
        self,
        *,
        database: Database,
        extractor: TextExtractor,
        run_logger: RunLogger,
        supervisor: TaskSupervisor | None = None,
        chunk_size: int = 1000,
        batch_size: int = 500,
        preview_limit: int = 100_000,
        async_threshold_bytes: int = 5 * 1024 * 1024,
        async_threshold_chunks: int = 1000,
    ) -> None:
        if chunk_size <= 0 or batch_size <= 0:
            raise ValueError("`chunk_size` and `batch_size` must be positive.")
        self.database = database
        self.extractor = extractor
        self.run_logger = run_logger
        self.supervisor = supervisor
        self.chunk_size = chunk_size
        self.batch_size = batch_size
        self.preview_limit = preview_limit
        self.async_threshold_bytes = async_threshold_bytes
        self.async_threshold_chunks = async_threshold_chunks

    @staticmethod
    def split(text: str, chunk_size: int) -> list[str]:
        """Split `text` into runs of at most `chunk_size` code points."""

        if chunk_size <= 0:
            raise ValueError("`chunk_size` must be positive.")
        return [text[start : start + chunk_size] for start in range(0, len(text), chunk_size)]

    def estimate_chunk_count(self, size_bytes: int) -> int:
        return max(1, size_bytes // self.chunk_size)

    def chunk(self, document_id: int, text: str) -> int:
        """Persist `text` as chunks of `document_id` and return the chunk count.

        Re-chunking identical text is a no-op returning the existing count.
        Re-chunking different text raises `DataIntegrityError`, because the
        content hash of a chunked document never changes. A document left with
        a partial chunk set (status `chunking_failed`, or fewer rows than the
        text splits into) is chunked afresh.

        Raises:
            EmptyTextError: `text` has no non-whitespace characters.
            ChunkPersistenceError: A batch write failed; `written` holds the
                number of chunks committed before the failure and the document
                is marked `chunking_failed`.
        """

        if not text.strip():
            raise EmptyTextError(f"Document {document_id} has no extractable text.")

        digest = content_digest(text)
        pieces = self.split(text, self.chunk_size)

        with self.database.session_scope() as session:
            document = session.get(DocumentRecord, document_id)
            if document is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            existing = session.scalar(
                select(func.count()).select_from(ChunkRecord).where(
                    ChunkRecord.document_id == document_id
                )
            ) or 0
            if existing and (
                document.status == DocumentStatus.CHUNKING_FAILED
                or (document.content_hash == digest and existing != len(pieces))
            ):
                # Partial rows from an interrupted run are discarded.
                session.execute(delete(ChunkRecord).where(ChunkRecord.document_id == document_id))
                existing = 0
            if existing:
                if document.content_hash == digest:
                    return int(existing)
                raise DataIntegrityError(
                    f"Document {document_id} is already chunked with different content."
                )
            document.content_hash = digest
            document.content_preview = truncate_preview(text, self.preview_limit)

        written = 0
        for batch_start in range(0, len(pieces), self.batch_size):
            batch = pieces[batch_start : batch_start + self.batch_size]
            try:
                with self.database.session_scope() as session:
                    session.add_all(
                        ChunkRecord(
                            document_id=document_id,
                            index=batch_start + offset,
                            content=piece,
                            content_hash=content_digest(piece),
                        )
                        for offset, piece in enumerate(batch)
                    )
            except SQLAlchemyError as exc:
                error = ChunkPersistenceError(
                    f"Chunk batch starting at index {batch_start} failed for document "
                    f"{document_id}: {exc}",
                    written=written,
                )
                self._set_status(document_id, DocumentStatus.CHUNKING_FAILED, error=str(error))
                raise error from exc
            written += len(batch)

        self.run_logger.log_event(
            "chunk", "persisted", document_id=document_id, chunks=written
        )
        return written

    def chunk_file(self, document_id: int, path: Path) -> ChunkingOutcome:
        """Extract and chunk a source file, in the background when it is large.

        Background runs return immediately with status `chunking` and an
        estimated chunk count; the document becomes `pending` once every chunk
        is written, or `chunking_failed` with `last_error` set.
        """

        self.extractor.check_supported(path)
        if not path.is_file():
            raise TextExtractionError(f"Input document not found: {path}")
        size_bytes = path.stat().st_size
        estimate = self.estimate_chunk_count(size_bytes)
        asynchronous = (
            size_bytes > self.async_threshold_bytes or estimate > self.async_threshold_chunks
        )
        self._set_status(document_id, DocumentStatus.CHUNKING)

        if asynchronous:
            if self.supervisor is None:
                raise RuntimeError("Background chunking requires a task supervisor.")
            self.run_logger.log_event(
                "chunk",
                "background",
                document_id=document_id,
                size_bytes=size_bytes,
                estimate=estimate,
            )
            self.supervisor.submit(
                document_id, "chunk", self._extract_and_chunk, document_id, path
            )
            return ChunkingOutcome(
                document_id=document_id,
                status=DocumentStatus.CHUNKING,
                chunk_count=estimate,
                asynchronous=True,
            )

        count = self._extract_and_chunk(document_id, path)
        return ChunkingOutcome(
            document_id=document_id,
            status=DocumentStatus.PENDING,
            chunk_count=count,
            asynchronous=False,
        )

    def _extract_and_chunk(self, document_id: int, path: Path) -> int:
        self.run_logger.log_stage_start("chunk", document_id=document_id)
        try:
            text = self.extractor.extract(path)
            count = self.chunk(document_id, text)
        except Exception as exc:
            self.run_logger.log_stage_failure(
                "chunk", type(exc).__name__, document_id=document_id
            )
            self._set_status(document_id, DocumentStatus.CHUNKING_FAILED, error=str(exc))
            raise
        self._set_status(document_id, DocumentStatus.PENDING)
        self.run_logger.log_stage_complete("chunk", document_id=document_id, chunks=count)
        return count

    def _set_status(self, document_id: int, status: str, error: str | None = None) -> None:
        with self.database.session_scope() as session:
            document = session.get(DocumentRecord, document_id)
            if document is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            document.status = status
            document.last_error = error
