"""Chunk-group merge cache.

Responsibilities:
- Answer whether a `(document, start, end)` range already has a finished artifact.
- Record finished ranges append-only; a racing duplicate insert resolves to
  the row that won.
- Optionally reuse artifacts produced for another document with the same
  content hash.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..io.database import Database
from ..models.records import ChunkGroupRecord, DocumentRecord
from ..telemetry.logger import RunLogger


class ChunkGroupCache:
    """Lookup and append-only save of merged chunk-group artifacts."""

    def __init__(
        self,
        *,
        database: Database,
        run_logger: RunLogger,
        share_across_documents: bool = True,
    ) -> None:
        self.database = database
        self.run_logger = run_logger
        self.share_across_documents = share_across_documents

    def lookup(self, document_id: int, start_index: int, end_index: int) -> str | None:
        """Return the artifact path for the range, or `None` on a miss.

        A record whose file has disappeared counts as a miss.
        """

        with self.database.session_scope() as session:
            record = session.scalar(
                select(ChunkGroupRecord).where(
                    ChunkGroupRecord.document_id == document_id,
                    ChunkGroupRecord.start_index == start_index,
                    ChunkGroupRecord.end_index == end_index,
                )
            )
            if record is not None:
                if Path(record.audio_path).exists():
                    self.run_logger.log_event(
                        "group_cache", "hit", document_id=document_id,
                        start=start_index, end=end_index,
                    )
                    return record.audio_path
                return None
            shared = self._shared_record(session, document_id, start_index, end_index)

        if shared is None:
            return None
        saved = self.save(
            document_id,
            start_index,
            end_index,
            audio_path=shared.audio_path,
            content_hash=shared.content_hash,
        )
        self.run_logger.log_event(
            "group_cache", "shared_hit", document_id=document_id,
            source_document_id=shared.document_id, start=start_index, end=end_index,
        )
        return saved.audio_path

    def _shared_record(
        self, session, document_id: int, start_index: int, end_index: int
    ) -> ChunkGroupRecord | None:
        if not self.share_across_documents:
            return None
        content_hash = session.scalar(
            select(DocumentRecord.content_hash).where(DocumentRecord.id == document_id)
        )
        if not content_hash:
            return None
        candidates = session.scalars(
            select(ChunkGroupRecord)
            .join(DocumentRecord, DocumentRecord.id == ChunkGroupRecord.document_id)
            .where(
                DocumentRecord.content_hash == content_hash,
                DocumentRecord.id != document_id,
                ChunkGroupRecord.start_index == start_index,
                ChunkGroupRecord.end_index == end_index,
            )
            .order_by(ChunkGroupRecord.id)
        )
        for candidate in candidates:
            if Path(candidate.audio_path).exists():
                return candidate
        return None

    def save(
        self,
        document_id: int,
        start_index: int,
        end_index: int,
        *,
        audio_path: str,
        content_hash: str | None = None,
    ) -> ChunkGroupRecord:
        """Insert the range record, or return the existing one if it already exists."""

        try:
            with self.database.session_scope() as session:
                record = ChunkGroupRecord(
                    document_id=document_id,
                    start_index=start_index,
                    end_index=end_index,
                    audio_path=audio_path,
                    content_hash=content_hash,
                )
                session.add(record)
                session.flush()
                return record
        except IntegrityError:
            self.run_logger.log_event(
                "group_cache", "duplicate_save", document_id=document_id,
                start=start_index, end=end_index,
            )
        with self.database.session_scope() as session:
            return session.scalars(
                select(ChunkGroupRecord).where(
                    ChunkGroupRecord.document_id == document_id,
                    ChunkGroupRecord.start_index == start_index,
                    ChunkGroupRecord.end_index == end_index,
                )
            ).one()

    def list_groups(self, document_id: int) -> list[ChunkGroupRecord]:
        with self.database.session_scope() as session:
            return list(
                session.scalars(
                    select(ChunkGroupRecord)
                    .where(ChunkGroupRecord.document_id == document_id)
                    .order_by(ChunkGroupRecord.start_index, ChunkGroupRecord.end_index)
                )
            )
