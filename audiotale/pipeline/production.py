"""Chunk-group production: narration, background score, foley, final artifact.

Responsibilities:
- Check the merge cache before any synthesis or mixing work.
- Ensure every chunk in the range has narration, then join it in index order.
- Mix a mood-driven background under the narration and overlay foley cues.
- Publish the artifact atomically, record it, and update chunk and document paths.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import func, select, update

from ..audio.ambience import AmbienceComposer
from ..audio.foley import FoleyMixer
from ..audio.media import MediaTool, MixInput
from ..errors import DataIntegrityError, InvalidRangeError
from ..io.database import Database
from ..io.storage import ArtifactStore
from ..llm.http_client import ProviderError
from ..models.records import ChunkRecord, DocumentRecord, DocumentStatus, utcnow
from ..telemetry.logger import RunLogger
from ..text.chunking import content_digest
from .group_cache import ChunkGroupCache
from .narration import ChunkNarrator


def validate_range(start_index: int, end_index: int) -> None:
    if start_index < 0 or end_index < start_index:
        raise InvalidRangeError(
            f"Invalid chunk range {start_index}-{end_index}: expected 0 <= start <= end."
        )


class ChunkGroupProducer:
    """Turn a contiguous chunk range into one finished audio artifact."""

    def __init__(
        self,
        *,
        database: Database,
        narrator: ChunkNarrator,
        ambience: AmbienceComposer,
        foley: FoleyMixer,
        media: MediaTool,
        store: ArtifactStore,
        cache: ChunkGroupCache,
        run_logger: RunLogger,
        audio_format: str = "mp3",
        background_volume: float = 0.3,
    ) -> None:
        self.database = database
        self.narrator = narrator
        self.ambience = ambience
        self.foley = foley
        self.media = media
        self.store = store
        self.cache = cache
        self.run_logger = run_logger
        self.audio_format = audio_format
        self.background_volume = background_volume

    def produce(self, document_id: int, start_index: int, end_index: int) -> str:
        """Return the artifact path for the range, producing it on a cache miss.

        Raises:
            InvalidRangeError: The range is malformed or not fully chunked.
            DataIntegrityError: The document does not exist.
        """

        validate_range(start_index, end_index)
        cached = self.cache.lookup(document_id, start_index, end_index)
        if cached is not None:
            return cached

        chunk_total = self._load_range(document_id, start_index, end_index)
        full_range = start_index == 0 and end_index == chunk_total - 1
        self._set_document(
            document_id, status=DocumentStatus.PROCESSING, keep_completed=not full_range
        )
        work_dir = self.store.group_work_dir(document_id, start_index, end_index)
        self.run_logger.log_stage_start(
            "produce", document_id=document_id, start=start_index, end=end_index
        )
        try:
            path = self._produce(document_id, start_index, end_index, work_dir)
        except Exception as exc:
            self._set_document(
                document_id,
                status=DocumentStatus.FAILED,
                last_error=str(exc),
                keep_completed=not full_range,
            )
            self.run_logger.log_stage_failure(
                "produce", type(exc).__name__, document_id=document_id,
                start=start_index, end=end_index,
            )
            raise
        finally:
            self.store.remove_tree(work_dir)

        self._record_final_paths(document_id, start_index, end_index, path, full_range)
        self.run_logger.log_stage_complete(
            "produce", document_id=document_id, start=start_index, end=end_index
        )
        return path

    def _load_range(self, document_id: int, start_index: int, end_index: int) -> int:
        """Check the range is dense and return the document's total chunk count."""

        with self.database.session_scope() as session:
            if session.get(DocumentRecord, document_id) is None:
                raise DataIntegrityError(f"Document {document_id} does not exist.")
            total = session.scalar(
                select(func.count())
                .select_from(ChunkRecord)
                .where(ChunkRecord.document_id == document_id)
            ) or 0
            present = session.scalar(
                select(func.count())
                .select_from(ChunkRecord)
                .where(
                    ChunkRecord.document_id == document_id,
                    ChunkRecord.index.between(start_index, end_index),
                )
            ) or 0
        if present != end_index - start_index + 1:
            raise InvalidRangeError(
                f"Chunks {start_index}-{end_index} of document {document_id} are not all "
                f"present ({present} found, document has {total})."
            )
        return total

    def _produce(
        self, document_id: int, start_index: int, end_index: int, work_dir: Path
    ) -> str:
        narration_paths = [
            self.narrator.narrate(document_id, index)
            for index in range(start_index, end_index + 1)
        ]
        with self.database.session_scope() as session:
            text = "".join(
                session.scalars(
                    select(ChunkRecord.content)
                    .where(
                        ChunkRecord.document_id == document_id,
                        ChunkRecord.index.between(start_index, end_index),
                    )
                    .order_by(ChunkRecord.index)
                )
            )
        content_hash = content_digest(text)

        self.store.reset_dir(work_dir)
        fmt = self.audio_format
        narration = self.media.concat(narration_paths, work_dir / f"narration.{fmt}")
        text_path = self.store.save_text(
            self.store.group_text_path(document_id, start_index, end_index), text
        )
        duration = self.media.probe_duration(narration)

        try:
            background = self.ambience.compose_background(duration, text_path, work_dir)
        except ProviderError as exc:
            self.run_logger.log_warning(
                "produce", "background_skipped", document_id=document_id,
                reason=exc.failure_kind,
            )
            mixed = narration
        else:
            mixed = self.media.mix(
                [
                    MixInput(path=narration, volume=1.0),
                    MixInput(path=background, volume=self.background_volume),
                ],
                work_dir / f"mixed.{fmt}",
            )

        extraction = self.foley.extract_events(text, duration)
        final = self.foley.overlay(mixed, extraction, work_dir / f"final.{fmt}")
        published = self.store.publish(
            final,
            self.store.group_output_path(
                document_id, start_index, end_index, content_hash, fmt
            ),
        )
        record = self.cache.save(
            document_id,
            start_index,
            end_index,
            audio_path=str(published),
            content_hash=content_hash,
        )
        return record.audio_path

    def _record_final_paths(
        self, document_id: int, start_index: int, end_index: int, path: str, full_range: bool
    ) -> None:
        # A chunk's effects-merged path is the artifact of its single-chunk group.
        if start_index == end_index:
            with self.database.session_scope() as session:
                session.execute(
                    update(ChunkRecord)
                    .where(
                        ChunkRecord.document_id == document_id,
                        ChunkRecord.index == start_index,
                    )
                    .values(final_audio_path=path, updated_at=utcnow())
                )
        if full_range:
            self._set_document(
                document_id, status=DocumentStatus.COMPLETED, audio_path=path, last_error=None
            )

    def _set_document(
        self, document_id: int, *, keep_completed: bool = False, **values
    ) -> None:
        """Update the document row; with `keep_completed` a completed document is left alone."""

        statement = update(DocumentRecord).where(DocumentRecord.id == document_id)
        if keep_completed:
            statement = statement.where(DocumentRecord.status != DocumentStatus.COMPLETED)
        with self.database.session_scope() as session:
            session.execute(statement.values(updated_at=utcnow(), **values))
