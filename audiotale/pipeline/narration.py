"""Per-chunk narration.

Responsibilities:
- Move a chunk through `processing` to `completed` or `failed`.
- Reuse narration already produced for any chunk with identical content.
- Otherwise check the text fits one speech request, then detect characters,
  attribute dialogue, and synthesize.
- Tolerate concurrent narration of one chunk: a failing run never overwrites
  a result another run completed.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import select, update

from ..errors import DataIntegrityError
from ..io.database import Database
from ..io.storage import ArtifactStore
from ..llm.character_analyzer import CharacterAnalyzer
from ..models.records import ChunkRecord, ChunkStatus, utcnow
from ..telemetry.logger import RunLogger
from ..tts.synthesizer import MultiVoiceSynthesizer


class ChunkNarrator:
    """Produce the narration track for a single chunk."""

    def __init__(
        self,
        *,
        database: Database,
        analyzer: CharacterAnalyzer,
        synthesizer: MultiVoiceSynthesizer,
        store: ArtifactStore,
        run_logger: RunLogger,
        audio_format: str = "mp3",
    ) -> None:
        self.database = database
        self.analyzer = analyzer
        self.synthesizer = synthesizer
        self.store = store
        self.run_logger = run_logger
        self.audio_format = audio_format

    def narrate(self, document_id: int, index: int) -> Path:
        """Return the narration path for chunk `index`, producing it if needed.

        Raises:
            DataIntegrityError: The chunk does not exist.
        """

        with self.database.session_scope() as session:
            chunk = session.scalar(
                select(ChunkRecord).where(
                    ChunkRecord.document_id == document_id, ChunkRecord.index == index
                )
            )
            if chunk is None:
                raise DataIntegrityError(
                    f"Chunk {index} of document {document_id} does not exist."
                )
            if (
                chunk.status == ChunkStatus.COMPLETED
                and chunk.audio_path
                and Path(chunk.audio_path).exists()
            ):
                return Path(chunk.audio_path)
            chunk_id = chunk.id
            content = chunk.content
            content_hash = chunk.content_hash
            chunk.status = ChunkStatus.PROCESSING
            chunk.last_error = None

        reused = self._reusable_narration(chunk_id, content_hash)
        if reused is not None:
            self._finish(chunk_id, ChunkStatus.COMPLETED, audio_path=str(reused))
            self.run_logger.log_event(
                "narrate", "reused", document_id=document_id, index=index
            )
            return reused

        self.run_logger.log_stage_start("narrate", document_id=document_id, index=index)
        try:
            self.synthesizer.check_text(content)
            characters = self.analyzer.detect_characters(content)
            lines = self.analyzer.split_dialogue(content, characters)
            output = self.synthesizer.synthesize(
                lines,
                characters,
                document_id=document_id,
                unit=f"chunk_{index}",
                output_path=self.store.chunk_narration_path(
                    document_id, index, content_hash, self.audio_format
                ),
            )
        except Exception as exc:
            self._fail(chunk_id, str(exc))
            self.run_logger.log_stage_failure(
                "narrate", type(exc).__name__, document_id=document_id, index=index
            )
            raise
        self._finish(chunk_id, ChunkStatus.COMPLETED, audio_path=str(output))
        self.run_logger.log_stage_complete("narrate", document_id=document_id, index=index)
        return output

    def _reusable_narration(self, chunk_id: int, content_hash: str) -> Path | None:
        with self.database.session_scope() as session:
            paths = session.scalars(
                select(ChunkRecord.audio_path)
                .where(
                    ChunkRecord.content_hash == content_hash,
                    ChunkRecord.status == ChunkStatus.COMPLETED,
                    ChunkRecord.audio_path.is_not(None),
                    ChunkRecord.id != chunk_id,
                )
                .order_by(ChunkRecord.id)
            ).all()
        for path in paths:
            if Path(path).exists():
                return Path(path)
        return None

    def _finish(self, chunk_id: int, status: str, **values) -> None:
        with self.database.session_scope() as session:
            session.execute(
                update(ChunkRecord)
                .where(ChunkRecord.id == chunk_id)
                .values(status=status, updated_at=utcnow(), **values)
            )

    def _fail(self, chunk_id: int, error: str) -> None:
        # A concurrent run of the same chunk may already have completed it.
        with self.database.session_scope() as session:
            session.execute(
                update(ChunkRecord)
                .where(
                    ChunkRecord.id == chunk_id,
                    ChunkRecord.status != ChunkStatus.COMPLETED,
                )
                .values(status=ChunkStatus.FAILED, last_error=error, updated_at=utcnow())
            )
