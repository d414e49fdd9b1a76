"""Composition root for one audiotale process.

Responsibilities:
- Build every pipeline component from an `AudiotaleConfig`.
- Own the process-wide shared state (database engine, response cache, foley
  clip cache, task supervisor, logger) instead of module globals.
- Accept injected provider clients and media tool so tests run offline.
"""

from __future__ import annotations

from dataclasses import dataclass

from .audio.ambience import AmbienceComposer
from .audio.foley import FoleyClipCache, FoleyMixer
from .audio.media import MediaTool
from .config import PROVIDER_ELEVENLABS, PROVIDER_OPENAI, AudiotaleConfig
from .io.database import Database
from .io.storage import ArtifactStore
from .io.text_extractor import TextExtractor
from .llm.cache import ResponseCache
from .llm.character_analyzer import CharacterAnalyzer
from .llm.openai_client import OpenAIChatClient, OpenAISpeechClient
from .llm.rate_limiter import RateLimiter
from .llm.sound_client import SoundGenerationClient
from .pipeline.group_cache import ChunkGroupCache
from .pipeline.narration import ChunkNarrator
from .pipeline.production import ChunkGroupProducer
from .pipeline.service import AudiobookService
from .pipeline.supervisor import TaskSupervisor
from .pipeline.worker import ProcessingQueue, ProcessingQueueWorker
from .telemetry.logger import RunLogger
from .text.chunking import DocumentChunker
from .tts.synthesizer import MultiVoiceSynthesizer


@dataclass(slots=True)
class PipelineContext:
    """Wired components sharing one database, logger, and set of caches."""

    config: AudiotaleConfig
    run_logger: RunLogger
    database: Database
    store: ArtifactStore
    media: MediaTool
    supervisor: TaskSupervisor
    response_cache: ResponseCache
    foley_clips: FoleyClipCache
    chunker: DocumentChunker
    analyzer: CharacterAnalyzer
    narrator: ChunkNarrator
    group_cache: ChunkGroupCache
    producer: ChunkGroupProducer
    queue: ProcessingQueue
    worker: ProcessingQueueWorker
    service: AudiobookService

    @classmethod
    def from_config(
        cls,
        config: AudiotaleConfig,
        *,
        run_logger: RunLogger | None = None,
        chat_client=None,
        speech_client=None,
        sound_client=None,
        media: MediaTool | None = None,
        extractor: TextExtractor | None = None,
    ) -> PipelineContext:
        """Build a context; provider keys are read now but checked only on use."""

        config.validate()
        run_logger = run_logger if run_logger is not None else RunLogger()
        database = Database(config.resolved_database_url())
        database.init_schema()
        store = ArtifactStore(config.data_dir)
        media = media if media is not None else MediaTool(config.media_timeout_seconds)
        supervisor = TaskSupervisor(run_logger, max_workers=config.max_background_tasks)
        response_cache = ResponseCache()
        foley_clips = FoleyClipCache()
        limiter = RateLimiter()

        openai_key = config.resolve_api_key(PROVIDER_OPENAI)
        if chat_client is None:
            chat_client = OpenAIChatClient(
                api_key=openai_key,
                timeout_seconds=config.chat_timeout_seconds,
                rate_limiter=limiter,
            )
        if speech_client is None:
            speech_client = OpenAISpeechClient(
                api_key=openai_key,
                timeout_seconds=config.speech_timeout_seconds,
                rate_limiter=limiter,
            )
        if sound_client is None:
            sound_client = SoundGenerationClient(
                api_key=config.resolve_api_key(PROVIDER_ELEVENLABS),
                timeout_seconds=config.sound_timeout_seconds,
                rate_limiter=limiter,
            )

        chunker = DocumentChunker(
            database=database,
            extractor=extractor
            if extractor is not None
            else TextExtractor(config.extract_timeout_seconds),
            run_logger=run_logger,
            supervisor=supervisor,
            chunk_size=config.chunk_size_chars,
            batch_size=config.chunk_batch_size,
            preview_limit=config.preview_limit_chars,
            async_threshold_bytes=config.async_threshold_bytes,
            async_threshold_chunks=config.async_threshold_chunks,
        )
        analyzer = CharacterAnalyzer(
            chat_client=chat_client,
            run_logger=run_logger,
            model=config.chat_model,
            provider_id=PROVIDER_OPENAI,
            response_cache=response_cache,
            narrator_voice=config.narrator_voice,
            detection_timeout_seconds=config.chat_timeout_seconds,
            dialogue_timeout_seconds=config.dialogue_timeout_seconds,
        )
        synthesizer = MultiVoiceSynthesizer(
            speech_client=speech_client,
            media=media,
            store=store,
            run_logger=run_logger,
            model=config.tts_model,
            audio_format=config.audio_format,
            narrator_voice=config.narrator_voice,
            fallback_voice=config.fallback_voice,
            max_input_chars=config.tts_max_input_chars,
        )
        narrator = ChunkNarrator(
            database=database,
            analyzer=analyzer,
            synthesizer=synthesizer,
            store=store,
            run_logger=run_logger,
            audio_format=config.audio_format,
        )
        ambience = AmbienceComposer(
            chat_client=chat_client,
            sound_client=sound_client,
            media=media,
            run_logger=run_logger,
            model=config.chat_model,
            audio_format=config.audio_format,
            base_clip_seconds=config.base_clip_seconds,
            bed_volume=config.bed_volume,
            mood_timeout_seconds=config.mood_timeout_seconds,
            prompt_timeout_seconds=config.chat_timeout_seconds,
        )
        foley = FoleyMixer(
            chat_client=chat_client,
            sound_client=sound_client,
            media=media,
            store=store,
            run_logger=run_logger,
            clip_cache=foley_clips,
            model=config.chat_model,
            audio_format=config.audio_format,
            volume=config.foley_volume,
            timeout_seconds=config.chat_timeout_seconds,
        )
        group_cache = ChunkGroupCache(
            database=database,
            run_logger=run_logger,
            share_across_documents=config.share_cache_across_documents,
        )
        producer = ChunkGroupProducer(
            database=database,
            narrator=narrator,
            ambience=ambience,
            foley=foley,
            media=media,
            store=store,
            cache=group_cache,
            run_logger=run_logger,
            audio_format=config.audio_format,
            background_volume=config.background_mix_volume,
        )
        queue = ProcessingQueue(database)
        worker = ProcessingQueueWorker(
            queue=queue,
            produce=producer.produce,
            run_logger=run_logger,
            idle_seconds=config.worker_idle_seconds,
            backoff_seconds=config.worker_backoff_seconds,
        )
        service = AudiobookService(
            database=database,
            chunker=chunker,
            narrator=narrator,
            cache=group_cache,
            queue=queue,
            supervisor=supervisor,
            run_logger=run_logger,
            group_text_limit_bytes=config.group_text_limit_bytes,
        )
        return cls(
            config=config,
            run_logger=run_logger,
            database=database,
            store=store,
            media=media,
            supervisor=supervisor,
            response_cache=response_cache,
            foley_clips=foley_clips,
            chunker=chunker,
            analyzer=analyzer,
            narrator=narrator,
            group_cache=group_cache,
            producer=producer,
            queue=queue,
            worker=worker,
            service=service,
        )

    def close(self) -> None:
        """Stop background work and release the database and log sink."""

        if self.worker.running:
            self.worker.stop()
        self.supervisor.shutdown(wait_for_tasks=True)
        self.database.dispose()
        self.run_logger.close()
