"""Mood-segmented background score composition.

Responsibilities:
- Request mood segments covering the narration timeline, validating and
  repairing them into a contiguous cover of `[0, T]`.
- Fall back to equal-length neutral segments on any provider or payload failure.
- Generate one music bed, loop it per segment, and fit the result to exactly `T`.
"""

from __future__ import annotations

import math
from pathlib import Path

from ..errors import DataIntegrityError
from ..llm.character_analyzer import ChatClient
from ..llm.http_client import ProviderError
from ..llm.payloads import PayloadError, parse_moods
from ..llm.prompts import PromptLibrary
from ..models.datatypes import MoodSegment
from ..telemetry.logger import RunLogger
from .media import MediaTool


MOOD_EXCERPT_CHARS = 200
MUSIC_EXCERPT_CHARS = 500
MUSIC_PROMPT_MAX_CHARS = 300
BED_PROMPT_INFLUENCE = 0.5
FALLBACK_MUSIC_PROMPT = (
    "Soft cinematic ambient underscore for audiobook narration, warm strings and "
    "gentle piano, slow tempo, unobtrusive, no vocals"
)


class AmbienceComposer:
    """Compose a background track whose duration matches the narration."""

    def __init__(
        self,
        *,
        chat_client: ChatClient,
        sound_client,
        media: MediaTool,
        run_logger: RunLogger,
        model: str = "gpt-4o",
        audio_format: str = "mp3",
        base_clip_seconds: float = 22.0,
        bed_volume: float = 0.30,
        mood_timeout_seconds: float = 60.0,
        prompt_timeout_seconds: float = 30.0,
    ) -> None:
        self.chat_client = chat_client
        self.sound_client = sound_client
        self.media = media
        self.run_logger = run_logger
        self.model = model
        self.audio_format = audio_format
        self.base_clip_seconds = base_clip_seconds
        self.bed_volume = bed_volume
        self.mood_timeout_seconds = mood_timeout_seconds
        self.prompt_timeout_seconds = prompt_timeout_seconds
        self.prompts = PromptLibrary()

    def segment_count(self, duration_seconds: float) -> int:
        return max(1, math.ceil(duration_seconds / self.base_clip_seconds))

    def fallback_segments(self, duration_seconds: float) -> list[MoodSegment]:
        """Equal-length neutral segments, each no longer than the base clip."""

        count = self.segment_count(duration_seconds)
        step = duration_seconds / count
        segments = [
            MoodSegment(start=index * step, end=(index + 1) * step, mood="neutral")
            for index in range(count)
        ]
        last = segments[-1]
        segments[-1] = MoodSegment(start=last.start, end=duration_seconds, mood=last.mood)
        return segments

    def request_segments(self, duration_seconds: float, excerpt: str) -> list[MoodSegment]:
        """Ask for mood segments and repair them; never raises for provider trouble."""

        try:
            raw = self.chat_client.chat_completion_text(
                model=self.model,
                system_prompt=self.prompts.mood_system_prompt(),
                user_prompt=self.prompts.mood_user_prompt(
                    duration_seconds,
                    excerpt[:MOOD_EXCERPT_CHARS],
                    self.segment_count(duration_seconds),
                ),
                temperature=0.7,
                timeout_seconds=self.mood_timeout_seconds,
            )
            segments = self._normalize_segments(parse_moods(raw), duration_seconds)
        except (ProviderError, PayloadError) as exc:
            self.run_logger.log_warning("ambience", "mood_fallback", reason=type(exc).__name__)
            return self.fallback_segments(duration_seconds)
        if not segments:
            self.run_logger.log_warning("ambience", "mood_fallback", reason="empty")
            return self.fallback_segments(duration_seconds)
        return segments

    @staticmethod
    def _normalize_segments(payloads, duration_seconds: float) -> list[MoodSegment]:
        """Sort, clamp, and close gaps so segments tile `[0, duration]` exactly."""

        spans = sorted(
            (
                (max(0.0, entry.start), min(duration_seconds, entry.end), entry.mood)
                for entry in payloads
                if math.isfinite(entry.start) and math.isfinite(entry.end)
            ),
            key=lambda span: (span[0], span[1]),
        )
        segments: list[MoodSegment] = []
        cursor = 0.0
        for start, end, mood in spans:
            if end <= start or end <= cursor:
                continue
            segments.append(MoodSegment(start=cursor, end=end, mood=mood))
            cursor = end
        if segments and cursor < duration_seconds:
            last = segments[-1]
            segments[-1] = MoodSegment(start=last.start, end=duration_seconds, mood=last.mood)
        return segments

    def music_prompt(self, excerpt: str) -> str:
        """Return a music-bed prompt for `excerpt`, or a fixed prompt on failure."""

        try:
            prompt = self.chat_client.chat_completion_text(
                model=self.model,
                system_prompt=self.prompts.music_system_prompt(),
                user_prompt=self.prompts.music_user_prompt(excerpt[:MUSIC_EXCERPT_CHARS]),
                temperature=0.7,
                timeout_seconds=self.prompt_timeout_seconds,
            )
        except ProviderError as exc:
            self.run_logger.log_warning(
                "ambience", "music_prompt_fallback", reason=type(exc).__name__
            )
            return FALLBACK_MUSIC_PROMPT
        prompt = " ".join(prompt.replace('"', "").split())
        return prompt[:MUSIC_PROMPT_MAX_CHARS] or FALLBACK_MUSIC_PROMPT

    def compose_background(
        self, duration_seconds: float, source_text_path: Path, work_dir: Path
    ) -> Path:
        """Build a background track lasting exactly `duration_seconds`.

        Raises:
            DataIntegrityError: `duration_seconds` is not positive.
            ProviderError: The music bed could not be generated.
            MediaToolError: A looping, concatenation, or trim step failed.
        """

        if duration_seconds <= 0:
            raise DataIntegrityError(
                f"Narration duration must be positive, got {duration_seconds:.3f}s."
            )
        text = source_text_path.read_text(encoding="utf-8")
        work_dir.mkdir(parents=True, exist_ok=True)
        self.run_logger.log_stage_start("ambience", duration=f"{duration_seconds:.2f}")

        segments = self.request_segments(duration_seconds, text)
        bed_bytes = self.sound_client.generate_sound(
            text=self.music_prompt(text),
            duration_seconds=self.base_clip_seconds,
            prompt_influence=BED_PROMPT_INFLUENCE,
        )
        bed_path = work_dir / f"bed.{self.audio_format}"
        bed_path.write_bytes(bed_bytes)

        pieces = [
            self.media.loop_to_duration(
                bed_path,
                segment.duration,
                work_dir / f"segment_{index:03d}_{segment.mood}.{self.audio_format}",
                volume=self.bed_volume,
            )
            for index, segment in enumerate(segments)
            if segment.duration > 0
        ]
        staged = self.media.concat(pieces, work_dir / f"background_staged.{self.audio_format}")
        background = self.media.fit_to_duration(
            staged, duration_seconds, work_dir / f"background.{self.audio_format}"
        )
        self.run_logger.log_stage_complete("ambience", segments=len(pieces))
        return background
