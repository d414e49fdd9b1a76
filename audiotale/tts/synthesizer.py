"""Multi-voice speech synthesis for one unit (a chunk or a chunk group).

Responsibilities:
- Pick a voice and style instructions per dialogue line.
- Write one clip per line with deterministic sequential names.
- Concatenate clips in line order into one track.
- Give every run its own clip directory and remove it after the run, whether
  it succeeded or failed, so concurrent runs of one unit never collide.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

from ..audio.media import MediaTool
from ..errors import EmptyTextError, TextLimitError
from ..io.storage import ArtifactStore
from ..models.datatypes import Character, DialogueLine
from ..telemetry.logger import RunLogger
from ..text.cleaners import clean_for_narration
from .voices import DEFAULT_FALLBACK_VOICE, DEFAULT_NARRATOR_VOICE, VoiceResolver


class SpeechClient(Protocol):
    def synthesize_speech(
        self,
        *,
        model: str,
        voice: str,
        text: str,
        instructions: str | None = None,
        response_format: str = "mp3",
        speed: float = 1.0,
    ) -> bytes:
        """Return audio bytes for one line."""


class MultiVoiceSynthesizer:
    """Synthesize attributed lines with per-speaker voices and join them."""

    def __init__(
        self,
        *,
        speech_client: SpeechClient,
        media: MediaTool,
        store: ArtifactStore,
        run_logger: RunLogger,
        model: str = "gpt-4o-mini-tts",
        audio_format: str = "mp3",
        narrator_voice: str = DEFAULT_NARRATOR_VOICE,
        fallback_voice: str = DEFAULT_FALLBACK_VOICE,
        max_input_chars: int = 4096,
    ) -> None:
        self.speech_client = speech_client
        self.media = media
        self.store = store
        self.run_logger = run_logger
        self.model = model
        self.audio_format = audio_format
        self.narrator_voice = narrator_voice
        self.fallback_voice = fallback_voice
        self.max_input_chars = max_input_chars

    def prepare(self, lines: Sequence[DialogueLine]) -> list[tuple[DialogueLine, str]]:
        """Clean every line and validate limits without touching the network.

        Raises:
            EmptyTextError: No line has speakable text.
            TextLimitError: A cleaned line exceeds `max_input_chars`.
        """

        prepared = [
            (line, cleaned) for line in lines if (cleaned := clean_for_narration(line.text))
        ]
        if not prepared:
            raise EmptyTextError("Synthesis unit contains no speakable text.")
        for line, cleaned in prepared:
            self._check_length(cleaned, f"Line by `{line.speaker}`")
        return prepared

    def check_text(self, text: str) -> None:
        """Reject raw unit text that could never be synthesized.

        The fallback Narrator line is this whole text, so a unit that passes
        here can always be narrated.

        Raises:
            EmptyTextError: The text cleans to nothing.
            TextLimitError: The cleaned text exceeds `max_input_chars`.
        """

        cleaned = clean_for_narration(text)
        if not cleaned:
            raise EmptyTextError("Synthesis unit contains no speakable text.")
        self._check_length(cleaned, "Unit text")

    def _check_length(self, cleaned: str, label: str) -> None:
        if len(cleaned) > self.max_input_chars:
            raise TextLimitError(
                f"{label} has {len(cleaned)} characters; the speech "
                f"limit is {self.max_input_chars}.",
                limit=self.max_input_chars,
                actual=len(cleaned),
            )

    def synthesize(
        self,
        lines: Sequence[DialogueLine],
        characters: Sequence[Character],
        *,
        document_id: int,
        unit: str,
        output_path: Path,
    ) -> Path:
        """Synthesize `lines` into `output_path` and return it."""

        prepared = self.prepare(lines)
        resolver = VoiceResolver(
            characters=characters,
            narrator_voice=self.narrator_voice,
            fallback_voice=self.fallback_voice,
        )
        clip_dir = self.store.new_clip_dir(document_id, unit)
        self.run_logger.log_stage_start(
            "synthesize", document_id=document_id, unit=unit, lines=len(prepared)
        )
        try:
            clips: list[Path] = []
            for sequence, (line, text) in enumerate(prepared):
                audio = self.speech_client.synthesize_speech(
                    model=self.model,
                    voice=resolver.voice_for_speaker(line.speaker),
                    text=text,
                    instructions=resolver.instructions_for(line.speaker, line.is_dialogue),
                    response_format=self.audio_format,
                    speed=1.0,
                )
                clip = self.store.clip_path(
                    clip_dir, document_id, unit, sequence, self.audio_format
                )
                clips.append(self.store.save_audio(clip, audio))
            self.media.concat(clips, output_path)
        except Exception as exc:
            self.run_logger.log_stage_failure(
                "synthesize", type(exc).__name__, document_id=document_id, unit=unit
            )
            raise
        finally:
            self.store.remove_tree(clip_dir)
        self.run_logger.log_stage_complete(
            "synthesize", document_id=document_id, unit=unit, clips=len(clips)
        )
        return output_path
