"""Character detection and dialogue attribution.

Responsibilities:
- Ask the text-understanding provider which characters speak in an excerpt.
- Split chunk text into ordered, speaker-attributed lines.
- Treat every response as untrusted: validate it and fall back to a single
  Narrator character or a single whole-text Narrator line instead of failing.
"""

from __future__ import annotations

from typing import Protocol

from ..errors import EmptyTextError
from ..models.datatypes import NARRATOR, Character, DialogueLine
from ..telemetry.logger import RunLogger
from ..text.cleaners import clean_for_narration
from ..tts.voices import narrator_character, voice_for_attributes
from .cache import ResponseCache
from .http_client import ProviderError
from .payloads import PayloadError, parse_characters, parse_dialogue
from .prompts import PromptLibrary


CHARACTER_EXCERPT_CHARS = 3000


class ChatClient(Protocol):
    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        timeout_seconds: float | None = None,
    ) -> str:
        """Return assistant text for one prompt pair."""


class CharacterAnalyzer:
    """Detect characters and attribute dialogue with deterministic fallbacks."""

    def __init__(
        self,
        *,
        chat_client: ChatClient,
        run_logger: RunLogger,
        model: str = "gpt-4o",
        provider_id: str = "openai",
        response_cache: ResponseCache | None = None,
        narrator_voice: str = "alloy",
        detection_timeout_seconds: float = 30.0,
        dialogue_timeout_seconds: float = 45.0,
    ) -> None:
        self.chat_client = chat_client
        self.run_logger = run_logger
        self.model = model
        self.provider_id = provider_id
        self.cache = response_cache if response_cache is not None else ResponseCache()
        self.narrator_voice = narrator_voice
        self.detection_timeout_seconds = detection_timeout_seconds
        self.dialogue_timeout_seconds = dialogue_timeout_seconds
        self.prompts = PromptLibrary()

    def detect_characters(self, excerpt: str) -> list[Character]:
        """Return speaking characters in `excerpt` (first 3000 characters).

        Falls back to a single neutral Narrator on any provider or payload failure.
        """

        analysis_text = excerpt[:CHARACTER_EXCERPT_CHARS]
        if not analysis_text.strip():
            return [narrator_character(self.narrator_voice)]

        cache_key = self.cache.make_key(
            provider=self.provider_id,
            model=self.model,
            operation="detect_characters",
            input_identity={"excerpt": analysis_text},
        )
        try:
            raw = self._cached_completion(
                cache_key,
                system_prompt=self.prompts.character_system_prompt(),
                user_prompt=self.prompts.character_user_prompt(analysis_text),
                temperature=0.3,
                timeout_seconds=self.detection_timeout_seconds,
                parse=parse_characters,
            )
            payloads = parse_characters(raw)
        except (ProviderError, PayloadError) as exc:
            self.run_logger.log_warning(
                "analyze", "character_fallback", reason=type(exc).__name__
            )
            return [narrator_character(self.narrator_voice)]

        characters: list[Character] = []
        seen: set[str] = set()
        for entry in payloads:
            key = entry.name.lower()
            if key in seen:
                continue
            seen.add(key)
            if key == NARRATOR.lower():
                characters.append(narrator_character(self.narrator_voice))
                continue
            characters.append(
                Character(
                    name=entry.name,
                    gender=entry.gender,
                    age=entry.age,
                    voice=voice_for_attributes(entry.gender, entry.age),
                )
            )
        if not characters:
            characters.append(narrator_character(self.narrator_voice))
        self.run_logger.log_event("analyze", "characters", count=len(characters))
        return characters

    def split_dialogue(self, full_text: str, characters: list[Character]) -> list[DialogueLine]:
        """Split `full_text` into ordered attributed lines.

        On failure returns exactly one Narrator line whose text equals
        `full_text` with `is_dialogue=False`.

        Raises:
            EmptyTextError: `full_text` has no non-whitespace characters.
        """

        if not full_text.strip():
            raise EmptyTextError("Cannot split dialogue of empty text.")
        fallback = [DialogueLine(speaker=NARRATOR, text=full_text, is_dialogue=False)]

        cache_key = self.cache.make_key(
            provider=self.provider_id,
            model=self.model,
            operation="split_dialogue",
            input_identity={
                "text": full_text,
                "characters": [[c.name, c.gender, c.age] for c in characters],
            },
        )
        try:
            raw = self._cached_completion(
                cache_key,
                system_prompt=self.prompts.dialogue_system_prompt(),
                user_prompt=self.prompts.dialogue_user_prompt(full_text, characters),
                temperature=0.2,
                timeout_seconds=self.dialogue_timeout_seconds,
                parse=parse_dialogue,
            )
            payloads = parse_dialogue(raw)
        except (ProviderError, PayloadError) as exc:
            self.run_logger.log_warning(
                "analyze", "dialogue_fallback", reason=type(exc).__name__
            )
            return fallback

        lines = [
            DialogueLine(speaker=entry.speaker, text=cleaned, is_dialogue=entry.is_dialogue)
            for entry in payloads
            if (cleaned := clean_for_narration(entry.text))
        ]
        if not lines:
            self.run_logger.log_warning("analyze", "dialogue_fallback", reason="no_lines")
            return fallback
        return lines

    def _cached_completion(
        self,
        cache_key: str,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout_seconds: float,
        parse,
    ) -> str:
        """Return cached raw output, or request it and cache it once it parses."""

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        raw = self.chat_client.chat_completion_text(
            model=self.model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            timeout_seconds=timeout_seconds,
        )
        parse(raw)
        self.cache.set(cache_key, raw)
        return raw
