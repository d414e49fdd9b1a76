"""Voice catalogue and speaker-to-voice resolution.

Responsibilities:
- Map (gender, age class) to provider voice identifiers.
- Resolve the voice for a dialogue line's speaker.
- Build natural-language style instructions for narration and dialogue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ..models.datatypes import NARRATOR, Character


DEFAULT_NARRATOR_VOICE = "alloy"
DEFAULT_FALLBACK_VOICE = "nova"
NEUTRAL_VOICE = "alloy"

VOICE_CATALOGUE: Mapping[tuple[str, str], str] = {
    ("male", "adult"): "onyx",
    ("female", "adult"): "nova",
    ("male", "child"): "shimmer",
    ("female", "child"): "shimmer",
    ("male", "elderly"): "echo",
    ("female", "elderly"): "fable",
}

NARRATOR_INSTRUCTIONS = (
    "You are an expressive audiobook narrator. Speak naturally with appropriate "
    "pacing and emotion. Pause briefly at commas and periods. Use emphasis for "
    "important words. Sound warm and engaging, like telling a story to a friend. "
    "Do not read punctuation marks aloud; interpret them as pauses and intonation."
)

_GENDER_GUIDANCE = {
    "male": "Speak with a natural male voice.",
    "female": "Speak with a natural female voice.",
}
_AGE_GUIDANCE = {
    "child": "Sound youthful and energetic.",
    "elderly": "Sound mature and measured, with a slightly slower pace.",
}


def voice_for_attributes(gender: str, age: str) -> str:
    """Return the catalogue voice for a gender and age class; neutral otherwise."""

    return VOICE_CATALOGUE.get((gender, age), NEUTRAL_VOICE)


def is_narrator(speaker: str) -> bool:
    return speaker.strip().lower() == NARRATOR.lower()


def narrator_character(voice: str = DEFAULT_NARRATOR_VOICE) -> Character:
    return Character(name=NARRATOR, gender="neutral", age="adult", voice=voice)


def character_instructions(character: Character | None) -> str:
    """Return dialogue instructions tuned to a character's gender and age."""

    parts = ["You are voicing a character in an audiobook."]
    if character is not None:
        if character.gender in _GENDER_GUIDANCE:
            parts.append(_GENDER_GUIDANCE[character.gender])
        if character.age in _AGE_GUIDANCE:
            parts.append(_AGE_GUIDANCE[character.age])
    parts.append(
        "Deliver the line with emotion fitting the context. "
        "Do not read punctuation marks aloud."
    )
    return " ".join(parts)


@dataclass(slots=True)
class VoiceResolver:
    """Resolve voices and instructions for the speakers of one synthesis unit."""

    characters: Iterable[Character] = ()
    narrator_voice: str = DEFAULT_NARRATOR_VOICE
    fallback_voice: str = DEFAULT_FALLBACK_VOICE
    _by_name: dict[str, Character] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        for character in self.characters:
            self._by_name.setdefault(character.name.strip().lower(), character)

    def character(self, speaker: str) -> Character | None:
        return self._by_name.get(speaker.strip().lower())

    def voice_for_speaker(self, speaker: str) -> str:
        """Known character first, then the narrator voice, then the fallback voice."""

        known = self.character(speaker)
        if known is not None and not is_narrator(speaker):
            return known.voice
        if is_narrator(speaker):
            return self.narrator_voice
        return self.fallback_voice

    def instructions_for(self, speaker: str, is_dialogue: bool) -> str:
        if not is_dialogue or is_narrator(speaker):
            return NARRATOR_INSTRUCTIONS
        return character_instructions(self.character(speaker))
