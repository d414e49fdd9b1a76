"""Prompt template library for text-understanding calls.

Responsibilities:
- Centralize prompt construction for character detection, dialogue
  attribution, mood segmentation, music prompts, and foley cue extraction.
- Keep every prompt deterministic for a given input so response caching works.
"""

from __future__ import annotations

from typing import Iterable

from ..models.datatypes import Character


class PromptLibrary:
    """Build prompt strings for supported text-understanding tasks."""

    def character_system_prompt(self) -> str:
        return (
            "You are a literary analysis AI that identifies characters in book excerpts.\n"
            "Analyze the text and identify all speaking characters.\n"
            "For each character, determine:\n"
            '1. Name (or role if unnamed like "Mother", "Child")\n'
            "2. Gender (male/female/neutral)\n"
            "3. Age category (adult/child/elderly)\n\n"
            "Return ONLY a valid JSON array:\n"
            '[{"name": "John", "gender": "male", "age": "adult"},\n'
            ' {"name": "Timmy", "gender": "male", "age": "child"}]\n\n'
            "Do not include the narrator unless they are a character in the story."
        )

    def character_user_prompt(self, excerpt: str) -> str:
        return f"Analyze this book excerpt and identify all characters:\n\n{excerpt}"

    def dialogue_system_prompt(self) -> str:
        return (
            "You are a dialogue extraction AI.\n"
            "Split the text into ordered lines, identifying who is speaking.\n"
            "For each line, specify:\n"
            '1. speaker: Character name or "Narrator" for non-dialogue text\n'
            "2. text: The literal text, ready for narration\n"
            "3. is_dialogue: true if a character is speaking, false for narration\n\n"
            "Text rules:\n"
            "- Remove quotation marks from dialogue.\n"
            "- Keep periods, commas, question and exclamation marks, ellipses (...), "
            "and em-dashes.\n"
            "- Remove symbols: < > { } [ ] | \\ ~ ^\n"
            "- Do not spell out punctuation.\n"
            "- Keep the original order and do not drop any text.\n\n"
            "Return ONLY a valid JSON array:\n"
            '[{"speaker": "Narrator", "text": "The sun rose over the hills.", '
            '"is_dialogue": false},\n'
            ' {"speaker": "John", "text": "Good morning! How are you?", "is_dialogue": true}]'
        )

    def dialogue_user_prompt(self, text: str, characters: Iterable[Character]) -> str:
        roster = "\n".join(
            f"- {character.name} ({character.gender}, {character.age})"
            for character in characters
        )
        return f"Characters:\n{roster}\n\nText to split:\n{text}"

    def mood_system_prompt(self) -> str:
        return "You are an audio segmentation assistant."

    def mood_user_prompt(self, duration_seconds: float, excerpt: str, segment_count: int) -> str:
        return (
            f"Given a narration duration of {duration_seconds:.2f} seconds and this "
            f"excerpt:\n{excerpt}\n\n"
            f"Output ONLY a JSON array of {segment_count} segments with keys "
            '"start", "end", and "mood" (one of "suspense", "action", "climax", '
            '"sad", "neutral"). Segments must cover 0 to the full duration without gaps.'
        )

    def music_system_prompt(self) -> str:
        return "You are an audio production assistant."

    def music_user_prompt(self, excerpt: str) -> str:
        return (
            "Analyze this audiobook excerpt and produce a concise (max 300 chars) "
            "instrumental background music prompt recommending instrumentation, mood, "
            f"and style. Return only the prompt text: {excerpt}"
        )

    def foley_system_prompt(self) -> str:
        return "You are an expert audio Foley designer for audiobooks."

    def foley_user_prompt(
        self, excerpt: str, duration_seconds: float, vocabulary: Iterable[str]
    ) -> str:
        return (
            "Analyze this text excerpt and identify where sound effects should be placed.\n\n"
            f"TEXT EXCERPT:\n{excerpt}\n\n"
            f"AUDIO DURATION: {duration_seconds:.2f} seconds\n\n"
            "AVAILABLE SOUND EFFECTS (use ONLY these exact names):\n"
            f"{', '.join(sorted(vocabulary))}\n\n"
            "RULES:\n"
            "1. Only use sound effect names from the list above.\n"
            "2. Place sounds at timestamps matching when they occur in the narrative.\n"
            "3. Only add sounds that are clearly described or implied in the text.\n"
            "4. Use at most 5 sound effects.\n\n"
            'Return ONLY a JSON object like {"sword_clash": [2.5, 8.0], "door_creak": [0.5]}. '
            "If nothing fits, return {}."
        )
