"""Narration text cleaning rules.

Responsibilities:
- Remove characters a speech engine would read aloud or stumble on.
- Preserve sentence-level punctuation (periods, commas, ellipses, em-dashes)
  that drives natural prosody.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Protocol


class CleanerRule(Protocol):
    """Protocol for text cleaning rules."""

    def apply(self, text: str) -> str:
        """Apply a single cleaning transformation."""


class RemoveNonSpeakableSymbols:
    """Drop bracket, pipe, backslash, tilde, caret, and asterisk characters."""

    _PATTERN = re.compile(r"[<>{}\[\]|\\~^*]")

    def apply(self, text: str) -> str:
        return self._PATTERN.sub("", text)


class RemoveDoubleQuotes:
    """Drop straight and typographic double quotes."""

    _PATTERN = re.compile("[\"“”„«»]")

    def apply(self, text: str) -> str:
        return self._PATTERN.sub("", text)


class NormalizeSingleQuotes:
    """Map typographic single quotes to the ASCII apostrophe."""

    def apply(self, text: str) -> str:
        return text.replace("‘", "'").replace("’", "'")


class CollapseWhitespace:
    """Collapse whitespace runs left behind by removed symbols."""

    def apply(self, text: str) -> str:
        return re.sub(r"\s+", " ", text).strip()


@dataclass(slots=True)
class NarrationCleaner:
    """Apply narration cleaning rules in a fixed order."""

    rules: list[CleanerRule] = field(
        default_factory=lambda: [
            RemoveNonSpeakableSymbols(),
            RemoveDoubleQuotes(),
            NormalizeSingleQuotes(),
            CollapseWhitespace(),
        ]
    )

    def clean(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        return text


def clean_for_narration(text: str) -> str:
    """Clean `text` with the default narration rules."""

    return NarrationCleaner().clean(text)
