"""Untrusted provider payload extraction and schema validation.

Responsibilities:
- Strip markdown fences and surrounding prose from model output.
- Locate the JSON array or object the prompt asked for.
- Validate array entries against pydantic schemas, normalizing closed label sets.

Every function here raises `PayloadError` on malformed input; callers decide
the fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ..models.datatypes import AGE_CLASSES, GENDERS


MOOD_LABELS = ("suspense", "action", "climax", "sad", "neutral")

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


class PayloadError(ValueError):
    """Raised when provider output does not contain the expected JSON payload."""


def strip_fences(raw: str) -> str:
    """Return the body of the first fenced block, or `raw` stripped of stray fences."""

    match = _FENCE_PATTERN.search(raw)
    if match:
        return match.group(1).strip()
    return raw.replace("```json", "").replace("```", "").strip()


def extract_json(raw: str, expected: type[list] | type[dict]) -> Any:
    """Parse the JSON array (`list`) or object (`dict`) embedded in `raw`."""

    text = strip_fences(raw)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        opener, closer = ("[", "]") if expected is list else ("{", "}")
        start, end = text.find(opener), text.rfind(closer)
        if start < 0 or end <= start:
            raise PayloadError(f"No JSON {expected.__name__} found in provider output.")
        try:
            payload = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise PayloadError(f"Provider output is not valid JSON: {exc.msg}.") from exc
    if not isinstance(payload, expected):
        raise PayloadError(
            f"Expected a JSON {expected.__name__}, got {type(payload).__name__}."
        )
    return payload


def _normalize_label(value: Any, allowed: tuple[str, ...], default: str) -> str:
    token = str(value).strip().lower() if value is not None else ""
    return token if token in allowed else default


class CharacterPayload(BaseModel):
    name: str = Field(min_length=1)
    gender: str = "neutral"
    age: str = "adult"

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value: Any) -> str:
        return _normalize_label(value, GENDERS, "neutral")

    @field_validator("age", mode="before")
    @classmethod
    def _normalize_age(cls, value: Any) -> str:
        return _normalize_label(value, AGE_CLASSES, "adult")


class DialoguePayload(BaseModel):
    speaker: str = Field(min_length=1)
    text: str
    is_dialogue: bool = False

    @field_validator("speaker", mode="before")
    @classmethod
    def _strip_speaker(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class MoodPayload(BaseModel):
    start: float
    end: float
    mood: str = "neutral"

    @field_validator("mood", mode="before")
    @classmethod
    def _normalize_mood(cls, value: Any) -> str:
        return _normalize_label(value, MOOD_LABELS, "neutral")


_CHARACTERS = TypeAdapter(list[CharacterPayload])
_DIALOGUE = TypeAdapter(list[DialoguePayload])
_MOODS = TypeAdapter(list[MoodPayload])


def _validate(adapter: TypeAdapter, raw: str) -> list[Any]:
    payload = extract_json(raw, list)
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise PayloadError(
            f"Provider output failed schema validation ({exc.error_count()} error(s))."
        ) from exc


def parse_characters(raw: str) -> list[CharacterPayload]:
    return _validate(_CHARACTERS, raw)


def parse_dialogue(raw: str) -> list[DialoguePayload]:
    return _validate(_DIALOGUE, raw)


def parse_moods(raw: str) -> list[MoodPayload]:
    return _validate(_MOODS, raw)


def parse_event_map(raw: str) -> dict[str, Any]:
    """Return the raw event object; entry validation depends on the vocabulary."""

    return extract_json(raw, dict)
