"""Unit tests for mood segmentation and background score composition."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from audiotale.audio.ambience import (
    BED_PROMPT_INFLUENCE,
    FALLBACK_MUSIC_PROMPT,
    MUSIC_PROMPT_MAX_CHARS,
    AmbienceComposer,
)
from audiotale.errors import DataIntegrityError
from audiotale.llm.http_client import ProviderError
from tests.doubles import RecordingSoundClient, ScriptedChatClient


def _composer(chat_client, sound_client, media, run_logger, **kwargs) -> AmbienceComposer:
    """Build a composer over test doubles."""

    return AmbienceComposer(
        chat_client=chat_client,
        sound_client=sound_client,
        media=media,
        run_logger=run_logger,
        **kwargs,
    )


def _assert_tiles(segments, duration: float) -> None:
    """Segments must be contiguous, non-overlapping, and cover `[0, duration]`."""

    assert segments[0].start == 0.0
    assert segments[-1].end == pytest.approx(duration)
    for previous, current in zip(segments, segments[1:]):
        assert current.start == pytest.approx(previous.end)
    for segment in segments:
        assert segment.end > segment.start


def test_segment_count_uses_base_clip_length(media, run_logger) -> None:
    """One segment per started base clip, at least one."""

    composer = _composer(ScriptedChatClient(), RecordingSoundClient(), media, run_logger)

    assert composer.segment_count(1.0) == 1
    assert composer.segment_count(22.0) == 1
    assert composer.segment_count(22.1) == 2
    assert composer.segment_count(100.0) == 5


def test_fallback_segments_are_equal_and_neutral(media, run_logger) -> None:
    """The fallback splits the timeline evenly and ends exactly at the duration."""

    composer = _composer(ScriptedChatClient(), RecordingSoundClient(), media, run_logger)

    segments = composer.fallback_segments(50.0)

    assert len(segments) == 3
    assert {segment.mood for segment in segments} == {"neutral"}
    assert all(segment.duration <= 22.0 for segment in segments)
    _assert_tiles(segments, 50.0)


def test_provider_segments_are_sorted_clamped_and_gap_free(media, run_logger) -> None:
    """Overlaps, gaps, and out-of-range bounds are repaired into a clean cover."""

    chat = ScriptedChatClient(
        {
            "moods": json.dumps(
                [
                    {"start": 20, "end": 45, "mood": "climax"},
                    {"start": -3, "end": 8, "mood": "suspense"},
                    {"start": 10, "end": 18, "mood": "action"},
                ]
            )
        }
    )
    composer = _composer(chat, RecordingSoundClient(), media, run_logger)

    segments = composer.request_segments(30.0, "excerpt")

    assert [(s.start, s.end, s.mood) for s in segments] == [
        (0.0, 8.0, "suspense"),
        (8.0, 18.0, "action"),
        (18.0, 30.0, "climax"),
    ]
    assert chat.calls[0]["temperature"] == 0.7


def test_short_provider_cover_is_extended_to_duration(media, run_logger) -> None:
    """A cover ending early stretches its last segment to the end."""

    chat = ScriptedChatClient({"moods": '[{"start": 0, "end": 5, "mood": "sad"}]'})
    composer = _composer(chat, RecordingSoundClient(), media, run_logger)

    segments = composer.request_segments(12.0, "excerpt")

    assert [(s.start, s.end, s.mood) for s in segments] == [(0.0, 12.0, "sad")]


@pytest.mark.parametrize(
    "response",
    [
        "no json here",
        "[]",
        '[{"start": 40, "end": 50, "mood": "action"}]',
        ProviderError("down", provider="openai", failure_kind="timeout"),
    ],
)
def test_unusable_segments_fall_back(media, run_logger, log_stream, response) -> None:
    """Malformed, empty, or out-of-range answers use the neutral fallback."""

    composer = _composer(
        ScriptedChatClient({"moods": response}), RecordingSoundClient(), media, run_logger
    )

    segments = composer.request_segments(30.0, "excerpt")

    assert segments == composer.fallback_segments(30.0)
    assert "event=mood_fallback" in log_stream.getvalue()


def test_music_prompt_is_cleaned_and_capped(media, run_logger) -> None:
    """Quotes and extra whitespace are removed and the prompt is capped."""

    long_prompt = '"Epic   strings" ' + "x" * 400
    composer = _composer(
        ScriptedChatClient({"music": long_prompt}), RecordingSoundClient(), media, run_logger
    )

    prompt = composer.music_prompt("excerpt")

    assert prompt.startswith("Epic strings x")
    assert len(prompt) == MUSIC_PROMPT_MAX_CHARS


def test_music_prompt_falls_back_on_provider_failure(media, run_logger) -> None:
    """An unavailable provider yields the fixed ambient prompt."""

    chat = ScriptedChatClient(
        {"music": ProviderError("down", provider="openai", failure_kind="timeout")}
    )
    composer = _composer(chat, RecordingSoundClient(), media, run_logger)

    assert composer.music_prompt("excerpt") == FALLBACK_MUSIC_PROMPT


def test_compose_background_matches_narration_duration(
    media, run_logger, tmp_path: Path
) -> None:
    """One bed is generated, looped per segment, and fitted to the exact duration."""

    text_path = tmp_path / "group.txt"
    text_path.write_text("A storm gathered over the hills.", encoding="utf-8")
    sound = RecordingSoundClient()
    composer = _composer(ScriptedChatClient(), sound, media, run_logger)

    background = composer.compose_background(50.0, text_path, tmp_path / "work")

    assert background == tmp_path / "work" / "background.mp3"
    assert media.duration_of(background) == 50.0
    assert len(sound.calls) == 1
    assert sound.calls[0]["duration_seconds"] == 22.0
    assert sound.calls[0]["prompt_influence"] == BED_PROMPT_INFLUENCE
    loops = media.calls_named("loop")
    assert len(loops) == 3
    assert sum(duration for _source, duration, _volume in loops) == pytest.approx(50.0)
    assert {volume for _source, _duration, volume in loops} == {0.30}
    assert media.calls_named("fit")[0][1] == 50.0


def test_compose_background_rejects_non_positive_duration(
    media, run_logger, tmp_path: Path
) -> None:
    """A zero-length narration cannot be scored."""

    composer = _composer(ScriptedChatClient(), RecordingSoundClient(), media, run_logger)

    with pytest.raises(DataIntegrityError):
        composer.compose_background(0.0, tmp_path / "unused.txt", tmp_path / "work")


def test_compose_background_propagates_bed_failure(media, run_logger, tmp_path: Path) -> None:
    """Without a music bed there is nothing to loop."""

    text_path = tmp_path / "group.txt"
    text_path.write_text("Text.", encoding="utf-8")
    sound = RecordingSoundClient(
        error=ProviderError("quota", provider="elevenlabs", failure_kind="insufficient_quota")
    )
    composer = _composer(ScriptedChatClient(), sound, media, run_logger)

    with pytest.raises(ProviderError):
        composer.compose_background(10.0, text_path, tmp_path / "work")
    assert media.calls_named("loop") == []
