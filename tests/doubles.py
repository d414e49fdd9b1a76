"""Deterministic test doubles for provider clients and the media tool."""

from __future__ import annotations

import json
from pathlib import Path
import threading
from typing import Callable, Sequence

from audiotale.audio.media import MixInput
from audiotale.llm.http_client import ProviderError


TASK_MARKERS = {
    "literary analysis": "characters",
    "dialogue extraction": "dialogue",
    "segmentation": "moods",
    "audio production": "music",
    "foley designer": "foley",
}

DEFAULT_RESPONSES: dict[str, object] = {
    "characters": json.dumps(
        [
            {"name": "Anna", "gender": "female", "age": "adult"},
            {"name": "Tom", "gender": "male", "age": "child"},
        ]
    ),
    "dialogue": json.dumps(
        [
            {"speaker": "Narrator", "text": "The door opened.", "is_dialogue": False},
            {"speaker": "Anna", "text": "\"Who is there?\"", "is_dialogue": True},
            {"speaker": "Tom", "text": "It is me!", "is_dialogue": True},
        ]
    ),
    "moods": "[]",
    "music": "Dark orchestral strings with distant choir, slow tempo",
    "foley": json.dumps({"door_creak": [0.5]}),
}


def task_for(system_prompt: str) -> str:
    lowered = system_prompt.lower()
    for marker, task in TASK_MARKERS.items():
        if marker in lowered:
            return task
    raise AssertionError(f"Unrecognized system prompt: {system_prompt[:60]}")


class ScriptedChatClient:
    """Chat client double answering by task; exceptions in the script are raised."""

    def __init__(self, responses: dict[str, object] | None = None) -> None:
        self.responses = dict(DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.calls: list[dict[str, object]] = []

    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        timeout_seconds: float | None = None,
    ) -> str:
        task = task_for(system_prompt)
        self.calls.append(
            {
                "task": task,
                "model": model,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "timeout_seconds": timeout_seconds,
            }
        )
        response = self.responses[task]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(user_prompt)
        return str(response)

    def tasks(self) -> list[str]:
        return [str(call["task"]) for call in self.calls]


class RecordingSpeechClient:
    """Speech client double returning fake audio bytes.

    It can fail on one call, or hold one call open until `release` is set so
    tests can interleave concurrent runs.
    """

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.fail_on_call = fail_on_call
        self.hold_on_call: int | None = None
        self.holding = threading.Event()
        self.release = threading.Event()
        self.calls: list[dict[str, object]] = []
        self._lock = threading.Lock()

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
        with self._lock:
            self.calls.append(
                {
                    "model": model,
                    "voice": voice,
                    "text": text,
                    "instructions": instructions,
                    "response_format": response_format,
                    "speed": speed,
                }
            )
            number = len(self.calls)
        if number == self.hold_on_call:
            self.holding.set()
            self.release.wait(timeout=10)
        if number == self.fail_on_call:
            raise ProviderError(
                "OpenAI request failed (HTTP 500).",
                provider="openai",
                failure_kind="http_error",
                status_code=500,
            )
        return b"ID3" + text.encode("utf-8")


class RecordingSoundClient:
    """Sound-generation client double; `error` makes every call fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict[str, object]] = []

    def generate_sound(
        self, *, text: str, duration_seconds: float, prompt_influence: float
    ) -> bytes:
        self.calls.append(
            {
                "text": text,
                "duration_seconds": duration_seconds,
                "prompt_influence": prompt_influence,
            }
        )
        if self.error is not None:
            raise self.error
        return b"SFX" + text[:16].encode("utf-8")


class FakeMediaTool:
    """Media tool double writing small files and tracking their durations.

    Unknown inputs (for example synthesized clips) are assumed to last
    `default_duration` seconds.
    """

    def __init__(
        self,
        default_duration: float = 2.0,
        probe: Callable[[Path], float] | None = None,
    ) -> None:
        self.default_duration = default_duration
        self.probe = probe
        self.durations: dict[str, float] = {}
        self.calls: list[tuple[str, object]] = []

    def duration_of(self, path: Path) -> float:
        return self.durations.get(str(path), self.default_duration)

    def _write(self, output: Path, duration: float, payload: bytes = b"audio") -> Path:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(payload)
        self.durations[str(output)] = duration
        return output

    def probe_duration(self, path: Path) -> float:
        self.calls.append(("probe", path))
        if self.probe is not None:
            return self.probe(path)
        return self.duration_of(path)

    def concat(self, inputs: Sequence[Path], output: Path) -> Path:
        if not inputs:
            raise ValueError("Concatenation needs at least one input.")
        self.calls.append(("concat", list(inputs)))
        payload = b"".join(Path(path).read_bytes() for path in inputs)
        return self._write(output, sum(self.duration_of(path) for path in inputs), payload)

    def loop_to_duration(
        self, source: Path, duration_seconds: float, output: Path, volume: float = 1.0
    ) -> Path:
        self.calls.append(("loop", (source, duration_seconds, volume)))
        return self._write(output, duration_seconds)

    def fit_to_duration(self, source: Path, duration_seconds: float, output: Path) -> Path:
        self.calls.append(("fit", (source, duration_seconds)))
        return self._write(output, duration_seconds)

    def mix(self, inputs: Sequence[MixInput], output: Path) -> Path:
        self.calls.append(("mix", list(inputs)))
        return self._write(output, self.duration_of(inputs[0].path))

    def calls_named(self, name: str) -> list[object]:
        return [argument for call_name, argument in self.calls if call_name == name]
