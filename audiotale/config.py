"""Configuration model and loaders for audiotale.

Responsibilities:
- Define pipeline settings (storage, chunking, providers, mixing, worker pacing)
  as a typed dataclass.
- Resolve provider API keys with deterministic source precedence.
- Provide loader entry points for YAML- and environment-based configuration.

Key types:
- `AudiotaleConfig`: normalized settings shared by every pipeline component.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `AudiotaleConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import normalize_optional_string, parse_required_boolean


PROVIDER_OPENAI = "openai"
PROVIDER_ELEVENLABS = "elevenlabs"

_API_KEY_ENV = {
    PROVIDER_OPENAI: "OPENAI_API_KEY",
    PROVIDER_ELEVENLABS: "XI_API_KEY",
}
_API_KEY_FIELD = {
    PROVIDER_OPENAI: "openai_api_key",
    PROVIDER_ELEVENLABS: "elevenlabs_api_key",
}


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class AudiotaleConfig:
    """Settings for one audiotale process.

    Attributes:
        data_dir: Root for the default SQLite file, work directories, and outputs.
        database_url: SQLAlchemy URL; defaults to a SQLite file under `data_dir`.
        chunk_size_chars: Code points per chunk.
        chunk_batch_size: Chunk rows written per transaction.
        preview_limit_chars: Maximum stored document preview length.
        async_threshold_bytes: Source size above which chunking runs in the background.
        async_threshold_chunks: Estimated chunk count above which chunking runs in the background.
        group_text_limit_bytes: Maximum UTF-8 size of a merge request's combined text.
        tts_max_input_chars: Maximum characters sent in one speech request.
        chat_model: Text-understanding model for attribution, moods, and cues.
        tts_model: Speech model.
        audio_format: Container/codec extension for clips and artifacts.
        narrator_voice: Voice for the Narrator speaker.
        fallback_voice: Voice for unknown non-narrator speakers.
        base_clip_seconds: Length of a generated music bed and of fallback mood segments.
        bed_volume: Attenuation applied while looping the music bed.
        background_mix_volume: Gain of the background track in the final mix.
        foley_volume: Gain of every foley cue.
        chat_timeout_seconds: Timeout for short text-understanding requests.
        dialogue_timeout_seconds: Timeout for dialogue attribution requests.
        mood_timeout_seconds: Timeout for mood segmentation requests.
        speech_timeout_seconds: Timeout for one speech request.
        sound_timeout_seconds: Timeout for one sound-generation request.
        media_timeout_seconds: Timeout for each media subprocess.
        extract_timeout_seconds: Timeout for extraction subprocesses.
        worker_idle_seconds: Queue worker sleep when no job is queued.
        worker_backoff_seconds: Queue worker sleep after a datastore error.
        max_background_tasks: Thread pool size of the task supervisor.
        share_cache_across_documents: Reuse artifacts of documents with identical text.
        openai_api_key: Optional OpenAI key (lowest precedence).
        elevenlabs_api_key: Optional sound-generation key (lowest precedence).
        runtime_sources: Runtime source overrides injected by the CLI.
    """

    data_dir: Path = Path("audiotale-data")
    database_url: str | None = None
    chunk_size_chars: int = 1000
    chunk_batch_size: int = 500
    preview_limit_chars: int = 100_000
    async_threshold_bytes: int = 5 * 1024 * 1024
    async_threshold_chunks: int = 1000
    group_text_limit_bytes: int = 2000
    tts_max_input_chars: int = 4096
    chat_model: str = "gpt-4o"
    tts_model: str = "gpt-4o-mini-tts"
    audio_format: str = "mp3"
    narrator_voice: str = "alloy"
    fallback_voice: str = "nova"
    base_clip_seconds: float = 22.0
    bed_volume: float = 0.30
    background_mix_volume: float = 0.3
    foley_volume: float = 0.45
    chat_timeout_seconds: float = 30.0
    dialogue_timeout_seconds: float = 45.0
    mood_timeout_seconds: float = 60.0
    speech_timeout_seconds: float = 120.0
    sound_timeout_seconds: float = 60.0
    media_timeout_seconds: float = 120.0
    extract_timeout_seconds: float = 120.0
    worker_idle_seconds: float = 5.0
    worker_backoff_seconds: float = 10.0
    max_background_tasks: int = 4
    share_cache_across_documents: bool = True
    openai_api_key: str | None = None
    elevenlabs_api_key: str | None = None
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate settings before any component is constructed."""

        for name in (
            "chunk_size_chars",
            "chunk_batch_size",
            "preview_limit_chars",
            "async_threshold_bytes",
            "async_threshold_chunks",
            "group_text_limit_bytes",
            "tts_max_input_chars",
            "max_background_tasks",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be a positive integer.")
        if self.chunk_size_chars > self.tts_max_input_chars:
            raise ValueError(
                "`chunk_size_chars` must not exceed `tts_max_input_chars`; a chunk is "
                "narrated as one speech request when dialogue attribution falls back."
            )
        for name in (
            "base_clip_seconds",
            "chat_timeout_seconds",
            "dialogue_timeout_seconds",
            "mood_timeout_seconds",
            "speech_timeout_seconds",
            "sound_timeout_seconds",
            "media_timeout_seconds",
            "extract_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be a positive number.")
        for name in ("bed_volume", "background_mix_volume", "foley_volume"):
            value = getattr(self, name)
            if value < 0 or value > 1:
                raise ValueError(f"`{name}` must be within 0.0-1.0.")
        for name in ("worker_idle_seconds", "worker_backoff_seconds"):
            if getattr(self, name) < 0:
                raise ValueError(f"`{name}` must not be negative.")
        for name in ("chat_model", "tts_model", "audio_format", "narrator_voice", "fallback_voice"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"`{name}` must be a non-empty string.")

    def resolved_database_url(self) -> str:
        """Return the configured database URL or the default SQLite file URL."""

        explicit = normalize_optional_string(self.database_url)
        if explicit is not None:
            return explicit
        return f"sqlite:///{(self.data_dir / 'audiotale.db').as_posix()}"

    def resolve_api_key(self, provider: str) -> str | None:
        """Resolve a provider key with precedence `cli` > `secure` > `env` > config value.

        A missing key is not an error here; clients raise when a request needs it.
        """

        if provider not in _API_KEY_FIELD:
            raise ValueError(f"Unknown provider `{provider}`.")
        key_name = _API_KEY_FIELD[provider]
        sources = self.runtime_sources
        for mapping, lookup_key in (
            (sources.cli, key_name),
            (sources.secure, key_name),
            (sources.env, _API_KEY_ENV[provider]),
        ):
            value = normalize_optional_string(mapping.get(lookup_key))
            if value is not None:
                return value
        return normalize_optional_string(getattr(self, key_name))

    def with_runtime_sources(self, sources: RuntimeConfigSources) -> AudiotaleConfig:
        """Return a copy that resolves keys against `sources`."""

        return replace(self, runtime_sources=sources)


_INT_KEYS = frozenset(
    {
        "chunk_size_chars",
        "chunk_batch_size",
        "preview_limit_chars",
        "async_threshold_bytes",
        "async_threshold_chunks",
        "group_text_limit_bytes",
        "tts_max_input_chars",
        "max_background_tasks",
    }
)
_FLOAT_KEYS = frozenset(
    {
        "base_clip_seconds",
        "bed_volume",
        "background_mix_volume",
        "foley_volume",
        "chat_timeout_seconds",
        "dialogue_timeout_seconds",
        "mood_timeout_seconds",
        "speech_timeout_seconds",
        "sound_timeout_seconds",
        "media_timeout_seconds",
        "extract_timeout_seconds",
        "worker_idle_seconds",
        "worker_backoff_seconds",
    }
)
_BOOL_KEYS = frozenset({"share_cache_across_documents"})
_PATH_KEYS = frozenset({"data_dir"})
_STRING_KEYS = frozenset(
    {
        "database_url",
        "chat_model",
        "tts_model",
        "audio_format",
        "narrator_voice",
        "fallback_voice",
        "openai_api_key",
        "elevenlabs_api_key",
    }
)


class ConfigLoader:
    """Factory methods for creating `AudiotaleConfig` from external sources."""

    SUPPORTED_KEYS = _INT_KEYS | _FLOAT_KEYS | _BOOL_KEYS | _PATH_KEYS | _STRING_KEYS
    ENV_PREFIX = "AUDIOTALE_"

    @staticmethod
    def from_yaml(path: Path) -> AudiotaleConfig:
        """Create a validated config from a YAML file."""

        raw_text = path.read_text(encoding="utf-8")
        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader.from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> AudiotaleConfig:
        """Create a validated config from `AUDIOTALE_*` environment variables.

        Provider keys are read from `OPENAI_API_KEY` and `XI_API_KEY` and kept as
        the `env` runtime source so they stay below CLI and keyring values.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload: dict[str, Any] = {}
        for key in ConfigLoader.SUPPORTED_KEYS:
            if key in _API_KEY_FIELD.values():
                continue
            env_key = f"{ConfigLoader.ENV_PREFIX}{key.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[key] = value

        config = ConfigLoader.from_mapping(payload, source_label="environment")
        runtime_env = {
            env_key: value
            for env_key in _API_KEY_ENV.values()
            if (value := normalize_optional_string(env_map.get(env_key))) is not None
        }
        return config.with_runtime_sources(RuntimeConfigSources(env=runtime_env))

    @staticmethod
    def from_mapping(payload: Mapping[str, Any], source_label: str) -> AudiotaleConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader.SUPPORTED_KEYS))
        if unknown:
            raise ValueError(f"{source_label} includes unsupported key(s): {', '.join(unknown)}.")

        values: dict[str, Any] = {}
        for key, raw_value in payload.items():
            if key in _INT_KEYS:
                values[key] = ConfigLoader._parse_int(raw_value, key, source_label)
            elif key in _FLOAT_KEYS:
                values[key] = ConfigLoader._parse_float(raw_value, key, source_label)
            elif key in _BOOL_KEYS:
                try:
                    values[key] = parse_required_boolean(raw_value, key)
                except ValueError as exc:
                    raise ValueError(f"{source_label} field {exc}") from exc
            elif key in _PATH_KEYS:
                text = normalize_optional_string(raw_value)
                if text is None:
                    raise ValueError(f"{source_label} requires non-empty `{key}`.")
                values[key] = Path(text)
            else:
                values[key] = normalize_optional_string(raw_value)

        known = {item.name for item in fields(AudiotaleConfig)}
        config = AudiotaleConfig(**{k: v for k, v in values.items() if k in known})
        config.validate()
        return config

    @staticmethod
    def _parse_int(raw_value: object, key: str, source_label: str) -> int:
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be an integer.")
        if isinstance(raw_value, int):
            return raw_value
        try:
            return int(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be an integer.") from exc

    @staticmethod
    def _parse_float(raw_value: object, key: str, source_label: str) -> float:
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a number.")
        if isinstance(raw_value, (int, float)):
            return float(raw_value)
        try:
            return float(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be a number.") from exc
