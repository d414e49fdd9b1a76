"""Foley cue extraction and overlay.

Responsibilities:
- Hold the closed vocabulary of sound events and their studio prompts.
- Extract timed cues from an excerpt, discarding anything outside the vocabulary.
- Generate (once) and cache one short clip per event identifier.
- Overlay every resolvable cue onto a base track at its offset.
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Mapping

from ..io.storage import ArtifactStore
from ..llm.character_analyzer import ChatClient
from ..llm.http_client import ProviderError
from ..llm.payloads import PayloadError, parse_event_map
from ..llm.prompts import PromptLibrary
from ..models.datatypes import EventExtraction
from ..parsing import coerce_finite_float
from ..telemetry.logger import RunLogger
from .media import MediaTool, MediaToolError, MixInput


FOLEY_EXCERPT_CHARS = 800
CLIP_PROMPT_INFLUENCE = 0.8
DEFAULT_CLIP_SECONDS = 2.0
MIN_CLIP_SECONDS = 0.5
MAX_CLIP_SECONDS = 5.0

FOLEY_VOCABULARY: Mapping[str, str] = {
    # combat
    "sword_clash": "High-quality foley recording of metal swords clashing together, single sharp impact with metallic ring, studio quality, 1.5 seconds",
    "sword_draw": "Professional foley of sword being drawn from leather sheath, metallic scrape sound, clean recording, 1 second",
    "sword_swing": "Whooshing sound of sword swinging through air, professional foley, clean audio, 1 second",
    "punch": "Heavy punch impact on body, professional foley sound effect, single hit, 0.5 seconds",
    "body_fall": "Body falling and hitting ground, thud impact, professional recording, 1 second",
    "armor_clank": "Metal armor clanking and rattling, professional foley, 1 second",
    # doors and movement
    "door_creak": "Old wooden door creaking open slowly, atmospheric horror style, professional foley, 2 seconds",
    "door_slam": "Heavy wooden door slamming shut, single impact, professional recording, 1 second",
    "door_knock": "Three firm knocks on wooden door, professional foley, 1.5 seconds",
    "footsteps": "Single footstep on stone floor, professional foley recording, 0.5 seconds",
    "running": "Running footsteps on gravel path, professional foley, 2 seconds",
    # nature and weather
    "thunder": "Deep rolling thunder rumble, dramatic storm sound, professional recording, 3 seconds",
    "lightning": "Sharp lightning crack followed by rumble, professional audio, 2 seconds",
    "rain": "Heavy rain falling on roof, atmospheric, professional recording, 3 seconds",
    "wind": "Strong wind blowing through trees, atmospheric, 3 seconds",
    "fire_crackling": "Campfire crackling and popping, warm ambient sound, 3 seconds",
    "water_splash": "Large splash in water, professional foley, 1 second",
    # animals
    "horse_gallop": "Horse galloping on dirt road, hooves pounding, professional recording, 2 seconds",
    "horse_neigh": "Horse neighing loudly, single whinny, professional animal recording, 1.5 seconds",
    "wolf_howl": "Wolf howling in distance, atmospheric, professional recording, 3 seconds",
    "crow_caw": "Crow cawing ominously, single call, 1 second",
    "dog_bark": "Dog barking aggressively, single bark, 0.5 seconds",
    # atmosphere
    "crowd_murmur": "Distant crowd murmuring in tavern, ambient background, 3 seconds",
    "glass_break": "Glass shattering on impact, professional foley, 1 second",
    "chains_rattle": "Metal chains rattling and clinking, dungeon atmosphere, 2 seconds",
    "bell_toll": "Deep church bell tolling once, reverberant, 3 seconds",
    "heartbeat": "Dramatic heartbeat sound, tense atmosphere, 2 seconds",
    # fantasy
    "magic_spell": "Mystical magical spell casting sound, whoosh with sparkle, 1.5 seconds",
    "explosion": "Distant explosion boom, rumbling aftermath, professional recording, 2 seconds",
    "arrow_flight": "Arrow whooshing through air, single projectile, professional foley, 1 second",
    "arrow_impact": "Arrow hitting wooden target, thunk impact, 0.5 seconds",
    # human
    "scream": "Distant human scream of terror, male voice, 1.5 seconds",
    "gasp": "Sharp intake of breath, surprised gasp, 0.5 seconds",
    "whisper": "Eerie whispered voices, atmospheric, 2 seconds",
    "laughter": "Sinister low laughter, creepy atmosphere, 2 seconds",
}

_DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*seconds?\b")


def clip_duration_for(prompt: str) -> float:
    """Read the clip length stated in a prompt, clamped to the foley range."""

    matches = _DURATION_PATTERN.findall(prompt)
    duration = float(matches[-1]) if matches else DEFAULT_CLIP_SECONDS
    return min(MAX_CLIP_SECONDS, max(MIN_CLIP_SECONDS, duration))


class FoleyClipCache:
    """Thread-safe event-to-clip map; the first stored path for an event wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: dict[str, Path] = {}

    def get(self, event: str) -> Path | None:
        with self._lock:
            path = self._paths.get(event)
        if path is not None and not path.exists():
            return None
        return path

    def put(self, event: str, path: Path) -> Path:
        with self._lock:
            existing = self._paths.get(event)
            if existing is not None and existing.exists():
                return existing
            self._paths[event] = path
            return path

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


class FoleyMixer:
    """Extract foley cues and lay their clips over a mixed track."""

    def __init__(
        self,
        *,
        chat_client: ChatClient,
        sound_client,
        media: MediaTool,
        store: ArtifactStore,
        run_logger: RunLogger,
        clip_cache: FoleyClipCache | None = None,
        model: str = "gpt-4o",
        audio_format: str = "mp3",
        volume: float = 0.45,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.chat_client = chat_client
        self.sound_client = sound_client
        self.media = media
        self.store = store
        self.run_logger = run_logger
        self.clip_cache = clip_cache if clip_cache is not None else FoleyClipCache()
        self.model = model
        self.audio_format = audio_format
        self.volume = volume
        self.timeout_seconds = timeout_seconds
        self.prompts = PromptLibrary()

    def extract_events(self, excerpt: str, duration_seconds: float) -> EventExtraction:
        """Return vocabulary cues placed within `[0, duration_seconds]`.

        Provider or payload failures yield an empty extraction.
        """

        try:
            raw = self.chat_client.chat_completion_text(
                model=self.model,
                system_prompt=self.prompts.foley_system_prompt(),
                user_prompt=self.prompts.foley_user_prompt(
                    excerpt[:FOLEY_EXCERPT_CHARS], duration_seconds, FOLEY_VOCABULARY
                ),
                temperature=0.7,
                timeout_seconds=self.timeout_seconds,
            )
            payload = parse_event_map(raw)
        except (ProviderError, PayloadError) as exc:
            self.run_logger.log_warning("foley", "extraction_failed", reason=type(exc).__name__)
            return EventExtraction()

        events: dict[str, list[float]] = {}
        discarded: list[str] = []
        for event, offsets in payload.items():
            if event not in FOLEY_VOCABULARY:
                discarded.append(str(event))
                self.run_logger.log_warning("foley", "unknown_event", cue=event)
                continue
            if not isinstance(offsets, list):
                offsets = [offsets]
            accepted = sorted(
                value
                for value in (coerce_finite_float(offset) for offset in offsets)
                if value is not None and 0.0 <= value <= duration_seconds
            )
            if accepted:
                events[event] = accepted
        extraction = EventExtraction(events=events, discarded=tuple(discarded))
        self.run_logger.log_event(
            "foley", "events", cues=extraction.cue_count, discarded=len(discarded)
        )
        return extraction

    def clip_for(self, event: str) -> Path:
        """Return the cached clip for `event`, generating it on first use.

        Raises:
            KeyError: `event` is outside the vocabulary.
            ProviderError: The clip could not be generated.
        """

        prompt = FOLEY_VOCABULARY[event]
        cached = self.clip_cache.get(event)
        if cached is not None:
            return cached
        audio = self.sound_client.generate_sound(
            text=prompt,
            duration_seconds=clip_duration_for(prompt),
            prompt_influence=CLIP_PROMPT_INFLUENCE,
        )
        path = self.store.save_audio(
            self.store.foley_dir / f"foley_{event}.{self.audio_format}", audio
        )
        return self.clip_cache.put(event, path)

    def overlay(self, base: Path, extraction: EventExtraction, output: Path) -> Path:
        """Mix each cue's clip onto `base`; the base track sets the duration."""

        inputs = [MixInput(path=base, volume=1.0)]
        for event, offsets in sorted(extraction.events.items()):
            try:
                clip = self.clip_for(event)
            except (KeyError, ProviderError) as exc:
                self.run_logger.log_warning(
                    "foley", "clip_skipped", cue=event, reason=type(exc).__name__
                )
                continue
            inputs.extend(
                MixInput(path=clip, volume=self.volume, delay_seconds=offset)
                for offset in offsets
            )

        if len(inputs) == 1:
            return self.media.concat([base], output)
        try:
            return self.media.mix(inputs, output)
        except MediaToolError:
            self.run_logger.log_stage_failure("foley", "MediaToolError", cues=len(inputs) - 1)
            raise
