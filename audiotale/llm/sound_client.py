"""ElevenLabs sound-generation HTTP client.

Responsibilities:
- Generate short sound effects and music beds from a text description.
- Share transport, timeout, and error mapping with the OpenAI clients.
"""

from __future__ import annotations

from .http_client import ProviderHTTPClient
from .rate_limiter import RateLimiter


ELEVENLABS_BASE_URL = "https://api.elevenlabs.io/v1"
MIN_SOUND_SECONDS = 0.5
MAX_SOUND_SECONDS = 22.0


class SoundGenerationClient(ProviderHTTPClient):
    """Client for the `/sound-generation` endpoint."""

    provider_name = "elevenlabs"
    provider_label = "ElevenLabs"
    api_key_hint = (
        "Set `XI_API_KEY`, pass `--elevenlabs-api-key`, or run "
        "`audiotale credentials --provider elevenlabs`."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = ELEVENLABS_BASE_URL,
        timeout_seconds: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            rate_limiter=rate_limiter,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key, "Accept": "audio/mpeg"}

    def generate_sound(
        self,
        *,
        text: str,
        duration_seconds: float,
        prompt_influence: float,
    ) -> bytes:
        """Return MP3 bytes for `text`, clamping duration to the provider range."""

        duration = min(MAX_SOUND_SECONDS, max(MIN_SOUND_SECONDS, duration_seconds))
        payload = {
            "text": text,
            "duration_seconds": round(duration, 2),
            "prompt_influence": min(1.0, max(0.0, prompt_influence)),
        }
        return self._post_json_bytes(
            endpoint_path="/sound-generation",
            payload=payload,
            require_non_empty_response=True,
        )
