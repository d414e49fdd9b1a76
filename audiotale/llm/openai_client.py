"""OpenAI HTTP clients for text understanding and speech synthesis.

Responsibilities:
- Send chat-completions requests and return the first assistant message text.
- Send speech requests with voice, style instructions, and output format.
- Raise `ProviderError` for every failure so callers can apply fallbacks.
"""

from __future__ import annotations

import json
from typing import Any

from .http_client import ProviderError, ProviderHTTPClient
from .rate_limiter import RateLimiter


OPENAI_BASE_URL = "https://api.openai.com/v1"


class _OpenAIBaseClient(ProviderHTTPClient):
    provider_name = "openai"
    provider_label = "OpenAI"
    api_key_hint = (
        "Set `OPENAI_API_KEY`, pass `--openai-api-key`, or run "
        "`audiotale credentials --provider openai`."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = OPENAI_BASE_URL,
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
        return {"Authorization": f"Bearer {self.api_key}"}


class OpenAIChatClient(_OpenAIBaseClient):
    """Minimal requests-based OpenAI chat-completions client."""

    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        timeout_seconds: float | None = None,
    ) -> str:
        """Return the first assistant text response from a chat-completions request."""

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
        }
        raw_payload = self._post_json_bytes(
            endpoint_path="/chat/completions",
            payload=payload,
            timeout_seconds=timeout_seconds,
        ).decode("utf-8", errors="replace")
        return self._extract_message_text(raw_payload)

    @staticmethod
    def _extract_message_text(raw_payload: str) -> str:
        try:
            payload = json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                "OpenAI returned invalid JSON payload.", provider="openai"
            ) from exc

        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices:
            raise ProviderError(
                "OpenAI response missing non-empty `choices` list.", provider="openai"
            )
        first_choice = choices[0]
        message = first_choice.get("message") if isinstance(first_choice, dict) else None
        if not isinstance(message, dict):
            raise ProviderError(
                "OpenAI response missing `choices[0].message` object.", provider="openai"
            )
        text = OpenAIChatClient._message_content_to_text(message.get("content")).strip()
        if not text:
            raise ProviderError("OpenAI response message content is empty.", provider="openai")
        return text

    @staticmethod
    def _message_content_to_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                item["text"]
                for item in content
                if isinstance(item, dict)
                and item.get("type") == "text"
                and isinstance(item.get("text"), str)
            )
        return ""


class OpenAISpeechClient(_OpenAIBaseClient):
    """Minimal requests-based OpenAI speech client."""

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
        """Return synthesized audio bytes from `/audio/speech`."""

        payload: dict[str, Any] = {
            "model": model,
            "voice": voice,
            "input": text,
            "response_format": response_format,
            "speed": speed,
        }
        if instructions:
            payload["instructions"] = instructions
        return self._post_json_bytes(
            endpoint_path="/audio/speech",
            payload=payload,
            require_non_empty_response=True,
        )
