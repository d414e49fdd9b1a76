"""Shared HTTP plumbing for provider clients.

Responsibilities:
- POST JSON payloads with bounded timeouts through `requests`.
- Map transport and HTTP failures to `ProviderError` with a stable failure kind.
- Redact key-like tokens from provider error bodies.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any

import requests

from .rate_limiter import RateLimiter


class ProviderError(RuntimeError):
    """Raised when a provider request fails or returns malformed output."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "provider",
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code


class ProviderHTTPClient:
    """Base class holding credentials, endpoint, timeout, and pacing for one provider."""

    provider_name = "provider"
    provider_label = "Provider"
    api_key_hint = "Configure an API key."
    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        timeout_seconds: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter

    def _auth_headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _require_api_key(self) -> None:
        """Fail at the call that needs credentials, never at startup."""

        if not self.api_key:
            raise ProviderError(
                f"Missing {self.provider_label} API key. {self.api_key_hint}",
                provider=self.provider_name,
                failure_kind="invalid_api_key",
            )

    def _post_json_bytes(
        self,
        *,
        endpoint_path: str,
        payload: dict[str, Any],
        timeout_seconds: float | None = None,
        require_non_empty_response: bool = False,
    ) -> bytes:
        """POST `payload` and return the raw response body."""

        self._require_api_key()
        if self.rate_limiter is not None:
            self.rate_limiter.acquire(f"{self.provider_name}:{endpoint_path}")

        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                json=payload,
                timeout=timeout_seconds or self.timeout_seconds,
            )
            response.raise_for_status()
            response_bytes = bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = f"{self.provider_label} request timed out."
            else:
                detail = (
                    f"{self.provider_label} request transport error: "
                    f"{self._short_message(str(exc))}"
                )
            raise ProviderError(
                detail, provider=self.provider_name, failure_kind=failure_kind
            ) from exc
        except TimeoutError as exc:
            raise ProviderError(
                f"{self.provider_label} request timed out.",
                provider=self.provider_name,
                failure_kind="timeout",
            ) from exc

        if require_non_empty_response and not response_bytes:
            raise ProviderError(
                f"{self.provider_label} response is empty.",
                provider=self.provider_name,
                failure_kind="empty_response",
            )
        return response_bytes

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        response = exc.response
        if response is None:
            return ""
        return bytes(response.content or b"").decode("utf-8", errors="replace").strip()

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        return re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )

    @classmethod
    def _short_message(cls, text: str) -> str:
        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise message and optional error code from an error body.

        Understands both `{"error": {"message", "code"}}` and
        `{"detail": {"message", "status"}}` shaped payloads.
        """

        if not body:
            return "", None
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error")
            if not isinstance(error_payload, dict):
                error_payload = payload.get("detail")
            if isinstance(error_payload, dict):
                code_value = error_payload.get("code") or error_payload.get("status")
                if isinstance(code_value, str) and code_value.strip():
                    provider_code = code_value.strip()
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()
            elif isinstance(error_payload, str) and error_payload.strip():
                message = error_payload.strip()
        if message is None:
            message = body
        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @staticmethod
    def _classify_http_failure(
        status_code: int, provider_message: str, provider_code: str | None
    ) -> str:
        message_lower = provider_message.lower()
        normalized_code = provider_code.lower() if provider_code is not None else ""

        if status_code == 401 or "api key" in message_lower:
            return "invalid_api_key"
        if normalized_code in {"insufficient_quota", "quota_exceeded"} or (
            status_code == 429 and "quota" in message_lower
        ):
            return "insufficient_quota"
        if status_code == 429:
            return "rate_limited"
        if normalized_code == "model_not_found":
            return "invalid_model"
        if status_code in {408, 504} or "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        if isinstance(reason, (TimeoutError, socket.timeout, requests.Timeout)):
            return "timeout"
        return "transport"

    def _http_error_to_provider_error(self, exc: requests.HTTPError) -> ProviderError:
        status_code = exc.response.status_code if exc.response is not None else 0
        body = self._decode_error_body(exc)
        provider_message, provider_code = self._extract_provider_message(body)
        failure_kind = self._classify_http_failure(status_code, provider_message, provider_code)

        headline = {
            "invalid_api_key": f"{self.provider_label} authentication failed",
            "insufficient_quota": f"{self.provider_label} quota is insufficient",
            "rate_limited": f"{self.provider_label} rate limit reached",
            "invalid_model": f"{self.provider_label} rejected the selected model",
            "timeout": f"{self.provider_label} request timed out",
        }.get(failure_kind, f"{self.provider_label} request failed")
        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."
        return ProviderError(
            detail,
            provider=self.provider_name,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )
