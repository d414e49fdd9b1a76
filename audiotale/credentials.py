"""Secure credential storage for provider API keys.

Responsibilities:
- Persist OpenAI and sound-generation API keys in the OS keyring.
- Provide deterministic read/write/delete operations per provider.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `CredentialStore`: interface for provider credential persistence.
- `KeyringCredentialStore`: keyring-backed implementation.
"""

from __future__ import annotations

from dataclasses import dataclass

import keyring
from keyring.errors import KeyringError, NoKeyringError, PasswordDeleteError

from .config import PROVIDER_ELEVENLABS, PROVIDER_OPENAI


_DEFAULT_SERVICE_NAME = "audiotale"
_ACCOUNT_NAMES = {
    PROVIDER_OPENAI: "openai_api_key",
    PROVIDER_ELEVENLABS: "elevenlabs_api_key",
}


class CredentialStore:
    """Interface for secure provider credential operations."""

    def is_available(self) -> bool:
        raise NotImplementedError

    def get_api_key(self, provider: str) -> str | None:
        raise NotImplementedError

    def set_api_key(self, provider: str, api_key: str) -> None:
        raise NotImplementedError

    def clear_api_key(self, provider: str) -> bool:
        raise NotImplementedError

    def secure_values(self) -> dict[str, str]:
        """Return stored keys mapped to their config field names."""

        values: dict[str, str] = {}
        for provider, account in _ACCOUNT_NAMES.items():
            stored = self.get_api_key(provider)
            if stored is not None:
                values[account] = stored
        return values


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Secure credential store backed by the `keyring` package."""

    service_name: str = _DEFAULT_SERVICE_NAME

    def is_available(self) -> bool:
        """Return `False` when no usable keyring backend is configured."""

        backend = keyring.get_keyring()
        priority = getattr(backend, "priority", 0)
        return priority is not None and priority > 0

    def get_api_key(self, provider: str) -> str | None:
        """Get a normalized API key, returning `None` when missing or unavailable."""

        try:
            value = keyring.get_password(self.service_name, _account_for(provider))
        except NoKeyringError:
            return None
        if value is None:
            return None
        return value.strip() or None

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist a normalized API key."""

        normalized = api_key.strip()
        if not normalized:
            raise ValueError("API key must be a non-empty string.")
        try:
            keyring.set_password(self.service_name, _account_for(provider), normalized)
        except KeyringError as exc:
            raise RuntimeError(
                "Secure credential storage is unavailable. Configure a keyring backend "
                "or use environment variables instead."
            ) from exc

    def clear_api_key(self, provider: str) -> bool:
        """Remove a stored API key and report whether one was present."""

        if self.get_api_key(provider) is None:
            return False
        try:
            keyring.delete_password(self.service_name, _account_for(provider))
        except PasswordDeleteError:
            return False
        return True


def _account_for(provider: str) -> str:
    try:
        return _ACCOUNT_NAMES[provider]
    except KeyError as exc:
        supported = ", ".join(sorted(_ACCOUNT_NAMES))
        raise ValueError(f"Unknown provider `{provider}`; supported: {supported}.") from exc


def create_credential_store() -> CredentialStore:
    """Create the default secure credential store implementation."""

    return KeyringCredentialStore()
