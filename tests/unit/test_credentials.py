"""Unit tests for secure credential store helpers."""

from __future__ import annotations

import pytest
from keyring.errors import NoKeyringError, PasswordSetError

from audiotale import credentials
from audiotale.credentials import KeyringCredentialStore


class FakeKeyringModule:
    """In-memory keyring stub for deterministic credential store tests."""

    def __init__(self) -> None:
        """Initialize fake storage dictionary."""

        self._storage: dict[tuple[str, str], str] = {}

    def get_password(self, service_name: str, account_name: str) -> str | None:
        """Return previously stored password if present."""

        return self._storage.get((service_name, account_name))

    def set_password(self, service_name: str, account_name: str, value: str) -> None:
        """Store password value for the service/account key."""

        self._storage[(service_name, account_name)] = value

    def delete_password(self, service_name: str, account_name: str) -> None:
        """Delete password value for the service/account key."""

        self._storage.pop((service_name, account_name), None)


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyringModule:
    """Route the credentials module's keyring calls to an in-memory fake."""

    fake = FakeKeyringModule()
    monkeypatch.setattr(credentials.keyring, "get_password", fake.get_password)
    monkeypatch.setattr(credentials.keyring, "set_password", fake.set_password)
    monkeypatch.setattr(credentials.keyring, "delete_password", fake.delete_password)
    return fake


def test_keyring_store_roundtrip_set_get_clear(fake_keyring: FakeKeyringModule) -> None:
    """Keyring store should set/get/clear API key values per provider."""

    store = KeyringCredentialStore()

    assert store.get_api_key("openai") is None

    store.set_api_key("openai", "  abc123  ")
    assert store.get_api_key("openai") == "abc123"
    assert store.get_api_key("elevenlabs") is None
    assert fake_keyring._storage == {("audiotale", "openai_api_key"): "abc123"}

    assert store.clear_api_key("openai") is True
    assert store.get_api_key("openai") is None
    assert store.clear_api_key("openai") is False


def test_secure_values_map_to_config_field_names(fake_keyring: FakeKeyringModule) -> None:
    """Stored keys are exposed under the names config resolution expects."""

    store = KeyringCredentialStore()
    store.set_api_key("elevenlabs", "xi-secret")

    assert store.secure_values() == {"elevenlabs_api_key": "xi-secret"}


def test_keyring_store_rejects_blank_keys_and_unknown_providers(
    fake_keyring: FakeKeyringModule,
) -> None:
    """Blank keys and unknown providers are caller errors."""

    store = KeyringCredentialStore()

    with pytest.raises(ValueError, match="non-empty"):
        store.set_api_key("openai", "   ")
    with pytest.raises(ValueError, match="Unknown provider"):
        store.get_api_key("acme")


def test_keyring_store_degrades_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing keyring backend reads as "no key stored"."""

    def _no_backend(service_name: str, account_name: str) -> str | None:
        """Simulate a system without any keyring backend."""

        _ = (service_name, account_name)
        raise NoKeyringError("no backend")

    monkeypatch.setattr(credentials.keyring, "get_password", _no_backend)
    store = KeyringCredentialStore()

    assert store.get_api_key("openai") is None
    assert store.clear_api_key("openai") is False
    assert store.secure_values() == {}


def test_keyring_store_reports_write_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    """Backend write errors become an actionable runtime error."""

    def _refuse(service_name: str, account_name: str, value: str) -> None:
        """Simulate a locked keyring."""

        _ = (service_name, account_name, value)
        raise PasswordSetError("locked")

    monkeypatch.setattr(credentials.keyring, "set_password", _refuse)

    with pytest.raises(RuntimeError, match="Secure credential storage is unavailable"):
        KeyringCredentialStore().set_api_key("openai", "abc")
