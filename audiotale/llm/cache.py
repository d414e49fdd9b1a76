"""In-memory response cache for text-understanding calls.

Responsibilities:
- Build stable keys from provider, model, operation, and normalized input.
- Let one pipeline context reuse character lists and attributions for text it
  has already analyzed.
- Track hits and misses so tests can observe reuse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from hashlib import sha256
import json
import threading
from typing import Any


def _normalize_identity_value(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split())
    if isinstance(value, (list, tuple)):
        return [_normalize_identity_value(item) for item in value]
    if isinstance(value, dict):
        return {
            str(key): _normalize_identity_value(value[key])
            for key in sorted(value.keys(), key=str)
        }
    return value


@dataclass(slots=True)
class ResponseCache:
    """Thread-safe cache keyed by provider/model/operation/input identity."""

    entries: dict[str, str] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @staticmethod
    def make_key(
        *,
        provider: str,
        model: str,
        operation: str,
        input_identity: Any,
    ) -> str:
        """Build a deterministic key ending in the sha256 of the normalized identity."""

        canonical_identity = json.dumps(
            _normalize_identity_value(input_identity),
            sort_keys=True,
            ensure_ascii=True,
            separators=(",", ":"),
        )
        identity_hash = sha256(canonical_identity.encode("utf-8")).hexdigest()
        return (
            f"response:{provider.strip().lower()}:{model.strip()}:"
            f"{operation.strip().lower()}:{identity_hash}"
        )

    def get(self, cache_key: str) -> str | None:
        with self._lock:
            if cache_key in self.entries:
                self.hits += 1
                return self.entries[cache_key]
            self.misses += 1
            return None

    def set(self, cache_key: str, value: str) -> None:
        with self._lock:
            self.entries[cache_key] = value
