"""Provider request pacing.

Responsibilities:
- Enforce a minimum interval between requests that share a key.
- Stay safe to call from the supervisor's worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from time import monotonic, sleep
from typing import Callable


@dataclass(slots=True)
class RateLimiter:
    """Per-key minimum-interval limiter shared by provider clients."""

    min_interval_seconds: float = 0.05
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    _next_allowed_at: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def acquire(self, key: str) -> None:
        """Block until `key` may issue its next request.

        The slot is reserved under the lock and the sleep happens outside it,
        so waiting on one key never delays another.
        """

        if self.min_interval_seconds <= 0.0:
            return
        with self._lock:
            now = self.clock()
            slot = max(now, self._next_allowed_at.get(key, 0.0))
            self._next_allowed_at[key] = slot + self.min_interval_seconds
        wait_seconds = slot - now
        if wait_seconds > 0.0:
            self.sleeper(wait_seconds)
