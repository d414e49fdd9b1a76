"""Managed background task execution.

Responsibilities:
- Run detached pipeline work (background chunking, chunk narration) on a
  bounded thread pool.
- Track in-flight futures per document so callers and tests can wait for
  completion deterministically.
- Log task failures instead of letting them vanish with the thread.
"""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, wait
import threading
import time
from typing import Any, Callable

from ..telemetry.logger import RunLogger


class TaskSupervisor:
    """Thread-pool supervisor that tracks in-flight work per document."""

    def __init__(self, run_logger: RunLogger, max_workers: int = 4) -> None:
        self.run_logger = run_logger
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="audiotale-task"
        )
        self._lock = threading.Lock()
        self._in_flight: dict[int, set[Future[Any]]] = defaultdict(set)
        self._closed = False

    def submit(
        self,
        document_id: int,
        label: str,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Future[Any]:
        """Schedule `fn` for `document_id` and return its future."""

        with self._lock:
            if self._closed:
                raise RuntimeError("Task supervisor is shut down.")
            future = self._executor.submit(fn, *args, **kwargs)
            self._in_flight[document_id].add(future)

        def _on_done(done: Future[Any]) -> None:
            # Log before untracking so a returning `wait` has seen the failure.
            if not done.cancelled() and (error := done.exception()) is not None:
                self.run_logger.log_stage_failure(
                    f"task:{label}", type(error).__name__, document_id=document_id
                )
            with self._lock:
                futures = self._in_flight.get(document_id)
                if futures is not None:
                    futures.discard(done)
                    if not futures:
                        del self._in_flight[document_id]

        future.add_done_callback(_on_done)
        return future

    def in_flight(self, document_id: int | None = None) -> int:
        """Return the number of unfinished tasks, optionally for one document."""

        with self._lock:
            if document_id is not None:
                return len(self._in_flight.get(document_id, ()))
            return sum(len(futures) for futures in self._in_flight.values())

    def wait(self, document_id: int | None = None, timeout: float | None = None) -> bool:
        """Block until tracked tasks finish; return `False` on timeout.

        `timeout` bounds the whole call. Tasks submitted while waiting are
        picked up by the next loop pass.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                if document_id is not None:
                    pending = set(self._in_flight.get(document_id, ()))
                else:
                    pending = {f for futures in self._in_flight.values() for f in futures}
            if not pending:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            unfinished = {future for future in pending if not future.done()}
            if not unfinished:
                # Done callbacks are still untracking these futures.
                time.sleep(0.001)
                continue
            _done, not_done = wait(unfinished, timeout=remaining)
            if not_done:
                return False

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait_for_tasks)
