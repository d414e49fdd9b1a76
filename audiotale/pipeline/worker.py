"""Processing queue and its single background consumer.

Responsibilities:
- Store chunk-group jobs durably and hand them out oldest first.
- Claim a job atomically (`queued -> processing`) before doing any work, so
  one job can never run twice.
- Run the consumer loop on one thread with idle and back-off sleeps.
"""

from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..io.database import Database
from ..models.records import JobStatus, ProcessingJobRecord, utcnow
from ..telemetry.logger import RunLogger


class ProcessingQueue:
    """Relational FIFO queue of chunk-group production jobs."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def enqueue(self, document_id: int, start_index: int, end_index: int) -> ProcessingJobRecord:
        with self.database.session_scope() as session:
            job = ProcessingJobRecord(
                document_id=document_id,
                start_index=start_index,
                end_index=end_index,
                status=JobStatus.QUEUED,
            )
            session.add(job)
            session.flush()
            return job

    def find_active(
        self, document_id: int, start_index: int, end_index: int
    ) -> ProcessingJobRecord | None:
        """Return the oldest queued or running job for exactly this range."""

        with self.database.session_scope() as session:
            return session.scalar(
                select(ProcessingJobRecord)
                .where(
                    ProcessingJobRecord.document_id == document_id,
                    ProcessingJobRecord.start_index == start_index,
                    ProcessingJobRecord.end_index == end_index,
                    ProcessingJobRecord.status.in_(JobStatus.ACTIVE),
                )
                .order_by(ProcessingJobRecord.created_at, ProcessingJobRecord.id)
                .limit(1)
            )

    def get(self, job_id: int) -> ProcessingJobRecord | None:
        with self.database.session_scope() as session:
            return session.get(ProcessingJobRecord, job_id)

    def claim_next(self) -> ProcessingJobRecord | None:
        """Claim the oldest queued job, or return `None` when nothing is claimable.

        The claim is a conditional update on `status = 'queued'`; losing a race
        to another claimer shows up as zero affected rows and the next
        candidate is tried.
        """

        while True:
            with self.database.session_scope() as session:
                candidate = session.scalar(
                    select(ProcessingJobRecord.id)
                    .where(ProcessingJobRecord.status == JobStatus.QUEUED)
                    .order_by(ProcessingJobRecord.created_at, ProcessingJobRecord.id)
                    .limit(1)
                )
                if candidate is None:
                    return None
                result = session.execute(
                    update(ProcessingJobRecord)
                    .where(
                        ProcessingJobRecord.id == candidate,
                        ProcessingJobRecord.status == JobStatus.QUEUED,
                    )
                    .values(status=JobStatus.PROCESSING, started_at=utcnow())
                )
                if result.rowcount == 1:
                    return session.get(ProcessingJobRecord, candidate)

    def mark_complete(self, job_id: int, result_path: str) -> None:
        self._finish(job_id, status=JobStatus.COMPLETE, result_path=result_path, error=None)

    def mark_failed(self, job_id: int, error: str) -> None:
        self._finish(job_id, status=JobStatus.FAILED, error=error)

    def _finish(self, job_id: int, **values) -> None:
        with self.database.session_scope() as session:
            session.execute(
                update(ProcessingJobRecord)
                .where(
                    ProcessingJobRecord.id == job_id,
                    ProcessingJobRecord.status == JobStatus.PROCESSING,
                )
                .values(finished_at=utcnow(), **values)
            )


class ProcessingQueueWorker:
    """Single consumer of the processing queue.

    `produce` is called as `produce(document_id, start_index, end_index)` and
    returns the artifact path.
    """

    def __init__(
        self,
        *,
        queue: ProcessingQueue,
        produce: Callable[[int, int, int], str],
        run_logger: RunLogger,
        idle_seconds: float = 5.0,
        backoff_seconds: float = 10.0,
    ) -> None:
        self.queue = queue
        self.produce = produce
        self.run_logger = run_logger
        self.idle_seconds = idle_seconds
        self.backoff_seconds = backoff_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._guard = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_requested(self) -> threading.Event:
        return self._stop_event

    def start(self) -> None:
        """Start the consumer thread.

        Raises:
            RuntimeError: The worker is already running.
        """

        with self._guard:
            if self.running:
                raise RuntimeError("Processing queue worker is already running.")
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="audiotale-queue-worker", daemon=True
            )
            self._thread.start()
        self.run_logger.log_event("worker", "started")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        with self._guard:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self.run_logger.log_event("worker", "stopped")

    def run_once(self) -> ProcessingJobRecord | None:
        """Claim and process at most one job; return the claimed job, if any."""

        job = self.queue.claim_next()
        if job is None:
            return None
        self.run_logger.log_stage_start(
            "job", job_id=job.id, document_id=job.document_id,
            start=job.start_index, end=job.end_index,
        )
        try:
            path = self.produce(job.document_id, job.start_index, job.end_index)
        except Exception as exc:
            self.queue.mark_failed(job.id, f"{type(exc).__name__}: {exc}")
            self.run_logger.log_stage_failure("job", type(exc).__name__, job_id=job.id)
            return self.queue.get(job.id)
        self.queue.mark_complete(job.id, path)
        self.run_logger.log_stage_complete("job", job_id=job.id)
        return self.queue.get(job.id)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.run_once()
            except SQLAlchemyError as exc:
                self.run_logger.log_warning(
                    "worker", "datastore_unavailable", reason=type(exc).__name__
                )
                self._stop_event.wait(self.backoff_seconds)
                continue
            if job is None:
                self._stop_event.wait(self.idle_seconds)
