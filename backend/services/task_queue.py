"""
Lightweight in-memory asyncio job queue for background work.

Design goals:
- No broker. Each job is an asyncio.Task running on the same event loop.
- A job id stays unique until the job has executed: enqueueing the same id
  while it is pending or running is a no-op.
- Failed attempts can be retried for selected exception types with
  exponential backoff.
- Finished jobs are cleaned up periodically to prevent unbounded growth.

Usage::

    from services.task_queue import job_queue

    await job_queue.enqueue(
        f"create_moneyhash_customer:{customer_id}",
        lambda: create_moneyhash_customer(customer_id),
        max_attempts=6,
        retry_on=(MoneyhashAPIError,),
    )
    info = job_queue.get_status(job_id)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


# ── Internal record stored per job ───────────────────────────────────────────


class _JobRecord:
    __slots__ = (
        "job_id",
        "status",
        "attempts",
        "result",
        "error",
        "created_at",
        "completed_at",
        "_asyncio_task",
    )

    def __init__(self, job_id: str) -> None:
        self.job_id: str = job_id
        self.status: str = "pending"  # pending | running | completed | failed
        self.attempts: int = 0
        self.result: Any = None
        self.error: str | None = None
        self.created_at: datetime = datetime.now(UTC)
        self.completed_at: datetime | None = None
        self._asyncio_task: asyncio.Task | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "attempts": self.attempts,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


# ── JobQueue class ────────────────────────────────────────────────────────────


class JobQueue:
    """Simple in-memory asyncio job queue with retries."""

    def __init__(self, retry_base_delay: float | None = None) -> None:
        self._jobs: dict[str, _JobRecord] = {}
        self.retry_base_delay = (
            settings.job_retry_base_delay if retry_base_delay is None else retry_base_delay
        )

    # ── Public API ────────────────────────────────────────────────────────────

    async def enqueue(
        self,
        job_id: str,
        job: JobFactory,
        *,
        max_attempts: int = 1,
        retry_on: tuple[type[BaseException], ...] = (),
    ) -> str:
        """
        Schedule *job* (a callable returning an awaitable) under *job_id*.

        The callable is invoked once per attempt. If a job with the same id
        is still pending or running, the call is ignored.
        """
        existing = self._jobs.get(job_id)
        if existing and existing.status in ("pending", "running"):
            logger.info("job_queue.enqueue: job %s is already %s, ignoring duplicate", job_id, existing.status)
            return job_id

        record = _JobRecord(job_id)
        self._jobs[job_id] = record

        record._asyncio_task = asyncio.create_task(
            self._run(record, job, max(1, max_attempts), retry_on),
            name=f"job-{job_id}",
        )

        logger.debug("job_queue: enqueued job %s", job_id)
        return job_id

    def get_status(self, job_id: str) -> dict[str, Any] | None:
        """Return the status dict for *job_id*, or None if it is unknown."""
        record = self._jobs.get(job_id)
        if record is None:
            return None
        return record.to_dict()

    async def wait(self, job_id: str) -> dict[str, Any] | None:
        """Wait until *job_id* has finished and return its status."""
        record = self._jobs.get(job_id)
        if record is None:
            return None
        if record._asyncio_task is not None:
            await asyncio.shield(record._asyncio_task)
        return record.to_dict()

    def cleanup_old(self, max_age_seconds: int = 3600) -> int:
        """
        Remove completed/failed jobs older than *max_age_seconds*.

        Returns the number of jobs removed.
        """
        now = datetime.now(UTC)
        to_delete = [
            jid
            for jid, rec in self._jobs.items()
            if rec.status in ("completed", "failed")
            and rec.completed_at is not None
            and (now - rec.completed_at).total_seconds() > max_age_seconds
        ]
        for jid in to_delete:
            del self._jobs[jid]
        if to_delete:
            logger.debug("job_queue: cleaned up %d old jobs", len(to_delete))
        return len(to_delete)

    def stats(self) -> dict[str, int]:
        """Return counts by status."""
        counts: dict[str, int] = {"pending": 0, "running": 0, "completed": 0, "failed": 0}
        for rec in self._jobs.values():
            counts[rec.status] = counts.get(rec.status, 0) + 1
        return counts

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay * (2 ** (attempt - 1))

    async def _run(
        self,
        record: _JobRecord,
        job: JobFactory,
        max_attempts: int,
        retry_on: tuple[type[BaseException], ...],
    ) -> None:
        record.status = "running"
        try:
            while True:
                record.attempts += 1
                try:
                    record.result = await job()
                    record.status = "completed"
                    return
                except retry_on as exc:
                    if record.attempts >= max_attempts:
                        raise
                    delay = self._backoff(record.attempts)
                    logger.warning(
                        "job_queue: job %s attempt %d failed (%s), retrying in %.1fs",
                        record.job_id,
                        record.attempts,
                        exc,
                        delay,
                    )
                    await asyncio.sleep(delay)
        except Exception as exc:
            record.error = str(exc)
            record.status = "failed"
            logger.error("job_queue: job %s failed: %s", record.job_id, exc, exc_info=True)
        finally:
            record.completed_at = datetime.now(UTC)
            logger.debug("job_queue: job %s finished with status=%s", record.job_id, record.status)


# ── Module-level singleton ────────────────────────────────────────────────────

job_queue = JobQueue()
