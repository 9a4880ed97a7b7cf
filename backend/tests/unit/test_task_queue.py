"""
Unit tests for the in-memory JobQueue service.

Covers:
- Successful job enqueue and completion
- Job failure handling
- get_status for known / unknown job IDs
- Duplicate enqueue protection
- Retries with backoff for selected exception types
- cleanup_old removes only completed/failed jobs beyond max_age
- stats() returns accurate counts
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from services.task_queue import JobQueue


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _noop():
    return None


async def _returning(value):
    return value


async def _failing(message: str = "boom"):
    raise RuntimeError(message)


async def _slow(delay: float = 0.05):
    await asyncio.sleep(delay)
    return "done"


class _Flaky:
    """Job factory failing with ConnectionError a given number of times."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls}")
        return self.calls


# ---------------------------------------------------------------------------
# enqueue / get_status
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_enqueue_returns_job_id():
    q = JobQueue()
    jid = await q.enqueue("job-1", _noop)
    assert jid == "job-1"
    await q.wait("job-1")


@pytest.mark.asyncio
async def test_unknown_job_id_returns_none():
    q = JobQueue()
    assert q.get_status("no-such-job") is None
    assert await q.wait("no-such-job") is None


@pytest.mark.asyncio
async def test_job_is_running_once_started():
    q = JobQueue()
    await q.enqueue("slow-1", lambda: _slow(0.2))
    await asyncio.sleep(0.01)

    info = q.get_status("slow-1")
    assert info is not None
    assert info["status"] == "running"
    assert info["job_id"] == "slow-1"
    assert info["error"] is None
    await q.wait("slow-1")


@pytest.mark.asyncio
async def test_job_completed_status():
    q = JobQueue()
    await q.enqueue("ok-1", _noop)
    info = await q.wait("ok-1")

    assert info["status"] == "completed"
    assert info["completed_at"] is not None
    assert info["error"] is None
    assert info["attempts"] == 1


@pytest.mark.asyncio
async def test_job_result_stored():
    q = JobQueue()
    await q.enqueue("ret-1", lambda: _returning({"answer": 42}))
    info = await q.wait("ret-1")

    assert info["status"] == "completed"
    assert info["result"] == {"answer": 42}


@pytest.mark.asyncio
async def test_job_failed_status():
    q = JobQueue()
    await q.enqueue("fail-1", lambda: _failing("intentional failure"))
    info = await q.wait("fail-1")

    assert info["status"] == "failed"
    assert "intentional failure" in info["error"]
    assert info["completed_at"] is not None


# ---------------------------------------------------------------------------
# Duplicate enqueue protection
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_enqueue_ignored_while_running():
    """Enqueueing the same job_id while it's still running should be a no-op."""
    q = JobQueue()
    calls = []

    async def _second():
        calls.append("second")

    await q.enqueue("dup-1", lambda: _slow(0.2))
    await q.enqueue("dup-1", _second)

    info = await q.wait("dup-1")
    assert info["status"] == "completed"
    assert info["result"] == "done"
    assert calls == []


@pytest.mark.asyncio
async def test_reenqueue_after_completion():
    """Re-using a job_id after it completed should create a fresh record."""
    q = JobQueue()
    await q.enqueue("reuse-1", lambda: _returning("first"))
    assert (await q.wait("reuse-1"))["result"] == "first"

    await q.enqueue("reuse-1", lambda: _returning("second"))
    assert (await q.wait("reuse-1"))["result"] == "second"


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retries_listed_exceptions_until_success():
    q = JobQueue(retry_base_delay=0)
    flaky = _Flaky(failures=2)

    await q.enqueue("flaky-1", flaky, max_attempts=5, retry_on=(ConnectionError,))
    info = await q.wait("flaky-1")

    assert info["status"] == "completed"
    assert info["attempts"] == 3
    assert info["result"] == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    q = JobQueue(retry_base_delay=0)
    flaky = _Flaky(failures=10)

    await q.enqueue("flaky-2", flaky, max_attempts=3, retry_on=(ConnectionError,))
    info = await q.wait("flaky-2")

    assert info["status"] == "failed"
    assert info["attempts"] == 3
    assert flaky.calls == 3
    assert "attempt 3" in info["error"]


@pytest.mark.asyncio
async def test_unlisted_exceptions_are_not_retried():
    q = JobQueue(retry_base_delay=0)

    await q.enqueue("fail-2", lambda: _failing(), max_attempts=5, retry_on=(ConnectionError,))
    info = await q.wait("fail-2")

    assert info["status"] == "failed"
    assert info["attempts"] == 1


def test_backoff_doubles_per_attempt():
    q = JobQueue(retry_base_delay=3.0)
    assert [q._backoff(n) for n in (1, 2, 3, 4)] == [3.0, 6.0, 12.0, 24.0]


# ---------------------------------------------------------------------------
# cleanup_old
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cleanup_removes_old_completed_jobs():
    q = JobQueue()
    await q.enqueue("old-1", _noop)
    await q.wait("old-1")

    # Backdate completed_at so the job appears old
    q._jobs["old-1"].completed_at = datetime.now(timezone.utc) - timedelta(seconds=3700)

    removed = q.cleanup_old(max_age_seconds=3600)
    assert removed == 1
    assert q.get_status("old-1") is None


@pytest.mark.asyncio
async def test_cleanup_keeps_recent_completed_jobs():
    q = JobQueue()
    await q.enqueue("recent-1", _noop)
    await q.wait("recent-1")

    removed = q.cleanup_old(max_age_seconds=3600)
    assert removed == 0
    assert q.get_status("recent-1") is not None


@pytest.mark.asyncio
async def test_cleanup_does_not_touch_running_jobs():
    q = JobQueue()
    await q.enqueue("running-1", lambda: _slow(0.2))
    await asyncio.sleep(0.01)

    removed = q.cleanup_old(max_age_seconds=0)
    assert removed == 0
    assert q.get_status("running-1") is not None
    await q.wait("running-1")


@pytest.mark.asyncio
async def test_cleanup_removes_old_failed_jobs():
    q = JobQueue()
    await q.enqueue("fail-old", _failing)
    await q.wait("fail-old")

    q._jobs["fail-old"].completed_at = datetime.now(timezone.utc) - timedelta(seconds=7200)

    removed = q.cleanup_old(max_age_seconds=3600)
    assert removed == 1


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stats_counts_by_status():
    q = JobQueue()
    await q.enqueue("s-ok", _noop)
    await q.enqueue("s-fail", _failing)
    await q.wait("s-ok")
    await q.wait("s-fail")

    stats = q.stats()
    assert stats["completed"] == 1
    assert stats["failed"] == 1
    assert stats["pending"] == 0
    assert stats["running"] == 0
