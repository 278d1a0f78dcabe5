"""
Execution Queue Tests.
"""

import asyncio

import pytest

from core.exceptions import ServiceBusyError
from execution_engine.work_queue import ExecutionQueue


class TestExecutionQueue:
    """Tests for the bounded worker pool."""

    @pytest.mark.asyncio
    async def test_jobs_run_in_background(self):
        """Test submitted jobs are executed by the workers."""
        queue = ExecutionQueue(maxsize=5, workers=2)
        await queue.start()
        done = []

        async def job(n):
            done.append(n)

        for n in range(3):
            queue.submit(f"job-{n}", lambda n=n: job(n))
        await queue.join()

        assert sorted(done) == [0, 1, 2]
        assert queue.stats()["processed"] == 3
        await queue.stop()
        assert queue.running is False

    @pytest.mark.asyncio
    async def test_full_queue_refuses(self):
        """Test a full queue raises ServiceBusyError instead of blocking."""
        queue = ExecutionQueue(maxsize=1, workers=1)
        await queue.start()
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        queue.submit("blocker", blocker)
        await asyncio.sleep(0)
        queue.submit("waiting", blocker)

        with pytest.raises(ServiceBusyError):
            queue.submit("overflow", blocker)

        release.set()
        await queue.stop()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_worker(self):
        """Test an exception in one job is logged and the worker continues."""
        queue = ExecutionQueue(maxsize=5, workers=1)
        await queue.start()
        done = []

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            done.append("ok")

        queue.submit("boom", boom)
        queue.submit("ok", ok)
        await queue.join()

        assert done == ["ok"]
        assert queue.stats()["failed"] == 1
        await queue.stop()

    @pytest.mark.asyncio
    async def test_submit_before_start(self):
        """Test submitting to a stopped queue is refused."""
        queue = ExecutionQueue()

        async def noop():
            return None

        with pytest.raises(ServiceBusyError, match="not running"):
            queue.submit("early", noop)

    def test_invalid_sizes(self):
        """Test non-positive capacity or worker count is rejected."""
        with pytest.raises(ValueError):
            ExecutionQueue(maxsize=0)
        with pytest.raises(ValueError):
            ExecutionQueue(workers=0)
