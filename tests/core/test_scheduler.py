"""
Unit tests for the background job scheduler.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from reflectify.core import scheduler


@pytest.fixture(autouse=True)
def reset_scheduler():
    scheduler._job_registry.clear()
    scheduler._scheduler = None
    yield
    if scheduler._scheduler is not None and scheduler._scheduler.running:
        scheduler._scheduler.shutdown(wait=False)
    scheduler._scheduler = None
    scheduler._job_registry.clear()


class TestRegistry:
    """Tests for job registration."""

    def test_register_before_start_defers(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(hours=24))

        jobs = scheduler.list_registered_jobs()
        assert jobs == [{"job_id": "sweep", "registered": True}]

    @pytest.mark.asyncio
    async def test_start_adds_registered_jobs(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(hours=24))

        await scheduler.start_scheduler()

        jobs = scheduler.list_registered_jobs()
        assert jobs[0]["job_id"] == "sweep"
        assert jobs[0]["next_run_time"] is not None
        assert jobs[0]["is_paused"] is False

        await scheduler.stop_scheduler()
        assert scheduler.get_scheduler() is None

    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        scheduler.register_job("sweep", AsyncMock(), IntervalTrigger(hours=24))
        await scheduler.start_scheduler()

        assert scheduler.pause_job("sweep") is True
        assert scheduler.list_registered_jobs()[0]["is_paused"] is True

        assert scheduler.resume_job("sweep") is True
        assert scheduler.list_registered_jobs()[0]["is_paused"] is False

        assert scheduler.pause_job("missing") is False

    def test_pause_without_scheduler(self):
        assert scheduler.pause_job("sweep") is False
        assert scheduler.resume_job("sweep") is False


class TestTriggerJobManually:
    """Tests for running a registered job on demand."""

    @pytest.mark.asyncio
    async def test_success_returns_result(self):
        func = AsyncMock(return_value={"expired_count": 2})
        scheduler.register_job("sweep", func, IntervalTrigger(hours=24))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "success"
        assert result["result"] == {"expired_count": 2}
        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        func = AsyncMock(side_effect=RuntimeError("db down"))
        scheduler.register_job("sweep", func, IntervalTrigger(hours=24))

        result = await scheduler.trigger_job_manually("sweep")

        assert result["status"] == "error"
        assert result["error"] == "db down"

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("missing")
