"""
Unit tests for TaskService

Tests business logic with a real TaskStore and mocked scheduler/repository
"""
import asyncio
import pytest
from unittest.mock import Mock, AsyncMock

from flowbatch.core.domain.account import Account
from flowbatch.core.domain.job import JobPayload, JobStatus
from flowbatch.core.exceptions import NoSessionsAvailable, RunInProgressError
from flowbatch.core.repositories.account_repo import AccountRepository
from flowbatch.core.services.task_service import TaskService
from flowbatch.core.task_store import TaskStore
from flowbatch.core.workers.scheduler import Scheduler, RunReport

COOKIE = "SID=abc"


@pytest.fixture
def mock_scheduler():
    """Create mock Scheduler"""
    scheduler = Mock(spec=Scheduler)
    scheduler.is_running = False
    scheduler.last_report = None
    scheduler.run = AsyncMock(return_value=RunReport(done=1))
    scheduler.stop = AsyncMock(return_value=0)
    return scheduler


@pytest.fixture
def mock_account_repo():
    """Create mock AccountRepository"""
    repo = Mock(spec=AccountRepository)
    repo.get_all = AsyncMock(return_value=[
        Account(id="acc-1", email="a@example.com", cookie=COOKIE, concurrency=2),
        Account(id="acc-2", email="b@example.com", cookie=COOKIE, expired=True),
    ])
    repo.get_many = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def task_service(mock_scheduler, mock_account_repo):
    return TaskService(TaskStore(), mock_scheduler, mock_account_repo)


class TestJobOperations:
    """Test enqueue/edit/delete"""

    @pytest.mark.asyncio
    async def test_bulk_create_one_job_per_line(self, task_service):
        jobs = await task_service.bulk_create(
            "a fox\n\n  a cat  \n",
            defaults={"aspect_ratio": "9:16", "count": 1, "prompt": "ignored"},
        )
        assert [job.payload.prompt for job in jobs] == ["a fox", "a cat"]
        assert all(job.payload.aspect_ratio == "9:16" for job in jobs)
        assert [job.order for job in jobs] == [1, 2]

    @pytest.mark.asyncio
    async def test_bulk_create_rejects_invalid_defaults(self, task_service):
        with pytest.raises(ValueError):
            await task_service.bulk_create("a", defaults={"count": 3})

    @pytest.mark.asyncio
    async def test_export_then_import(self, task_service):
        await task_service.create_job(JobPayload(prompt="a", count=4))
        exported = await task_service.export_jobs()

        imported = await task_service.import_jobs(exported)

        assert imported[0].payload.count == 4
        assert imported[0].order == 2

    @pytest.mark.asyncio
    async def test_delete_renumbers(self, task_service):
        first = await task_service.create_job(JobPayload(prompt="a"))
        await task_service.create_job(JobPayload(prompt="b"))

        assert await task_service.delete_jobs([first.id]) == 1
        jobs = await task_service.list_jobs()
        assert [job.order for job in jobs] == [1]
        assert task_service.status()["next_order"] == 2

    @pytest.mark.asyncio
    async def test_reset_job(self, task_service):
        job = await task_service.create_job(JobPayload(prompt="a"))
        await task_service.store.update(job.fail("boom"))
        reset = await task_service.reset_job(job.id)
        assert reset.status == JobStatus.PENDING


class TestRuns:
    """Test run start/stop"""

    @pytest.mark.asyncio
    async def test_default_accounts_skip_expired(self, task_service, mock_scheduler):
        started = await task_service.start_run()
        report = await task_service.wait_for_run()

        assert started == {"accounts": ["acc-1"], "workers": 2}
        assert report.done == 1
        accounts, job_ids = mock_scheduler.run.await_args.args
        assert [a.id for a in accounts] == ["acc-1"]
        assert job_ids is None

    @pytest.mark.asyncio
    async def test_explicit_unknown_accounts(self, task_service):
        with pytest.raises(NoSessionsAvailable):
            await task_service.start_run(account_ids=["missing"])

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self, task_service, mock_scheduler):
        mock_scheduler.is_running = True
        with pytest.raises(RunInProgressError):
            await task_service.start_run()

    @pytest.mark.asyncio
    async def test_background_failure_recorded(self, task_service, mock_scheduler):
        mock_scheduler.run = AsyncMock(side_effect=NoSessionsAvailable("No accounts could be initialized"))

        await task_service.start_run()
        assert await task_service.wait_for_run() is None

        status = task_service.status()
        assert status["last_error"] == "No accounts could be initialized"
        assert not status["running"]

    @pytest.mark.asyncio
    async def test_stop_run(self, task_service, mock_scheduler):
        mock_scheduler.stop = AsyncMock(return_value=3)
        assert await task_service.stop_run() == 3
