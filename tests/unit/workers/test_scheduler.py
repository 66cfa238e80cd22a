"""
Unit tests for Scheduler

Full runs against in-process fakes: session acquisition, worker fan-out,
polling, stop and teardown.
"""
import asyncio
import pytest
from unittest.mock import Mock, AsyncMock

from flowbatch.core.domain.account import Account
from flowbatch.core.domain.job import JobPayload, JobStatus
from flowbatch.core.exceptions import (
    NoSessionsAvailable,
    RunInProgressError,
    SessionStartError
)
from flowbatch.core.repositories.account_repo import AccountRepository
from flowbatch.core.session_manager import SessionManager
from flowbatch.core.submitter import JobSubmitter
from flowbatch.core.task_store import TaskStore
from flowbatch.core.token_broker import SessionEndpointExtractor, TokenBroker
from flowbatch.core.workers.poll_worker import OperationPoller
from flowbatch.core.workers.scheduler import Scheduler

COOKIE = "SID=abc; __Secure-next-auth.session-token=tok"


@pytest.fixture
def accounts():
    return [
        Account(id="acc-a", email="a@example.com", cookie=COOKIE, concurrency=2),
        Account(id="acc-b", email="b@example.com", cookie=COOKIE, concurrency=1),
    ]


@pytest.fixture
def mock_account_repo():
    """Create mock AccountRepository"""
    repo = Mock(spec=AccountRepository)
    repo.mark_expired = AsyncMock(return_value=None)
    repo.commit = Mock()
    return repo


@pytest.fixture
def store():
    return TaskStore()


@pytest.fixture
def manager(fake_provider, fake_driver):
    return SessionManager(fake_provider, fake_driver, start_delay=0, settle_delay=0)


@pytest.fixture
def scheduler(store, manager, fake_driver, fake_client, mock_account_repo):
    broker = TokenBroker(
        fake_driver,
        [SessionEndpointExtractor("https://labs.google/fx/api/auth/session")],
        site_key="site-key",
        extractor_timeout=1,
    )
    return Scheduler(
        store=store,
        session_manager=manager,
        broker=broker,
        submitter=JobSubmitter(fake_client),
        poller=OperationPoller(fake_client, store, poll_interval=0, max_polls=3),
        account_repo=mock_account_repo,
        pickup_delay=0,
    )


async def _enqueue(store, count):
    return await store.enqueue_many([JobPayload(prompt=f"prompt {i}", count=1) for i in range(count)])


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestRunCompletes:
    """Test successful runs"""

    @pytest.mark.asyncio
    async def test_jobs_spread_over_account_budgets(self, scheduler, store, accounts, fake_client, fake_provider, manager):
        await _enqueue(store, 5)
        fake_client.succeed_all = True

        report = await scheduler.run(accounts)

        assert report.workers == 3
        assert report.done == 5
        assert report.error == 0
        assert report.accounts == ["acc-a", "acc-b"]
        jobs = await store.list()
        assert all(job.status == JobStatus.DONE for job in jobs)
        assert all(len(job.results) == 1 for job in jobs)
        assert {job.account_id for job in jobs} <= {"acc-a", "acc-b"}
        assert len(fake_client.submitted) == 5

        # sessions torn down at run end
        assert sorted(fake_provider.deleted) == ["prof-1", "prof-2"]
        assert not manager.has_usable_session("acc-a")
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_only_selected_jobs_run(self, scheduler, store, accounts, fake_client):
        jobs = await _enqueue(store, 3)
        fake_client.succeed_all = True

        report = await scheduler.run(accounts, job_ids=[jobs[1].id])

        assert report.done == 1
        assert (await store.get(jobs[0].id)).status == JobStatus.PENDING
        assert (await store.get(jobs[1].id)).status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_empty_prompts_are_skipped(self, scheduler, store, accounts, fake_client, fake_provider):
        await store.enqueue(JobPayload(prompt="   "))

        report = await scheduler.run(accounts)

        assert report.workers == 0
        assert fake_provider.created == []

    @pytest.mark.asyncio
    async def test_rerun_resets_finished_jobs(self, scheduler, store, accounts, fake_client):
        await _enqueue(store, 2)
        fake_client.succeed_all = True
        await scheduler.run(accounts)

        report = await scheduler.run(accounts)

        assert report.done == 2
        assert len(fake_client.submitted) == 4
        assert all(len(job.operations) == 1 for job in await store.list())


class TestRunFailures:
    """Test job-level and account-level failures"""

    @pytest.mark.asyncio
    async def test_poll_budget_exhaustion(self, scheduler, store, accounts):
        await _enqueue(store, 3)

        report = await scheduler.run(accounts)

        assert report.error == 3
        assert all(job.error == "Timeout" for job in await store.list())

    @pytest.mark.asyncio
    async def test_failed_account_is_excluded(self, scheduler, store, accounts, fake_client, fake_provider):
        await _enqueue(store, 4)
        fake_client.succeed_all = True
        original_create = fake_provider.create

        async def create(profile_name):
            if "b@example.com" in profile_name:
                raise SessionStartError("GPM refused profile")
            return await original_create(profile_name)

        fake_provider.create = create

        report = await scheduler.run(accounts)

        assert report.workers == 2
        assert report.done == 4
        assert "acc-b" in report.failed_accounts
        assert {job.account_id for job in await store.list()} == {"acc-a"}

    @pytest.mark.asyncio
    async def test_no_sessions_leaves_jobs_untouched(self, scheduler, store, accounts, fake_page, mock_account_repo):
        jobs = await _enqueue(store, 2)
        failed = await store.update(jobs[0].fail("boom"))
        fake_page.widget_present = False

        with pytest.raises(NoSessionsAvailable):
            await scheduler.run(accounts)

        assert await store.get(failed.id) == failed
        assert (await store.get(jobs[1].id)).status == JobStatus.PENDING
        assert mock_account_repo.mark_expired.await_count == 2
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_no_sessions_report_ignores_stale_statuses(self, scheduler, store, accounts, fake_page):
        jobs = await _enqueue(store, 2)
        await store.update(jobs[0].fail("boom"))
        fake_page.widget_present = False

        with pytest.raises(NoSessionsAvailable):
            await scheduler.run(accounts)

        report = scheduler.last_report
        assert report.done == 0
        assert report.error == 0
        assert set(report.failed_accounts) == {"acc-a", "acc-b"}

    @pytest.mark.asyncio
    async def test_session_loss_fails_current_job_only(
        self, scheduler, store, manager, fake_page, fake_provider
    ):
        jobs = await _enqueue(store, 3)
        account = Account(id="acc-a", email="a@example.com", cookie=COOKIE, concurrency=1)
        original_acquire = manager.acquire

        async def acquire(acc):
            session = await original_acquire(acc)
            fake_page.lost = True
            return session

        manager.acquire = acquire

        report = await scheduler.run([account])

        assert report.error == 1
        assert (await store.get(jobs[0].id)).status == JobStatus.ERROR
        assert (await store.get(jobs[1].id)).status == JobStatus.PENDING
        assert fake_provider.deleted == ["prof-1"]


class TestStop:
    """Test cancellation"""

    @pytest.mark.asyncio
    async def test_stop_marks_jobs_and_tears_down(self, scheduler, store, accounts, fake_client, fake_provider):
        await _enqueue(store, 5)
        scheduler.poller = OperationPoller(fake_client, store, poll_interval=0.01, max_polls=10000)
        run_task = asyncio.create_task(scheduler.run(accounts))

        async def some_polling():
            return any(job.status == JobStatus.POLLING for job in await store.list())

        await _wait_for(some_polling)
        stopped = await scheduler.stop()
        report = await run_task

        assert stopped > 0
        assert report.stopped
        jobs = await store.list()
        assert all(job.status == JobStatus.ERROR for job in jobs)
        assert all(job.status_text == "Stopped" for job in jobs)
        # second teardown at run end finds nothing left
        assert sorted(fake_provider.deleted) == ["prof-1", "prof-2"]
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_second_run_rejected_while_running(self, scheduler, store, accounts, fake_client):
        await _enqueue(store, 2)
        scheduler.poller = OperationPoller(fake_client, store, poll_interval=0.01, max_polls=10000)
        run_task = asyncio.create_task(scheduler.run(accounts))
        await _wait_for(lambda: _is_running(scheduler))

        with pytest.raises(RunInProgressError):
            await scheduler.run(accounts)

        await scheduler.stop()
        await run_task

    @pytest.mark.asyncio
    async def test_stop_without_run(self, scheduler):
        assert await scheduler.stop() == 0


async def _is_running(scheduler):
    return scheduler.is_running
