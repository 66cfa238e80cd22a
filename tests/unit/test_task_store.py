"""
Unit tests for TaskStore

In-memory behavior plus persistence through a real JobRepository
"""
import pytest
from dataclasses import replace

from flowbatch.core.domain.job import JobPayload, JobStatus
from flowbatch.core.exceptions import InvalidTransitionError, JobNotFoundError
from flowbatch.core.repositories.job_repo import JobRepository
from flowbatch.core.task_store import TaskStore


@pytest.fixture
def store():
    return TaskStore()


@pytest.fixture
def persisted_store(test_session):
    return TaskStore(JobRepository(test_session))


class TestEnqueue:
    """Test enqueue and ordering"""

    @pytest.mark.asyncio
    async def test_orders_are_sequential(self, store):
        jobs = await store.enqueue_many([JobPayload(prompt=f"p{i}") for i in range(3)])
        assert [job.order for job in jobs] == [1, 2, 3]
        assert store.next_order == 4
        assert all(job.status == JobStatus.PENDING for job in jobs)

    @pytest.mark.asyncio
    async def test_list_sorted_by_order(self, store):
        first = await store.enqueue(JobPayload(prompt="a"))
        second = await store.enqueue(JobPayload(prompt="b"))
        listed = await store.list([second.id, first.id, "missing"])
        assert [job.id for job in listed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_listener_notified(self, store):
        seen = []
        store.subscribe(seen.append)
        job = await store.enqueue(JobPayload(prompt="a"))
        store.unsubscribe(seen.append)
        await store.enqueue(JobPayload(prompt="b"))
        assert seen == [job]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_store(self, store):
        def broken(job):
            raise RuntimeError("listener down")

        store.subscribe(broken)
        job = await store.enqueue(JobPayload(prompt="a"))
        assert (await store.get(job.id)).id == job.id


class TestUpdate:
    """Test transition-checked whole-record swaps"""

    @pytest.mark.asyncio
    async def test_update_checks_stored_status(self, store):
        job = await store.enqueue(JobPayload(prompt="a"))
        await store.update(job.fail("Stopped"))

        # stale copy still says pending; stored record is error
        with pytest.raises(InvalidTransitionError):
            await store.update(replace(job, status=JobStatus.QUEUED))

    @pytest.mark.asyncio
    async def test_update_unknown_job(self, store):
        job = await store.enqueue(JobPayload(prompt="a"))
        await store.remove([job.id])
        with pytest.raises(JobNotFoundError):
            await store.update(job.with_status(JobStatus.QUEUED))

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, store):
        with pytest.raises(JobNotFoundError):
            await store.get("nope")

    @pytest.mark.asyncio
    async def test_reset_twice_equals_once(self, store):
        job = await store.enqueue(JobPayload(prompt="a"))
        await store.update(job.fail("boom"))
        once = await store.reset(job.id)
        twice = await store.reset(job.id)
        assert once.status == twice.status == JobStatus.PENDING
        assert twice.error is None and twice.operations == ()


class TestPatchPayload:
    """Test UI edits"""

    @pytest.mark.asyncio
    async def test_partial_merge(self, store):
        job = await store.enqueue(JobPayload(prompt="a", count=4))
        patched = await store.patch_payload(job.id, prompt="b", aspect_ratio=None)
        assert patched.payload.prompt == "b"
        assert patched.payload.count == 4
        assert patched.payload.aspect_ratio == "16:9"

    @pytest.mark.asyncio
    async def test_in_flight_job_is_locked(self, store):
        job = await store.enqueue(JobPayload(prompt="a"))
        await store.update(job.with_status(JobStatus.QUEUED))
        with pytest.raises(InvalidTransitionError):
            await store.patch_payload(job.id, prompt="b")

    @pytest.mark.asyncio
    async def test_invalid_value_rejected(self, store):
        job = await store.enqueue(JobPayload(prompt="a"))
        with pytest.raises(ValueError):
            await store.patch_payload(job.id, count=3)


class TestRemove:
    """Test deletion with dense renumbering"""

    @pytest.mark.asyncio
    async def test_renumbers_remaining(self, store):
        jobs = await store.enqueue_many([JobPayload(prompt=f"p{i}") for i in range(5)])
        removed = await store.remove([jobs[1].id, jobs[3].id, "missing"])
        assert removed == 2

        remaining = await store.list()
        assert [job.order for job in remaining] == [1, 2, 3]
        assert [job.payload.prompt for job in remaining] == ["p0", "p2", "p4"]
        assert store.next_order == 4

        new = await store.enqueue(JobPayload(prompt="p5"))
        assert new.order == 4


class TestMarkStopped:
    """Test stop semantics"""

    @pytest.mark.asyncio
    async def test_only_non_terminal_jobs_stop(self, store):
        pending, polling, done = await store.enqueue_many(
            [JobPayload(prompt="a"), JobPayload(prompt="b"), JobPayload(prompt="c")]
        )
        job = await store.update(polling.with_status(JobStatus.QUEUED))
        job = await store.update(job.with_status(JobStatus.GETTING_TOKEN))
        await store.update(job.with_status(JobStatus.POLLING))
        job = await store.update(done.with_status(JobStatus.QUEUED))
        job = await store.update(job.with_status(JobStatus.GETTING_TOKEN))
        job = await store.update(job.with_status(JobStatus.POLLING))
        await store.update(job.with_status(JobStatus.DONE, status_text="1 done"))

        stopped = await store.mark_stopped([pending.id, polling.id, done.id])

        assert stopped == 2
        assert (await store.get(pending.id)).status_text == "Stopped"
        assert (await store.get(polling.id)).status == JobStatus.ERROR
        assert (await store.get(done.id)).status == JobStatus.DONE


class TestPersistence:
    """Test hydration from the database"""

    @pytest.mark.asyncio
    async def test_hydrate_restores_jobs_and_counter(self, persisted_store, test_session):
        jobs = await persisted_store.enqueue_many([JobPayload(prompt=f"p{i}") for i in range(3)])
        await persisted_store.remove([jobs[2].id])

        fresh = TaskStore(JobRepository(test_session))
        loaded = await fresh.hydrate()

        assert loaded == 2
        assert fresh.next_order == 3
        assert [job.payload.prompt for job in await fresh.list()] == ["p0", "p1"]

    @pytest.mark.asyncio
    async def test_hydrate_resets_in_flight_jobs(self, persisted_store, test_session):
        job = await persisted_store.enqueue(JobPayload(prompt="a"))
        job = await persisted_store.update(job.with_status(JobStatus.QUEUED, account_id="acc-1"))
        await persisted_store.update(job.with_status(JobStatus.GETTING_TOKEN))

        fresh = TaskStore(JobRepository(test_session))
        await fresh.hydrate()

        restored = await fresh.get(job.id)
        assert restored.status == JobStatus.PENDING
        assert restored.account_id is None
