"""
Unit tests for JobRepository

Runs against a temporary SQLite database
"""
import pytest

from flowbatch.core.domain.job import Job, JobPayload, JobStatus, Operation
from flowbatch.core.repositories.job_repo import JobRepository


@pytest.fixture
def job_repo(test_session):
    return JobRepository(test_session)


def _job(job_id, order, status=JobStatus.PENDING):
    return Job(id=job_id, order=order, payload=JobPayload(prompt=f"prompt {order}"), status=status)


class TestJobRepository:
    """Test CRUD and queries"""

    @pytest.mark.asyncio
    async def test_save_and_get(self, job_repo):
        job = _job("j1", 1)
        await job_repo.save(job)
        job_repo.commit()

        loaded = await job_repo.get_by_id("j1")
        assert loaded.payload == job.payload
        assert loaded.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_save_replaces_whole_record(self, job_repo):
        job = _job("j1", 1, status=JobStatus.POLLING)
        await job_repo.save(job)
        updated = job.with_status(
            JobStatus.POLLING,
            operations=(Operation("op-1", "scene-1"),),
            status_text="Processing 0/1... (1)",
        )
        await job_repo.save(updated)
        job_repo.commit()

        loaded = await job_repo.get_by_id("j1")
        assert loaded.operations == updated.operations
        assert loaded.status_text == "Processing 0/1... (1)"

    @pytest.mark.asyncio
    async def test_get_all_ordered(self, job_repo):
        for job_id, order in (("j3", 3), ("j1", 1), ("j2", 2)):
            await job_repo.save(_job(job_id, order))
        job_repo.commit()

        jobs = await job_repo.get_all()
        assert [job.order for job in jobs] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_interrupted_jobs(self, job_repo):
        await job_repo.save(_job("j1", 1, status=JobStatus.QUEUED))
        await job_repo.save(_job("j2", 2, status=JobStatus.DONE))
        await job_repo.save(_job("j3", 3, status=JobStatus.POLLING))
        job_repo.commit()

        interrupted = await job_repo.get_interrupted_jobs()
        assert {job.id for job in interrupted} == {"j1", "j3"}

    @pytest.mark.asyncio
    async def test_delete(self, job_repo):
        await job_repo.save(_job("j1", 1))
        assert await job_repo.delete("j1")
        assert not await job_repo.delete("j1")
        assert await job_repo.get_by_id("j1") is None

    @pytest.mark.asyncio
    async def test_order_counter(self, job_repo):
        assert await job_repo.get_order_counter() is None
        await job_repo.set_order_counter(7)
        await job_repo.set_order_counter(9)
        job_repo.commit()
        assert await job_repo.get_order_counter() == 9
