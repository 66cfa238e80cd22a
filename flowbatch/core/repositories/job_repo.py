"""
Job Repository

Implementation of repository pattern for Job aggregate, plus the
persisted order counter used by the task store.
"""

from typing import Optional, List
from .base import BaseRepository
from ..domain.job import Job, JobStatus
from ...models import Job as JobModel, Setting

ORDER_COUNTER_KEY = "job_order_counter"


class JobRepository(BaseRepository[Job]):
    """
    Repository cho Job aggregate

    Handles:
    - Whole-record save keyed by job id
    - Interrupted-job queries for startup hydration
    - The order counter (settings table)
    """

    async def get_by_id(self, id: str) -> Optional[Job]:
        """
        Lấy job theo ID
        """
        orm_job = self.session.query(JobModel).filter_by(id=id).first()
        return Job.from_orm(orm_job) if orm_job else None

    async def get_all(self, status_filter: Optional[List[JobStatus]] = None) -> List[Job]:
        """
        Lấy danh sách jobs theo thứ tự `order`

        Args:
            status_filter: List of statuses to filter by
        """
        query = self.session.query(JobModel)

        if status_filter:
            query = query.filter(JobModel.status.in_([s.value for s in status_filter]))

        orm_jobs = query.order_by(JobModel.order.asc()).all()
        return [Job.from_orm(job) for job in orm_jobs]

    async def get_interrupted_jobs(self) -> List[Job]:
        """
        Jobs left in an in-flight state by a previous process
        """
        in_flight = [s for s in JobStatus if s.is_in_flight()]
        return await self.get_all(status_filter=in_flight)

    async def save(self, job: Job) -> Job:
        orm_job = self.session.query(JobModel).filter_by(id=job.id).first()
        if orm_job is None:
            orm_job = JobModel(**job.to_orm_dict())
            self.session.add(orm_job)
        else:
            for key, value in job.to_orm_dict().items():
                setattr(orm_job, key, value)

        self.flush()
        return job

    async def delete(self, id: str) -> bool:
        orm_job = self.session.query(JobModel).filter_by(id=id).first()
        if not orm_job:
            return False
        self.session.delete(orm_job)
        self.flush()
        return True

    async def get_order_counter(self) -> Optional[int]:
        row = self.session.query(Setting).filter_by(key=ORDER_COUNTER_KEY).first()
        return int(row.value) if row and row.value else None

    async def set_order_counter(self, value: int):
        row = self.session.query(Setting).filter_by(key=ORDER_COUNTER_KEY).first()
        if row is None:
            self.session.add(Setting(key=ORDER_COUNTER_KEY, value=str(value)))
        else:
            row.value = str(value)
        self.flush()
