"""
Task State Store

Single in-memory source of truth for the job list, persisted through
JobRepository. Every mutation is an atomic whole-record swap keyed by job
id and is checked against the job state machine.
"""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .domain.job import Job, JobPayload, JobStatus, validate_transition, new_job_id
from .exceptions import JobNotFoundError, InvalidTransitionError
from .repositories.job_repo import JobRepository

logger = logging.getLogger(__name__)

Listener = Callable[[Job], None]


class TaskStore:
    def __init__(self, job_repo: Optional[JobRepository] = None):
        self.job_repo = job_repo
        self._jobs: Dict[str, Job] = {}
        self._next_order = 1
        self._lock = asyncio.Lock()
        self._listeners: List[Listener] = []

    @property
    def next_order(self) -> int:
        return self._next_order

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, job: Job):
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception as e:
                logger.error(f"[STORE] Listener failed: {e}", exc_info=True)

    async def _persist(self, job: Job):
        if self.job_repo is None:
            return
        await self.job_repo.save(job)
        self.job_repo.commit()

    async def _persist_counter(self):
        if self.job_repo is None:
            return
        await self.job_repo.set_order_counter(self._next_order)
        self.job_repo.commit()

    async def hydrate(self) -> int:
        """
        Load persisted jobs; in-flight leftovers of an interrupted process
        go back to pending

        Returns:
            Number of jobs loaded
        """
        if self.job_repo is None:
            return 0

        async with self._lock:
            jobs = await self.job_repo.get_all()
            interrupted = 0
            for job in jobs:
                if job.status.is_in_flight():
                    logger.warning(f"  -> Resetting {job} (Status: {job.status.value}) to 'pending'")
                    job = replace(
                        job,
                        status=JobStatus.PENDING,
                        status_text="",
                        account_id=None,
                        updated_at=datetime.utcnow(),
                    )
                    await self.job_repo.save(job)
                    interrupted += 1
                self._jobs[job.id] = job

            counter = await self.job_repo.get_order_counter()
            max_order = max((job.order for job in self._jobs.values()), default=0)
            self._next_order = max(counter or 1, max_order + 1)
            self.job_repo.commit()

        if interrupted:
            logger.warning(f"[STARTUP] Reset {interrupted} interrupted job(s) to 'pending'")
        logger.info(f"[STORE] Hydrated {len(self._jobs)} job(s), next order #{self._next_order}")
        return len(self._jobs)

    # ========== Reads ==========

    async def list(self, ids: Optional[Iterable[str]] = None) -> List[Job]:
        """Jobs ordered by `order` ascending (optionally only `ids`)"""
        if ids is None:
            jobs = list(self._jobs.values())
        else:
            jobs = [self._jobs[i] for i in ids if i in self._jobs]
        return sorted(jobs, key=lambda j: j.order)

    async def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    # ========== Writes ==========

    async def enqueue(self, payload: JobPayload) -> Job:
        jobs = await self.enqueue_many([payload])
        return jobs[0]

    async def enqueue_many(self, payloads: List[JobPayload]) -> List[Job]:
        created = []
        async with self._lock:
            for payload in payloads:
                job = Job(id=new_job_id(), order=self._next_order, payload=payload)
                self._next_order += 1
                self._jobs[job.id] = job
                await self._persist(job)
                created.append(job)
            await self._persist_counter()

        for job in created:
            self._notify(job)
        return created

    async def update(self, job: Job) -> Job:
        """
        Replace the stored record for job.id

        Raises:
            JobNotFoundError: Unknown id (e.g. removed meanwhile)
            InvalidTransitionError: Stored status cannot move to job.status
        """
        async with self._lock:
            current = self._jobs.get(job.id)
            if current is None:
                raise JobNotFoundError(f"Job {job.id} not found")
            validate_transition(current.status, job.status)
            self._jobs[job.id] = job
            await self._persist(job)

        self._notify(job)
        return job

    async def patch_payload(self, job_id: str, **fields) -> Job:
        """
        Partial merge of payload fields (UI edit)

        Raises:
            InvalidTransitionError: Job is in flight
        """
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if current.status.is_in_flight():
                raise InvalidTransitionError(f"{current} is {current.status.value}; cannot edit while in flight")
            merged = current.payload.to_dict()
            merged.update({k: v for k, v in fields.items() if v is not None})
            job = replace(
                current,
                payload=JobPayload.from_dict(merged),
                updated_at=datetime.utcnow(),
            )
            self._jobs[job_id] = job
            await self._persist(job)

        self._notify(job)
        return job

    async def reset(self, job_id: str) -> Job:
        job = await self.get(job_id)
        return await self.update(job.reset())

    async def remove(self, job_ids: Iterable[str]) -> int:
        """
        Delete jobs, renumber the rest densely 1..N, next order becomes N+1

        Returns:
            Number of jobs removed
        """
        ids = set(job_ids)
        async with self._lock:
            removed = 0
            for job_id in ids:
                job = self._jobs.pop(job_id, None)
                if job is None:
                    continue
                if job.status.is_in_flight():
                    logger.warning(f"[STORE] Removing in-flight {job}")
                if self.job_repo is not None:
                    await self.job_repo.delete(job_id)
                removed += 1

            remaining = sorted(self._jobs.values(), key=lambda j: j.order)
            renumbered = []
            for index, job in enumerate(remaining, start=1):
                if job.order != index:
                    job = replace(job, order=index)
                    self._jobs[job.id] = job
                    await self._persist(job)
                    renumbered.append(job)
            self._next_order = len(remaining) + 1
            await self._persist_counter()

        for job in renumbered:
            self._notify(job)
        return removed

    async def mark_stopped(self, job_ids: Iterable[str]) -> int:
        """
        Move every non-terminal job in `job_ids` to error/Stopped

        Returns:
            Number of jobs stopped
        """
        stopped = []
        async with self._lock:
            for job_id in job_ids:
                current = self._jobs.get(job_id)
                if current is None or current.status.is_terminal():
                    continue
                job = current.fail("Stopped")
                self._jobs[job_id] = job
                await self._persist(job)
                stopped.append(job)

        for job in stopped:
            self._notify(job)
        return len(stopped)
