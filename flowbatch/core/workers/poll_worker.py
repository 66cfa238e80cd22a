"""
Operation Poller

Polls a job's remote operations until all are terminal, the round budget
is exhausted (error/Timeout) or the run is cancelled (error/Stopped).
"""
import asyncio
import logging
import random
from typing import Optional

from ..domain.job import Job, JobStatus, merge_operations
from ..drivers.abstractions import GenerationClient
from ..exceptions import PollTimeoutOrNetworkError, InvalidTransitionError, JobNotFoundError
from ..task_store import TaskStore

logger = logging.getLogger(__name__)

# 120 rounds * 5s = ~10 minutes
MAX_POLL_COUNT = 120


class OperationPoller:
    def __init__(
        self,
        client: GenerationClient,
        store: TaskStore,
        poll_interval: float = 5.0,
        max_polls: int = MAX_POLL_COUNT,
        round_timeout: float = 30.0,
        jitter: float = 0.0
    ):
        self.client = client
        self.store = store
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.round_timeout = round_timeout
        self.jitter = jitter

    def _interval(self) -> float:
        if self.jitter > 0:
            return self.poll_interval + random.uniform(0, self.jitter)
        return self.poll_interval

    async def _write(self, job: Job) -> Optional[Job]:
        """Store update; None when the job was finalized/removed elsewhere"""
        try:
            return await self.store.update(job)
        except (InvalidTransitionError, JobNotFoundError) as e:
            logger.info(f"[POLL] {job} not updated: {e}")
            return None

    async def _stopped(self, job_id: str) -> Optional[Job]:
        await self.store.mark_stopped([job_id])
        logger.info(f"[POLL] Job {job_id[:8]} stopped")
        try:
            return await self.store.get(job_id)
        except JobNotFoundError:
            return None

    async def poll(
        self,
        job_id: str,
        auth_token: str,
        cancel: Optional[asyncio.Event] = None
    ) -> Optional[Job]:
        """
        Drive job `job_id` from polling to done/error

        Args:
            job_id: Job in polling state with PENDING operations
            auth_token: Token used at submission
            cancel: Run-scoped stop flag, checked around every round

        Returns:
            Final job, or None if it vanished/was finalized elsewhere
        """
        try:
            return await self._poll(job_id, auth_token, cancel)
        except JobNotFoundError as e:
            logger.info(f"[POLL] {e}, giving up")
            return None
        except Exception as e:
            logger.error(f"[ERROR] Poll task failed for job {job_id[:8]}: {e}", exc_info=True)
            try:
                job = await self.store.get(job_id)
            except JobNotFoundError:
                return None
            return await self._write(job.fail(f"Poll failed: {e}"))

    async def _poll(
        self,
        job_id: str,
        auth_token: str,
        cancel: Optional[asyncio.Event]
    ) -> Optional[Job]:
        job = await self.store.get(job_id)
        if job.status != JobStatus.POLLING:
            logger.warning(f"[POLL] {job} is {job.status.value}, not polling")
            return job

        if job.all_operations_terminal():
            return await self._write(job.finalize())

        for round_no in range(1, self.max_polls + 1):
            if cancel is not None and cancel.is_set():
                return await self._stopped(job_id)

            await asyncio.sleep(self._interval())

            if cancel is not None and cancel.is_set():
                return await self._stopped(job_id)

            job = await self.store.get(job_id)
            if job.status != JobStatus.POLLING:
                logger.info(f"[POLL] {job} left polling ({job.status.value}), giving up")
                return job

            pending = job.pending_operations()
            try:
                updates = await asyncio.wait_for(
                    self.client.check_status(pending, auth_token),
                    timeout=self.round_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"[POLL] {job} round {round_no}/{self.max_polls} timed out, retrying")
                continue
            except PollTimeoutOrNetworkError as e:
                logger.warning(f"[POLL] {job} round {round_no}/{self.max_polls} failed: {e}")
                continue
            except Exception as e:
                logger.error(
                    f"[POLL] {job} round {round_no}/{self.max_polls} unexpected error: {e}",
                    exc_info=True
                )
                continue

            job = await self.store.get(job_id)
            merged = merge_operations(job.operations, updates)
            done = len([op for op in merged if op.is_terminal()])
            job = await self._write(job.with_status(
                JobStatus.POLLING,
                operations=merged,
                status_text=f"Processing {done}/{len(merged)}... ({round_no})",
            ))
            if job is None:
                return None

            if job.all_operations_terminal():
                final = await self._write(job.finalize())
                if final is not None:
                    logger.info(f"[POLL] [OK] {final} finished: {final.status_text}")
                return final

        logger.warning(f"[POLL] {job} exceeded max poll count ({self.max_polls})")
        job = await self.store.get(job_id)
        return await self._write(job.fail("Timeout"))
