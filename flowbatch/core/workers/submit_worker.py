"""
Submit Worker

One worker per (account, concurrency slot). Each picked job goes
queued -> getting-token|uploading -> polling; the poll itself runs in the
background so the slot can take the next job.
"""
import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from .base import BaseWorker
from .poll_worker import OperationPoller
from ..domain.account import Account
from ..domain.job import JobStatus
from ..exceptions import (
    ChallengeUnavailableError,
    TokenAcquisitionError,
    SubmissionRejected,
    UploadError,
    SessionLostError,
    SessionBusyError,
    InvalidTransitionError,
    JobNotFoundError
)
from ..session_manager import SessionManager
from ..submitter import JobSubmitter
from ..task_store import TaskStore
from ..token_broker import TokenBroker

logger = logging.getLogger(__name__)

JOB_LOCAL_ERRORS = (
    ChallengeUnavailableError,
    TokenAcquisitionError,
    SubmissionRejected,
    UploadError,
    SessionBusyError,
)


class SubmitWorker(BaseWorker):
    def __init__(
        self,
        account: Account,
        slot_index: int,
        queue: Deque[str],
        store: TaskStore,
        session_manager: SessionManager,
        broker: TokenBroker,
        submitter: JobSubmitter,
        poller: OperationPoller,
        stop_event: asyncio.Event,
        pickup_delay: float = 0.3
    ):
        super().__init__(
            name=f"Worker[{account.email}#{slot_index}]",
            stop_event=stop_event,
            pickup_delay=pickup_delay,
        )
        self.account = account
        self.slot_index = slot_index
        self.queue = queue
        self.store = store
        self.session_manager = session_manager
        self.broker = broker
        self.submitter = submitter
        self.poller = poller

    def next_task(self) -> Optional[str]:
        """
        Pop the next job id (FIFO). Stops when the queue is empty or the
        account lost its session.
        """
        if not self.session_manager.has_usable_session(self.account.id):
            logger.warning(f"[WORKER] {self.name}: session gone, leaving queue")
            return None
        if not self.queue:
            return None
        return self.queue.popleft()

    async def process_task(self, job_id: str):
        try:
            await self._process(job_id)
        except (InvalidTransitionError, JobNotFoundError) as e:
            # stop/remove won the race for this job
            logger.info(f"[WORKER] {self.name}: job {job_id[:8]} skipped: {e}")
        except Exception as e:
            logger.error(f"[ERROR] {self.name}: job {job_id[:8]} crashed: {e}", exc_info=True)
            await self._fail(job_id, f"Unexpected error: {e}")

    async def _fail(self, job_id: str, reason: str):
        try:
            job = await self.store.get(job_id)
            await self.store.update(job.fail(reason))
        except (InvalidTransitionError, JobNotFoundError) as e:
            logger.info(f"[WORKER] {self.name}: could not mark job {job_id[:8]} failed: {e}")

    async def _process(self, job_id: str):
        job = await self.store.get(job_id)
        job = await self.store.update(job.with_status(
            JobStatus.QUEUED,
            account_id=self.account.id,
            status_text="Waiting...",
        ))

        uploading = job.payload.has_images()
        job = await self.store.update(job.with_status(
            JobStatus.UPLOADING if uploading else JobStatus.GETTING_TOKEN,
            status_text="Uploading..." if uploading else "Getting token...",
        ))

        try:
            async with self.session_manager.lease(self.account.id) as session:
                tokens = await self.broker.get_token(session)
                media = await self.submitter.upload_media(job, tokens) if uploading else None
                if self.stop_event.is_set():
                    return
                operations = await self.submitter.submit(job, self.account, tokens, media)
        except JOB_LOCAL_ERRORS as e:
            logger.error(f"[WORKER] {self.name}: {job} failed: {e}")
            await self._fail(job_id, str(e))
            return
        except SessionLostError as e:
            logger.error(f"[WORKER] {self.name}: session lost: {e}")
            await self._fail(job_id, str(e))
            await self.session_manager.destroy(self.account.id)
            return

        if self.stop_event.is_set():
            return

        job = await self.store.get(job_id)
        await self.store.update(job.with_status(
            JobStatus.POLLING,
            operations=tuple(operations),
            status_text=f"Processing {len(operations)}...",
        ))
        logger.info(f"[WORKER] {self.name}: {job} submitted, {len(operations)} operation(s)")

        self.spawn(self.poller.poll(job_id, tokens.auth_token, cancel=self.stop_event))
