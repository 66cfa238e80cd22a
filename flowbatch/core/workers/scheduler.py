"""
Worker Pool Scheduler

run(): filter -> acquire sessions -> reset -> one worker per
(account, slot) -> join submissions -> join polls -> tear down sessions.
stop(): set the run flag, fail non-terminal jobs with "Stopped" and tear
sessions down without waiting for in-flight calls.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Tuple

from .poll_worker import OperationPoller
from .submit_worker import SubmitWorker
from ..domain.account import Account
from ..domain.job import JobStatus
from ..domain.session import Session
from ..exceptions import (
    ExpiredCredentialError,
    FlowBatchError,
    NoSessionsAvailable,
    RunInProgressError
)
from ..repositories.account_repo import AccountRepository
from ..session_manager import SessionManager
from ..submitter import JobSubmitter
from ..task_store import TaskStore
from ..token_broker import TokenBroker

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Aggregate outcome of one run"""
    done: int = 0
    error: int = 0
    workers: int = 0
    accounts: List[str] = field(default_factory=list)
    failed_accounts: Dict[str, str] = field(default_factory=dict)
    stopped: bool = False

    def to_dict(self) -> dict:
        return {
            "done": self.done,
            "error": self.error,
            "workers": self.workers,
            "accounts": list(self.accounts),
            "failed_accounts": dict(self.failed_accounts),
            "stopped": self.stopped,
        }


class Scheduler:
    def __init__(
        self,
        store: TaskStore,
        session_manager: SessionManager,
        broker: TokenBroker,
        submitter: JobSubmitter,
        poller: OperationPoller,
        account_repo: Optional[AccountRepository] = None,
        pickup_delay: float = 0.3
    ):
        self.store = store
        self.session_manager = session_manager
        self.broker = broker
        self.submitter = submitter
        self.poller = poller
        self.account_repo = account_repo
        self.pickup_delay = pickup_delay

        self.stop_event = asyncio.Event()
        self.last_report: Optional[RunReport] = None
        self._running = False
        self._run_job_ids: List[str] = []
        self._acquired: List[str] = []
        self._workers: List[SubmitWorker] = []
        self._teardown_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def workers(self) -> List[SubmitWorker]:
        return list(self._workers)

    async def run(
        self,
        accounts: List[Account],
        job_ids: Optional[List[str]] = None
    ) -> RunReport:
        """
        Run the selected jobs (default: all) across `accounts`

        Raises:
            RunInProgressError: Another run is active
            NoSessionsAvailable: Every account failed session acquisition
        """
        if self._running:
            raise RunInProgressError("A run is already in progress")

        self._running = True
        self.stop_event.clear()
        self._acquired = []
        self._workers = []
        report = RunReport()
        jobs_reset = False

        try:
            # 1. Filter
            jobs = [
                job for job in await self.store.list(job_ids)
                if job.status.is_runnable() and not job.payload.is_empty()
            ]
            self._run_job_ids = [job.id for job in jobs]
            if not jobs:
                logger.info("[RUN] No runnable jobs")
                self.last_report = report
                return report

            # 2. Acquire sessions, one account at a time
            sessions = await self._acquire_sessions(accounts, report)
            if not sessions:
                raise NoSessionsAvailable("No accounts could be initialized")
            if self.stop_event.is_set():
                report.stopped = True
                return report

            # Reset only once the run is certain to proceed
            for job in jobs:
                await self.store.update(job.reset())
            jobs_reset = True

            # 3. Slots
            slots: List[Tuple[Account, int]] = [
                (account, slot)
                for account in accounts if account.id in sessions
                for slot in range(account.concurrency)
            ]

            # 4. Shared FIFO queue by order
            queue = deque(job.id for job in sorted(jobs, key=lambda j: j.order))

            # 5. Workers
            self._workers = [
                SubmitWorker(
                    account=account,
                    slot_index=slot,
                    queue=queue,
                    store=self.store,
                    session_manager=self.session_manager,
                    broker=self.broker,
                    submitter=self.submitter,
                    poller=self.poller,
                    stop_event=self.stop_event,
                    pickup_delay=self.pickup_delay,
                )
                for account, slot in slots
            ]
            report.workers = len(self._workers)
            logger.info(
                f"[RUN] {len(jobs)} job(s), {len(self._workers)} worker(s) across {len(sessions)} account(s)"
            )

            await asyncio.gather(*(worker.start() for worker in self._workers))

            # 6. Join outstanding polls
            outstanding = sum(worker.outstanding for worker in self._workers)
            if outstanding:
                logger.info(f"[RUN] Submission phase over, waiting for {outstanding} poll(s)")
            await asyncio.gather(*(worker.drain() for worker in self._workers))

            report.stopped = self.stop_event.is_set()
            return report
        finally:
            # 7. Tear down
            if self._teardown_task is not None:
                await asyncio.gather(self._teardown_task, return_exceptions=True)
                self._teardown_task = None
            await self.session_manager.destroy_all(list(self._acquired))

            # 8. Report, only over jobs this run touched
            if jobs_reset:
                for job in await self.store.list(self._run_job_ids):
                    if job.status == JobStatus.DONE:
                        report.done += 1
                    elif job.status == JobStatus.ERROR:
                        report.error += 1
            self.last_report = report
            logger.info(f"[RUN] Finished: {report.done} done, {report.error} error")

            self.stop_event.clear()
            self._running = False

    async def _acquire_sessions(self, accounts: List[Account], report: RunReport) -> Dict[str, Session]:
        sessions: Dict[str, Session] = {}
        for account in accounts:
            if self.stop_event.is_set():
                break
            try:
                session = await self.session_manager.acquire(account)
            except ExpiredCredentialError as e:
                logger.error(f"[RUN] {account.email}: {e}, marking account expired")
                report.failed_accounts[account.id] = str(e)
                await self._mark_expired(account.id)
                continue
            except FlowBatchError as e:
                logger.error(f"[RUN] {account.email}: session init failed: {e}")
                report.failed_accounts[account.id] = str(e)
                continue
            except Exception as e:
                logger.error(f"[RUN] {account.email}: unexpected session error: {e}", exc_info=True)
                report.failed_accounts[account.id] = str(e)
                continue

            sessions[account.id] = session
            self._acquired.append(account.id)
            report.accounts.append(account.id)
        return sessions

    async def _mark_expired(self, account_id: str):
        if self.account_repo is None:
            return
        await self.account_repo.mark_expired(account_id)
        self.account_repo.commit()

    async def stop(self) -> int:
        """
        Cancel the active run

        Returns:
            Number of jobs moved to error/Stopped
        """
        if not self._running:
            return 0

        logger.warning("[RUN] Stop requested")
        self.stop_event.set()
        stopped = await self.store.mark_stopped(self._run_job_ids)
        if self._acquired and self._teardown_task is None:
            self._teardown_task = asyncio.create_task(
                self.session_manager.destroy_all(list(self._acquired))
            )
        return stopped
