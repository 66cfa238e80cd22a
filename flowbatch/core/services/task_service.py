"""
Task Service - UI-facing job operations
Implements: Single Responsibility Principle (SRP)

Enqueue / edit / remove / reset jobs, start and stop runs. Runs execute in
a background task; their outcome is read back via status().
"""
import asyncio
import logging
from typing import Optional, List, Dict, Any

from ..domain.job import Job, JobPayload
from ..exceptions import NoSessionsAvailable, RunInProgressError
from ..repositories.account_repo import AccountRepository
from ..task_store import TaskStore
from ..workers.scheduler import Scheduler, RunReport

logger = logging.getLogger(__name__)


class TaskService:
    """Service để quản lý jobs và runs"""

    def __init__(
        self,
        store: TaskStore,
        scheduler: Scheduler,
        account_repo: AccountRepository
    ):
        self.store = store
        self.scheduler = scheduler
        self.account_repo = account_repo
        self.last_error: Optional[str] = None
        self._run_task: Optional[asyncio.Task] = None

    # ========== Jobs ==========

    async def list_jobs(self) -> List[Job]:
        return await self.store.list()

    async def get_job(self, job_id: str) -> Job:
        return await self.store.get(job_id)

    async def create_job(self, payload: JobPayload) -> Job:
        job = await self.store.enqueue(payload)
        logger.info(f"[JOBS] Enqueued {job}")
        return job

    async def bulk_create(self, text: str, defaults: Optional[Dict[str, Any]] = None) -> List[Job]:
        """
        One job per non-empty line of `text`, sharing `defaults`
        """
        defaults = dict(defaults or {})
        defaults.pop("prompt", None)
        payloads = [
            JobPayload.from_dict({**defaults, "prompt": line.strip()})
            for line in text.splitlines()
            if line.strip()
        ]
        jobs = await self.store.enqueue_many(payloads)
        logger.info(f"[JOBS] Bulk enqueued {len(jobs)} job(s)")
        return jobs

    async def update_job(self, job_id: str, **fields) -> Job:
        return await self.store.patch_payload(job_id, **fields)

    async def delete_jobs(self, job_ids: List[str]) -> int:
        removed = await self.store.remove(job_ids)
        logger.info(f"[JOBS] Removed {removed} job(s), next order #{self.store.next_order}")
        return removed

    async def reset_job(self, job_id: str) -> Job:
        return await self.store.reset(job_id)

    async def export_jobs(self) -> List[Dict[str, Any]]:
        return [job.payload.to_dict() for job in await self.store.list()]

    async def import_jobs(self, items: List[Dict[str, Any]]) -> List[Job]:
        payloads = [JobPayload.from_dict(item) for item in items]
        return await self.store.enqueue_many(payloads)

    # ========== Runs ==========

    def is_running(self) -> bool:
        return self.scheduler.is_running or (self._run_task is not None and not self._run_task.done())

    async def start_run(
        self,
        account_ids: Optional[List[str]] = None,
        job_ids: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Start a run in the background

        Raises:
            RunInProgressError: Another run is active
            NoSessionsAvailable: No account selected / available
        """
        if self.is_running():
            raise RunInProgressError("A run is already in progress")

        if account_ids:
            accounts = await self.account_repo.get_many(account_ids)
        else:
            accounts = [a for a in await self.account_repo.get_all() if not a.expired]
        if not accounts:
            raise NoSessionsAvailable("No accounts selected")

        self.last_error = None
        self._run_task = asyncio.create_task(self._run(accounts, job_ids))
        logger.info(f"[RUN] Started with {len(accounts)} account(s)")
        return {
            "accounts": [a.id for a in accounts],
            "workers": sum(a.concurrency for a in accounts),
        }

    async def _run(self, accounts, job_ids) -> Optional[RunReport]:
        try:
            return await self.scheduler.run(accounts, job_ids)
        except NoSessionsAvailable as e:
            logger.error(f"[RUN] Aborted: {e}")
            self.last_error = str(e)
        except RunInProgressError as e:
            self.last_error = str(e)
        except Exception as e:
            logger.error(f"[RUN] Crashed: {e}", exc_info=True)
            self.last_error = str(e)
        return None

    async def wait_for_run(self) -> Optional[RunReport]:
        if self._run_task is None:
            return None
        return await self._run_task

    async def stop_run(self) -> int:
        stopped = await self.scheduler.stop()
        logger.warning(f"[RUN] Stopped, {stopped} job(s) marked 'Stopped'")
        return stopped

    def status(self) -> Dict[str, Any]:
        report = self.scheduler.last_report
        return {
            "running": self.is_running(),
            "last_report": report.to_dict() if report else None,
            "last_error": self.last_error,
            "next_order": self.store.next_order,
        }
