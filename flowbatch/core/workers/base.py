"""
Base Worker Class

A worker is one logical concurrency slot: it pulls tasks one at a time
until the source is drained or the stop event is set. Follow-up coroutines
(e.g. polls) run in the background and are joined through drain().
"""
from abc import ABC, abstractmethod
import asyncio
import logging
from typing import Optional, Any, Coroutine, Set

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """Abstract base class cho workers"""

    def __init__(
        self,
        name: str,
        stop_event: Optional[asyncio.Event] = None,
        pickup_delay: float = 0.0
    ):
        self.name = name
        self.stop_event = stop_event or asyncio.Event()
        self.pickup_delay = pickup_delay
        self.processed = 0
        self._running = False
        self._tasks: Set[asyncio.Task] = set()

    @abstractmethod
    async def process_task(self, task: Any):
        """Process một task - Must be implemented by subclasses"""
        pass

    @abstractmethod
    def next_task(self) -> Optional[Any]:
        """Next task or None when nothing is left for this worker"""
        pass

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Run the worker loop until drained or stopped"""
        if self._running:
            logger.warning(f"{self.name} already running")
            return

        self._running = True
        logger.info(f"[START] {self.name} started")

        try:
            await self._worker_loop()
        except Exception as e:
            logger.error(f"[ERROR] {self.name} crashed: {e}", exc_info=True)
        finally:
            self._running = False
            logger.info(f"[STOP] {self.name} finished ({self.processed} task(s))")

    async def _worker_loop(self):
        while not self.stop_event.is_set():
            task = self.next_task()
            if task is None:
                break

            await self.process_task(task)
            self.processed += 1

            if self.pickup_delay and not self.stop_event.is_set():
                await asyncio.sleep(self.pickup_delay)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run `coro` in the background, tracked until drain()"""
        task = asyncio.create_task(coro, name=f"{self.name}_bg_{len(self._tasks)}")
        self._tasks.add(task)
        return task

    @property
    def outstanding(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def drain(self):
        """Wait for every background task spawned by this worker"""
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"[ERROR] {self.name} background task failed: {result}")
        self._tasks.clear()
