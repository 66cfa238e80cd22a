"""
Workers Package

- BaseWorker: slot loop + tracked background tasks
- SubmitWorker: one per (account, concurrency slot)
- OperationPoller: drives a submitted job to done/error
- Scheduler: builds the pool for a run, joins it, tears sessions down
"""
from .base import BaseWorker
from .poll_worker import OperationPoller
from .submit_worker import SubmitWorker
from .scheduler import Scheduler, RunReport

__all__ = [
    "BaseWorker",
    "OperationPoller",
    "SubmitWorker",
    "Scheduler",
    "RunReport"
]
