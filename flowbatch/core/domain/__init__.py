"""
Domain Models Package

Value objects and aggregates for accounts, sessions and jobs,
independent of infrastructure.
"""

from .account import (
    Account,
    parse_cookie_header
)

from .session import (
    Session,
    SessionStatus
)

from .job import (
    Job,
    JobPayload,
    JobStatus,
    Operation,
    OperationStatus,
    VideoType,
    VALID_JOB_TRANSITIONS,
    merge_operations,
    new_job_id
)

__all__ = [
    # Account
    "Account",
    "parse_cookie_header",

    # Session
    "Session",
    "SessionStatus",

    # Job
    "Job",
    "JobPayload",
    "JobStatus",
    "Operation",
    "OperationStatus",
    "VideoType",
    "VALID_JOB_TRANSITIONS",
    "merge_operations",
    "new_job_id"
]
