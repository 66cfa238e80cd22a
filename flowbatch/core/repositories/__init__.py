"""
Repository Pattern Implementation

High-level code (task store, session manager, services) depends on these
repositories; SQLAlchemy stays behind them.
"""

from .base import BaseRepository
from .account_repo import AccountRepository
from .session_repo import SessionRepository
from .job_repo import JobRepository

__all__ = [
    "BaseRepository",
    "AccountRepository",
    "SessionRepository",
    "JobRepository"
]
