"""
Services Package

UI-facing operations on top of the core components.
"""
from .account_service import AccountService
from .task_service import TaskService

__all__ = [
    "AccountService",
    "TaskService"
]
