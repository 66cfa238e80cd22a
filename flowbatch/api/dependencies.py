"""
FastAPI Dependencies

Request-scoped repositories come from a fresh database session;
long-lived components (task service, session manager) come from the
container singletons.

Usage in endpoints:
    @router.get("/accounts")
    async def list_accounts(
        service: AccountService = Depends(get_account_service)
    ):
        return await service.list_accounts()
"""

from typing import Generator
from fastapi import Depends
from sqlalchemy.orm import Session
from ..core.container import container
from ..core.repositories.account_repo import AccountRepository
from ..core.services.account_service import AccountService
from ..core.services.task_service import TaskService
from ..core.session_manager import SessionManager


# ========== Database Session ==========
def get_db() -> Generator[Session, None, None]:
    """
    Dependency để lấy database session

    Yields:
        SQLAlchemy Session
    """
    db = container.db_session()
    try:
        yield db
    finally:
        db.close()


# ========== Repositories ==========
def get_account_repository(db: Session = Depends(get_db)) -> AccountRepository:
    return container.account_repository(session=db)


# ========== Services ==========
def get_account_service(
    account_repo: AccountRepository = Depends(get_account_repository)
) -> AccountService:
    """
    Dependency để lấy AccountService

    Args:
        account_repo: AccountRepository (auto-injected)
    """
    return AccountService(account_repo, container.client())


def get_task_service() -> TaskService:
    return container.task_service()


def get_session_manager() -> SessionManager:
    return container.session_manager()
