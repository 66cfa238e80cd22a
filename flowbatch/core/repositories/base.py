"""
Base Repository

Abstract base class for all repositories.
Repositories flush; callers commit.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Optional, List
from sqlalchemy.orm import Session

T = TypeVar('T')


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository với CRUD operations cơ bản

    Generic[T]: T là domain model type (Account, Session, Job)
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session
        """
        self.session = session

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[T]:
        """
        Lấy entity theo ID

        Returns:
            Domain model or None if not found
        """
        pass

    @abstractmethod
    async def get_all(self) -> List[T]:
        pass

    @abstractmethod
    async def save(self, entity: T) -> T:
        """
        Insert or replace the whole record keyed by id

        Returns:
            Saved domain model
        """
        pass

    @abstractmethod
    async def delete(self, id: str) -> bool:
        """
        Returns:
            True if deleted, False if not found
        """
        pass

    def commit(self):
        """
        Commit transaction

        Call this after save/delete operations
        """
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def flush(self):
        self.session.flush()
