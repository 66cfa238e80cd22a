"""
Session Repository

Per-account active-session records so a later process can find and
reuse live browser profiles.
"""

from typing import Optional, List
from .base import BaseRepository
from ..domain.session import Session
from ...models import BrowserSession as SessionModel


class SessionRepository(BaseRepository[Session]):
    """
    Repository cho Session records (keyed by account id)
    """

    async def get_by_id(self, id: str) -> Optional[Session]:
        orm_session = self.session.query(SessionModel).filter_by(account_id=id).first()
        return Session.from_orm(orm_session) if orm_session else None

    async def get_all(self) -> List[Session]:
        orm_sessions = (
            self.session.query(SessionModel)
            .order_by(SessionModel.created_at.asc())
            .all()
        )
        return [Session.from_orm(s) for s in orm_sessions]

    async def save(self, entity: Session) -> Session:
        orm_session = self.session.query(SessionModel).filter_by(account_id=entity.account_id).first()
        if orm_session is None:
            orm_session = SessionModel(**entity.to_orm_dict())
            self.session.add(orm_session)
        else:
            for key, value in entity.to_orm_dict().items():
                setattr(orm_session, key, value)

        self.flush()
        return entity

    async def delete(self, id: str) -> bool:
        orm_session = self.session.query(SessionModel).filter_by(account_id=id).first()
        if not orm_session:
            return False
        self.session.delete(orm_session)
        self.flush()
        return True
