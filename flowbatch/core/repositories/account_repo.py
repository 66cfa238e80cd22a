"""
Account Repository

Per-account credential records, whole-document replace keyed by account id.
"""

from typing import Optional, List
from .base import BaseRepository
from ..domain.account import Account
from ...models import Account as AccountModel


class AccountRepository(BaseRepository[Account]):
    """
    Repository cho Account aggregate
    """

    async def get_by_id(self, id: str) -> Optional[Account]:
        """
        Lấy account theo ID
        """
        orm_account = self.session.query(AccountModel).filter_by(id=id).first()
        return Account.from_orm(orm_account) if orm_account else None

    async def get_by_email(self, email: str) -> Optional[Account]:
        orm_account = self.session.query(AccountModel).filter_by(email=email).first()
        return Account.from_orm(orm_account) if orm_account else None

    async def get_all(self) -> List[Account]:
        orm_accounts = (
            self.session.query(AccountModel)
            .order_by(AccountModel.created_at.asc(), AccountModel.id.asc())
            .all()
        )
        return [Account.from_orm(acc) for acc in orm_accounts]

    async def get_many(self, ids: List[str]) -> List[Account]:
        """
        Lấy accounts theo danh sách ID, giữ nguyên thứ tự của `ids`

        Unknown ids are skipped.
        """
        if not ids:
            return []
        orm_accounts = self.session.query(AccountModel).filter(AccountModel.id.in_(ids)).all()
        by_id = {acc.id: Account.from_orm(acc) for acc in orm_accounts}
        return [by_id[i] for i in ids if i in by_id]

    async def save(self, account: Account) -> Account:
        orm_account = self.session.query(AccountModel).filter_by(id=account.id).first()
        if orm_account is None:
            orm_account = AccountModel(**account.to_orm_dict())
            self.session.add(orm_account)
        else:
            for key, value in account.to_orm_dict().items():
                setattr(orm_account, key, value)

        self.flush()
        return Account.from_orm(orm_account)

    async def mark_expired(self, account_id: str) -> Optional[Account]:
        """
        Đánh dấu account cần đăng nhập lại

        Returns:
            Updated account or None if not found
        """
        orm_account = self.session.query(AccountModel).filter_by(id=account_id).first()
        if not orm_account:
            return None
        orm_account.expired = True
        self.flush()
        return Account.from_orm(orm_account)

    async def delete(self, id: str) -> bool:
        orm_account = self.session.query(AccountModel).filter_by(id=id).first()
        if not orm_account:
            return False
        self.session.delete(orm_account)
        self.flush()
        return True
