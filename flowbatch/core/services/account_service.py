"""
Account Service - Business logic cho Account management
Implements: Single Responsibility Principle (SRP)
"""
from dataclasses import replace
from datetime import datetime
from typing import Optional, List
import logging

from ..domain.account import Account
from ..drivers.abstractions import GenerationClient
from ..exceptions import AccountNotFoundError
from ..repositories.account_repo import AccountRepository

logger = logging.getLogger(__name__)


def _parse_expiry(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class AccountService:
    """Service xử lý account business logic"""

    def __init__(
        self,
        account_repo: AccountRepository,
        client: Optional[GenerationClient] = None
    ):
        self.account_repo = account_repo
        self.client = client

    async def list_accounts(self) -> List[Account]:
        return await self.account_repo.get_all()

    async def get_account(self, account_id: str) -> Account:
        account = await self.account_repo.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    async def add_account(
        self,
        cookie: str,
        concurrency: int = 1,
        email: Optional[str] = None
    ) -> Account:
        """
        Add an account from a captured cookie header

        An existing account with the same email gets the new cookie
        (and loses its expired marker) instead of a duplicate.
        """
        account = Account.create(cookie, concurrency=concurrency, email=email)

        existing = None
        if account.email != "unknown":
            existing = await self.account_repo.get_by_email(account.email)
        if existing:
            account = existing.with_cookie(cookie)
            logger.info(f"[ACCOUNT] Updated cookie for {account.email}")
        else:
            logger.info(f"[ACCOUNT] Added {account.email} (concurrency={concurrency})")

        saved = await self.account_repo.save(account)
        self.account_repo.commit()
        return saved

    async def update_account(
        self,
        account_id: str,
        concurrency: Optional[int] = None,
        cookie: Optional[str] = None
    ) -> Account:
        account = await self.get_account(account_id)
        if cookie:
            account = account.with_cookie(cookie)
        if concurrency is not None:
            account = replace(account, concurrency=concurrency)

        saved = await self.account_repo.save(account)
        self.account_repo.commit()
        return saved

    async def mark_expired(self, account_id: str):
        if await self.account_repo.mark_expired(account_id):
            self.account_repo.commit()

    async def delete_account(self, account_id: str) -> bool:
        deleted = await self.account_repo.delete(account_id)
        if deleted:
            self.account_repo.commit()
        return deleted

    async def refresh_account(self, account_id: str) -> Account:
        """
        Check the cookie against the session-introspection endpoint

        No user in the response marks the account expired; otherwise the
        cookie expiry is recorded.
        """
        account = await self.get_account(account_id)
        if self.client is None:
            return account

        data = await self.client.fetch_auth_session(account.cookie)
        if not data or not data.get("user"):
            logger.warning(f"[ACCOUNT] {account.email}: session check found no user, marking expired")
            account = account.mark_expired()
        else:
            email = (data.get("user") or {}).get("email") or account.email
            account = replace(
                account,
                email=email,
                expired=False,
                cookie_expiry=_parse_expiry(data.get("expires")),
            )

        saved = await self.account_repo.save(account)
        self.account_repo.commit()
        return saved
