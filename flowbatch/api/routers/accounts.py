"""
Accounts Router
Implements: Single Responsibility Principle (SRP)

This router handles all account-related endpoints:
- Add (from captured cookie header), list, delete
- Concurrency budget / cookie update
- Cookie validity refresh
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from ...core.domain.account import Account
from ...core.exceptions import AccountNotFoundError
from ...core.services.account_service import AccountService
from ..dependencies import get_account_service

import logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


# ========== Schemas ==========
class AccountCreate(BaseModel):
    """Schema for adding an account"""
    cookie: str
    concurrency: int = Field(default=1, ge=1)
    email: Optional[str] = None


class AccountUpdate(BaseModel):
    concurrency: Optional[int] = Field(default=None, ge=1)
    cookie: Optional[str] = None


class AccountResponse(BaseModel):
    """Schema for account response (cookie never returned)"""
    id: str
    email: str
    concurrency: int
    expired: bool = False
    cookie_expiry: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    @staticmethod
    def from_domain(account: Account) -> "AccountResponse":
        return AccountResponse(
            id=account.id,
            email=account.email,
            concurrency=account.concurrency,
            expired=account.expired,
            cookie_expiry=account.cookie_expiry,
            created_at=account.created_at,
            last_used_at=account.last_used_at
        )


# ========== Endpoints ==========
@router.get("/", response_model=List[AccountResponse])
async def list_accounts(service: AccountService = Depends(get_account_service)):
    accounts = await service.list_accounts()
    return [AccountResponse.from_domain(a) for a in accounts]


@router.post("/", response_model=AccountResponse)
async def create_account(
    data: AccountCreate,
    service: AccountService = Depends(get_account_service)
):
    """
    Add an account from a cookie header

    Raises:
        HTTPException 400: Empty cookie / invalid concurrency
    """
    try:
        account = await service.add_account(data.cookie, concurrency=data.concurrency, email=data.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AccountResponse.from_domain(account)


@router.patch("/{account_id}", response_model=AccountResponse)
async def update_account(
    account_id: str,
    data: AccountUpdate,
    service: AccountService = Depends(get_account_service)
):
    try:
        account = await service.update_account(account_id, concurrency=data.concurrency, cookie=data.cookie)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AccountResponse.from_domain(account)


@router.post("/{account_id}/refresh", response_model=AccountResponse)
async def refresh_account(
    account_id: str,
    service: AccountService = Depends(get_account_service)
):
    """Check the cookie against the session endpoint (updates expiry / expired flag)"""
    try:
        account = await service.refresh_account(account_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    return AccountResponse.from_domain(account)


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    service: AccountService = Depends(get_account_service)
):
    deleted = await service.delete_account(account_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"ok": True}
