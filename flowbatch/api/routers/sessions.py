"""
Sessions Router

Manual session lifecycle ("init once, run many jobs"):
list, init one account's session, close one, close all.
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime
from ...core.domain.session import Session
from ...core.exceptions import AccountNotFoundError, ExpiredCredentialError, SessionStartError
from ...core.services.account_service import AccountService
from ...core.session_manager import SessionManager
from ..dependencies import get_account_service, get_session_manager

import logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionResponse(BaseModel):
    account_id: str
    profile_id: str
    provider_url: str
    debug_address: str
    status: str
    created_at: datetime
    last_used_at: Optional[datetime] = None
    reused: bool = False

    @staticmethod
    def from_domain(session: Session) -> "SessionResponse":
        return SessionResponse(
            account_id=session.account_id,
            profile_id=session.profile_id,
            provider_url=session.provider_url,
            debug_address=session.debug_address,
            status=session.status.value,
            created_at=session.created_at,
            last_used_at=session.last_used_at,
            reused=session.reused
        )


@router.get("/", response_model=List[SessionResponse])
async def list_sessions(manager: SessionManager = Depends(get_session_manager)):
    sessions = await manager.list_sessions()
    return [SessionResponse.from_domain(s) for s in sessions]


@router.post("/{account_id}", response_model=SessionResponse)
async def init_session(
    account_id: str,
    manager: SessionManager = Depends(get_session_manager),
    accounts: AccountService = Depends(get_account_service)
):
    """
    Acquire (reuse or start) the session for one account

    Raises:
        HTTPException 404: Unknown account
        HTTPException 401: Cookie expired (account marked expired)
        HTTPException 502: Environment failed to start
    """
    try:
        account = await accounts.get_account(account_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")

    try:
        session = await manager.acquire(account)
    except ExpiredCredentialError as e:
        await accounts.mark_expired(account_id)
        raise HTTPException(status_code=401, detail=str(e))
    except SessionStartError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return SessionResponse.from_domain(session)


@router.delete("/{account_id}")
async def close_session(
    account_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    closed = await manager.destroy(account_id)
    if not closed:
        raise HTTPException(status_code=404, detail="No session for account")
    return {"ok": True}


@router.delete("/")
async def close_all_sessions(manager: SessionManager = Depends(get_session_manager)):
    closed = await manager.destroy_all()
    return {"ok": True, "closed": closed}
