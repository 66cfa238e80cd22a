"""
Session Domain Model

One live browser profile per account. Status flips busy <-> ready around
each token-brokering call.
"""

from dataclasses import dataclass, field
from typing import Optional
from datetime import datetime
from enum import Enum

from ..exceptions import SessionBusyError


class SessionStatus(str, Enum):
    READY = "ready"
    BUSY = "busy"
    ERROR = "error"


@dataclass
class Session:
    """
    Entity cho browser session (mutable status)

    Attributes:
        account_id: Owning account
        profile_id: GPM-Login profile id (the environment locator)
        provider_url: GPM-Login API base url the profile lives on
        debug_address: CDP remote debugging address ("host:port")
        reused: True when acquire() returned a pre-existing live profile
    """
    account_id: str
    profile_id: str
    provider_url: str
    debug_address: str
    status: SessionStatus = SessionStatus.READY
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used_at: Optional[datetime] = None
    reused: bool = False

    @property
    def session_handle(self) -> str:
        return self.profile_id

    def is_usable(self) -> bool:
        return self.status != SessionStatus.ERROR

    def mark_busy(self):
        """
        Raises:
            SessionBusyError: Session is not ready
        """
        if self.status != SessionStatus.READY:
            raise SessionBusyError(
                f"Session for account {self.account_id} is {self.status.value}, expected ready"
            )
        self.status = SessionStatus.BUSY
        self.last_used_at = datetime.utcnow()

    def mark_ready(self):
        if self.status == SessionStatus.BUSY:
            self.status = SessionStatus.READY

    def mark_error(self):
        self.status = SessionStatus.ERROR

    @staticmethod
    def from_orm(orm_session) -> 'Session':
        status = SessionStatus(orm_session.status or SessionStatus.READY.value)
        return Session(
            account_id=orm_session.account_id,
            profile_id=orm_session.profile_id,
            provider_url=orm_session.provider_url,
            debug_address=orm_session.debug_address,
            # busy is never meaningful across processes
            status=SessionStatus.READY if status == SessionStatus.BUSY else status,
            created_at=orm_session.created_at or datetime.utcnow(),
            last_used_at=orm_session.last_used_at,
        )

    def to_orm_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "profile_id": self.profile_id,
            "provider_url": self.provider_url,
            "debug_address": self.debug_address,
            "status": self.status.value,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
        }
