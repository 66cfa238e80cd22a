"""
Account Domain Model

An Account is a credentialed identity (captured labs.google cookie header)
with a concurrency budget. The scheduler never mutates it except to mark
it expired.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict
from datetime import datetime
import uuid
from urllib.parse import unquote


def parse_cookie_header(cookie: str) -> Dict[str, str]:
    """
    Split a "name=value; name2=value2" header into a dict

    Values may themselves contain "=".
    """
    cookies = {}
    for part in (cookie or "").split(";"):
        part = part.strip()
        if not part or "=" not in part:
            continue
        name, value = part.split("=", 1)
        cookies[name.strip()] = value.strip()
    return cookies


@dataclass(frozen=True)
class Account:
    """
    Aggregate Root cho Account
    """
    id: str
    email: str
    cookie: str
    concurrency: int = 1
    expired: bool = False
    cookie_expiry: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.cookie or not self.cookie.strip():
            raise ValueError("Cookie cannot be empty")
        if self.concurrency < 1:
            raise ValueError("concurrency must be a positive integer")

    @staticmethod
    def create(cookie: str, concurrency: int = 1, email: Optional[str] = None) -> 'Account':
        """
        Tạo account mới từ cookie header

        Email defaults to the EMAIL cookie (URL-encoded by the service) when present.
        """
        if not email:
            raw = parse_cookie_header(cookie).get("EMAIL", "")
            email = unquote(raw).strip('"') or "unknown"
        return Account(
            id=uuid.uuid4().hex,
            email=email,
            cookie=cookie.strip(),
            concurrency=concurrency,
        )

    def cookies(self) -> Dict[str, str]:
        return parse_cookie_header(self.cookie)

    def mark_expired(self) -> 'Account':
        return replace(self, expired=True)

    def with_cookie(self, cookie: str) -> 'Account':
        """New cookie header clears the expired marker"""
        return replace(self, cookie=cookie.strip(), expired=False)

    @staticmethod
    def from_orm(orm_account) -> 'Account':
        """
        Convert từ SQLAlchemy ORM model sang Domain model
        """
        return Account(
            id=orm_account.id,
            email=orm_account.email or "unknown",
            cookie=orm_account.cookie,
            concurrency=orm_account.concurrency or 1,
            expired=bool(orm_account.expired),
            cookie_expiry=orm_account.cookie_expiry,
            created_at=orm_account.created_at or datetime.utcnow(),
            last_used_at=orm_account.last_used_at,
        )

    def to_orm_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "cookie": self.cookie,
            "concurrency": self.concurrency,
            "expired": self.expired,
            "cookie_expiry": self.cookie_expiry,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
        }

    def __str__(self) -> str:
        return f"Account(id={self.id[:8]}, email={self.email}, concurrency={self.concurrency})"

    def __repr__(self) -> str:
        return self.__str__()
