from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from .database import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, index=True)
    cookie = Column(Text, nullable=False)  # raw "name=value; ..." header
    concurrency = Column(Integer, default=1)  # worker slots ("threads")

    expired = Column(Boolean, default=False)  # set on ExpiredCredentialError
    cookie_expiry = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class BrowserSession(Base):
    __tablename__ = "browser_sessions"

    # One session per account
    account_id = Column(String, primary_key=True, index=True)
    profile_id = Column(String, nullable=False)
    provider_url = Column(String, nullable=False)
    debug_address = Column(String, nullable=False)
    status = Column(String, default="ready")  # ready, busy, error

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String, primary_key=True, index=True)
    order = Column(Integer, index=True)
    payload = Column(JSON, nullable=False)  # prompt + generation parameters

    status = Column(String, default="pending")  # pending, queued, getting-token, uploading, polling, done, error
    status_text = Column(String, nullable=True)
    error = Column(Text, nullable=True)

    account_id = Column(String, nullable=True)
    operations = Column(JSON, nullable=True)  # [{operation_name, scene_id, status, media_url, error}]
    results = Column(JSON, nullable=True)  # [media_url]

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True, index=True)
    value = Column(String)
