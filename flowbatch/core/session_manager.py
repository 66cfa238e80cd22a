"""
Session Manager

Owns the account -> browser session mapping:
- acquire: reuse a live persisted profile or start a fresh one
- lease: per-account mutual exclusion for token brokering + submission
- destroy / destroy_all: best-effort teardown (provider errors are logged)
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from .domain.account import Account
from .domain.session import Session, SessionStatus
from .drivers.abstractions import EnvironmentProvider, AutomationDriver, BrowserPage
from .drivers.cookies import to_browser_cookies
from .exceptions import (
    FlowBatchError,
    SessionStartError,
    ExpiredCredentialError,
    SessionLostError,
    PageActionError
)
from .repositories.session_repo import SessionRepository

logger = logging.getLogger(__name__)

CHALLENGE_WIDGET_PROBE = "() => !!(window.grecaptcha && window.grecaptcha.enterprise)"


class SessionManager:
    def __init__(
        self,
        provider: EnvironmentProvider,
        driver: AutomationDriver,
        session_repo: Optional[SessionRepository] = None,
        service_base_url: str = "https://labs.google",
        flow_url: str = "https://labs.google/fx/tools/flow",
        start_attempts: int = 5,
        start_delay: float = 3.0,
        settle_delay: float = 5.0
    ):
        self.provider = provider
        self.driver = driver
        self.session_repo = session_repo
        self.service_base_url = service_base_url
        self.flow_url = flow_url
        self.start_attempts = start_attempts
        self.start_delay = start_delay
        self.settle_delay = settle_delay

        self._sessions: Dict[str, Session] = {}

        # Key: account_id, Value: asyncio.Lock
        self._account_locks: Dict[str, asyncio.Lock] = {}
        self._account_locks_mutex = asyncio.Lock()

    async def get_account_lock(self, account_id: str) -> asyncio.Lock:
        """Get or create the lock serializing acquire/broker/submit for one account"""
        async with self._account_locks_mutex:
            if account_id not in self._account_locks:
                self._account_locks[account_id] = asyncio.Lock()
            return self._account_locks[account_id]

    def get(self, account_id: str) -> Optional[Session]:
        return self._sessions.get(account_id)

    def has_usable_session(self, account_id: str) -> bool:
        session = self._sessions.get(account_id)
        return session is not None and session.is_usable()

    # ========== Acquire ==========

    async def acquire(self, account: Account) -> Session:
        """
        Return a ready session for `account`

        Raises:
            SessionStartError: Environment failed to start after bounded retries
            ExpiredCredentialError: Challenge widget absent after navigation
        """
        lock = await self.get_account_lock(account.id)
        async with lock:
            session = await self._find_live(account.id)
            if session:
                session.reused = True
                session.status = SessionStatus.READY
                self._sessions[account.id] = session
                logger.info(f"[SESSION] Reusing live profile {session.profile_id} for {account.email}")
                return session

            session = await self._start_new(account)
            self._sessions[account.id] = session
            await self._persist(session)
            logger.info(f"[SESSION] [OK] Session ready for {account.email} (profile {session.profile_id})")
            return session

    async def _find_live(self, account_id: str) -> Optional[Session]:
        candidate = self._sessions.get(account_id)
        if candidate is None and self.session_repo is not None:
            candidate = await self.session_repo.get_by_id(account_id)
        if candidate is None:
            return None

        if candidate.status != SessionStatus.ERROR:
            try:
                state = await self.provider.status(candidate.profile_id, api_url=candidate.provider_url)
            except FlowBatchError as e:
                logger.warning(f"[SESSION] Liveness probe failed for {candidate.profile_id}: {e}")
                state = "stopped"
            if state == "running":
                return candidate

        logger.info(f"[SESSION] Stored profile {candidate.profile_id} is not running, discarding")
        await self._discard(candidate)
        return None

    async def _start_new(self, account: Account) -> Session:
        api_url = await self.provider.discover()
        profile_name = f"flow-{account.email}-{int(time.time())}"
        profile_id = await self.provider.create(profile_name)

        debug_address = None
        try:
            debug_address, page = await self._start_and_connect(profile_id)
            await self._open_authenticated(page, account)
        except ExpiredCredentialError:
            logger.warning(f"[SESSION] Cookie expired for {account.email}, deleting profile {profile_id}")
            await self._teardown(profile_id, api_url, debug_address)
            raise
        except (SessionLostError, PageActionError) as e:
            await self._teardown(profile_id, api_url, debug_address)
            raise SessionStartError(f"Session setup failed for {account.email}: {e}") from e
        except SessionStartError:
            await self._teardown(profile_id, api_url, debug_address)
            raise

        return Session(
            account_id=account.id,
            profile_id=profile_id,
            provider_url=api_url,
            debug_address=debug_address,
            status=SessionStatus.READY,
            created_at=datetime.utcnow(),
        )

    async def _start_and_connect(self, profile_id: str):
        """
        Start the profile and attach the driver, fixed attempts x fixed delay

        Raises:
            SessionStartError: All attempts exhausted
        """
        debug_address = None
        last_error: Optional[Exception] = None

        for attempt in range(1, self.start_attempts + 1):
            try:
                if debug_address is None:
                    debug_address = await self.provider.start(profile_id)
                page = await self.driver.connect(debug_address)
                return debug_address, page
            except (SessionStartError, SessionLostError) as e:
                last_error = e
                logger.warning(
                    f"[SESSION] Start attempt {attempt}/{self.start_attempts} for {profile_id} failed: {e}"
                )
                if attempt < self.start_attempts:
                    await asyncio.sleep(self.start_delay)

        raise SessionStartError(
            f"Profile {profile_id} did not start after {self.start_attempts} attempts: {last_error}"
        )

    async def _open_authenticated(self, page: BrowserPage, account: Account):
        await page.goto(self.service_base_url, wait_until="domcontentloaded", timeout=30)
        await page.add_cookies(to_browser_cookies(account.cookie))
        await page.goto(self.flow_url, wait_until="networkidle", timeout=60)
        await asyncio.sleep(self.settle_delay)

        if not await page.evaluate(CHALLENGE_WIDGET_PROBE):
            raise ExpiredCredentialError(account.id)

    # ========== Lease / release ==========

    @asynccontextmanager
    async def lease(self, account_id: str):
        """
        Exclusive use of an account's session

        Raises:
            SessionLostError: No usable session for the account
        """
        lock = await self.get_account_lock(account_id)
        async with lock:
            session = self._sessions.get(account_id)
            if session is None or not session.is_usable():
                raise SessionLostError(f"No usable session for account {account_id}")
            try:
                yield session
            finally:
                self.release(session)

    def release(self, session: Session):
        """Mark ready for reuse; the environment keeps running"""
        session.mark_ready()
        session.last_used_at = datetime.utcnow()

    # ========== Teardown ==========

    async def destroy(self, account_id: str) -> bool:
        """
        Stop and delete an account's environment, drop its record

        Never waits for in-flight calls and never raises on provider errors.

        Returns:
            True if a session existed
        """
        session = self._sessions.pop(account_id, None)
        if session is None and self.session_repo is not None:
            session = await self.session_repo.get_by_id(account_id)
        if session is None:
            return False

        session.mark_error()
        await self._teardown(session.profile_id, session.provider_url, session.debug_address)
        await self._forget(account_id)
        logger.info(f"[SESSION] Destroyed session for account {account_id}")
        return True

    async def destroy_all(self, account_ids: Optional[List[str]] = None) -> int:
        """
        Destroy sessions for `account_ids` (default: every known session)

        Returns:
            Number of sessions destroyed
        """
        if account_ids is None:
            account_ids = list(self._sessions)
            if self.session_repo is not None:
                for record in await self.session_repo.get_all():
                    if record.account_id not in account_ids:
                        account_ids.append(record.account_id)

        destroyed = 0
        for account_id in account_ids:
            if await self.destroy(account_id):
                destroyed += 1
        if destroyed:
            logger.info(f"[SESSION] Closed {destroyed} session(s)")
        return destroyed

    async def list_sessions(self) -> List[Session]:
        sessions = dict(self._sessions)
        if self.session_repo is not None:
            for record in await self.session_repo.get_all():
                sessions.setdefault(record.account_id, record)
        return list(sessions.values())

    async def close(self):
        """Release driver connections without stopping environments"""
        await self.driver.close()

    async def _teardown(self, profile_id: str, api_url: Optional[str], debug_address: Optional[str]):
        if debug_address:
            try:
                await self.driver.disconnect(debug_address)
            except Exception as e:
                logger.warning(f"[SESSION] Disconnect {debug_address} failed: {e}")
        try:
            await self.provider.stop(profile_id, api_url=api_url)
        except Exception as e:
            logger.warning(f"[SESSION] Stop profile {profile_id} failed: {e}")
        try:
            await self.provider.delete(profile_id, api_url=api_url)
        except Exception as e:
            logger.warning(f"[SESSION] Delete profile {profile_id} failed: {e}")

    async def _discard(self, session: Session):
        self._sessions.pop(session.account_id, None)
        await self._teardown(session.profile_id, session.provider_url, session.debug_address)
        await self._forget(session.account_id)

    async def _persist(self, session: Session):
        if self.session_repo is None:
            return
        await self.session_repo.save(session)
        self.session_repo.commit()

    async def _forget(self, account_id: str):
        if self.session_repo is None:
            return
        if await self.session_repo.delete(account_id):
            self.session_repo.commit()
