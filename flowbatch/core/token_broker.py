"""
Credential / Token Broker

Mints the two short-lived artifacts a submission needs from a live session:
- auth token: harvested by ordered page-fact extractors
- challenge token: always actively solved (reCAPTCHA Enterprise)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from .domain.session import Session
from .drivers.abstractions import AutomationDriver, BrowserPage
from .exceptions import (
    ChallengeUnavailableError,
    TokenAcquisitionError,
    SessionLostError,
    PageActionError
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrokeredTokens:
    auth_token: str
    challenge_token: str

    def __iter__(self):
        return iter((self.auth_token, self.challenge_token))


def _strip_bearer(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


# ========== Page fact extractors ==========

class PageFactExtractor(ABC):
    """One strategy for reading a fact (the auth token) out of a page"""

    name = "extractor"

    @abstractmethod
    async def extract(self, page: BrowserPage) -> Optional[str]:
        pass


class SessionEndpointExtractor(PageFactExtractor):
    """Query the session-introspection endpoint from inside the page"""

    name = "session-endpoint"

    SCRIPT = """async (url) => {
        const res = await fetch(url, { credentials: "include" });
        if (!res.ok) return null;
        const data = await res.json();
        return data.accessToken || data.access_token || (data.user && data.user.accessToken) || null;
    }"""

    def __init__(self, session_endpoint: str):
        self.session_endpoint = session_endpoint

    async def extract(self, page: BrowserPage) -> Optional[str]:
        return _strip_bearer(await page.evaluate(self.SCRIPT, self.session_endpoint))


class NextDataExtractor(PageFactExtractor):
    """Read the embedded __NEXT_DATA__ page-state blob"""

    name = "next-data"

    SCRIPT = """() => {
        const el = document.getElementById("__NEXT_DATA__");
        if (!el) return null;
        try {
            const data = JSON.parse(el.textContent);
            const session = data.props && data.props.pageProps && data.props.pageProps.session;
            return (session && session.accessToken) || null;
        } catch (e) {
            return null;
        }
    }"""

    async def extract(self, page: BrowserPage) -> Optional[str]:
        return _strip_bearer(await page.evaluate(self.SCRIPT))


class InterceptedHeaderExtractor(PageFactExtractor):
    """
    Fire a zero-effect backend call (empty requests list) and harvest the
    Authorization header from the outgoing request
    """

    name = "intercepted-header"

    TRIGGER = """() => {
        fetch("%(url)s", {
            method: "POST",
            credentials: "include",
            headers: { "Content-Type": "text/plain;charset=UTF-8" },
            body: JSON.stringify({
                clientContext: {
                    sessionId: ";" + Date.now(),
                    tool: "PINHOLE",
                    userPaygateTier: "%(tier)s"
                },
                requests: []
            })
        }).catch(() => null);
        return true;
    }"""

    def __init__(self, api_base_url: str, paygate_tier: str, timeout: float = 8.0):
        self.url = f"{api_base_url.rstrip('/')}/video:batchAsyncGenerateVideoText"
        self.paygate_tier = paygate_tier
        self.timeout = timeout

    async def extract(self, page: BrowserPage) -> Optional[str]:
        header = await page.capture_request_header(
            url_fragment="aisandbox-pa.googleapis.com",
            header="authorization",
            trigger=self.TRIGGER % {"url": self.url, "tier": self.paygate_tier},
            timeout=self.timeout,
        )
        return _strip_bearer(header)


# ========== Broker ==========

CHALLENGE_SCRIPT = """async ([siteKey, action]) => {
    const enterprise = window.grecaptcha && window.grecaptcha.enterprise;
    if (!enterprise) return null;
    await new Promise((resolve) => enterprise.ready(resolve));
    return await enterprise.execute(siteKey, { action: action });
}"""


class TokenBroker:
    def __init__(
        self,
        driver: AutomationDriver,
        extractors: List[PageFactExtractor],
        site_key: str,
        action: str = "VIDEO_GENERATION",
        extractor_timeout: float = 10.0
    ):
        self.driver = driver
        self.extractors = extractors
        self.site_key = site_key
        self.action = action
        self.extractor_timeout = extractor_timeout

    async def get_token(self, session: Session) -> BrokeredTokens:
        """
        Broker (auth token, challenge token) through `session`

        The session must be ready; it is busy for the duration of the call.

        Raises:
            SessionBusyError: Session not ready
            SessionLostError: Browser no longer answers (session marked error)
            TokenAcquisitionError: No strategy yielded an auth token
            ChallengeUnavailableError: Challenge could not be solved
        """
        session.mark_busy()
        try:
            try:
                page = await self.driver.connect(session.debug_address)
                auth_token = await self._extract_auth_token(page)
                challenge_token = await self._solve_challenge(page)
            except SessionLostError:
                session.mark_error()
                raise

            logger.info(f"[TOKEN] [OK] Tokens brokered for account {session.account_id}")
            return BrokeredTokens(auth_token=auth_token, challenge_token=challenge_token)
        finally:
            session.mark_ready()

    async def _extract_auth_token(self, page: BrowserPage) -> str:
        for extractor in self.extractors:
            try:
                token = await asyncio.wait_for(extractor.extract(page), timeout=self.extractor_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[TOKEN] Strategy {extractor.name} timed out")
                continue
            except PageActionError as e:
                logger.warning(f"[TOKEN] Strategy {extractor.name} failed: {e}")
                continue

            if token:
                logger.debug(f"[TOKEN] Auth token from {extractor.name}")
                return token

        raise TokenAcquisitionError(
            "No auth token found (tried: " + ", ".join(e.name for e in self.extractors) + ")"
        )

    async def _solve_challenge(self, page: BrowserPage) -> str:
        try:
            token = await asyncio.wait_for(
                page.evaluate(CHALLENGE_SCRIPT, [self.site_key, self.action]),
                timeout=self.extractor_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ChallengeUnavailableError("reCAPTCHA execute timed out") from e
        except PageActionError as e:
            raise ChallengeUnavailableError(f"reCAPTCHA execute failed: {e}") from e

        if not token:
            raise ChallengeUnavailableError("reCAPTCHA not available on page")
        return token
