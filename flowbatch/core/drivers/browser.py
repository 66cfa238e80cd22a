"""
Playwright automation driver

Attaches to already-started GPM profiles with connect_over_cdp; never
launches a browser itself.
"""
import asyncio
import logging
from typing import Optional, Dict, Any, List, Tuple

from playwright.async_api import async_playwright, Browser, Page, Error as PlaywrightError

from .abstractions import AutomationDriver, BrowserPage
from ..exceptions import SessionLostError, PageActionError

logger = logging.getLogger(__name__)


class PlaywrightPage(BrowserPage):
    def __init__(self, page: Page):
        self.page = page

    def _translate(self, action: str, error: PlaywrightError) -> Exception:
        if self.page.is_closed():
            return SessionLostError(f"Page closed during {action}: {error}")
        return PageActionError(f"{action} failed: {error}")

    async def goto(self, url: str, wait_until: str = "load", timeout: float = 30.0):
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except PlaywrightError as e:
            raise self._translate(f"goto {url}", e) from e

    async def add_cookies(self, cookies: List[Dict[str, Any]]):
        try:
            await self.page.context.add_cookies(cookies)
        except PlaywrightError as e:
            raise self._translate("add_cookies", e) from e

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        try:
            return await self.page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise self._translate("evaluate", e) from e

    async def capture_request_header(
        self,
        url_fragment: str,
        header: str,
        trigger: str,
        timeout: float
    ) -> Optional[str]:
        loop = asyncio.get_running_loop()
        captured: asyncio.Future = loop.create_future()

        def on_request(request):
            if captured.done() or url_fragment not in request.url:
                return
            value = request.headers.get(header.lower())
            if value:
                captured.set_result(value)

        self.page.on("request", on_request)
        try:
            await self.evaluate(trigger)
            return await asyncio.wait_for(captured, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            self.page.remove_listener("request", on_request)


class PlaywrightDriver(AutomationDriver):
    """
    One Playwright runtime shared by every session; one CDP connection
    per debug address
    """

    def __init__(self):
        self.playwright = None
        self._connections: Dict[str, Tuple[Browser, PlaywrightPage]] = {}
        self._lock = asyncio.Lock()

    async def _ensure_started(self):
        if self.playwright is None:
            self.playwright = await async_playwright().start()

    async def connect(self, debug_address: str) -> BrowserPage:
        async with self._lock:
            cached = self._connections.get(debug_address)
            if cached and cached[0].is_connected():
                return cached[1]

            await self._ensure_started()
            endpoint = debug_address if debug_address.startswith("http") else f"http://{debug_address}"
            try:
                browser = await self.playwright.chromium.connect_over_cdp(endpoint)
                context = browser.contexts[0] if browser.contexts else await browser.new_context()
                page = context.pages[0] if context.pages else await context.new_page()
            except PlaywrightError as e:
                raise SessionLostError(f"CDP connect to {debug_address} failed: {e}") from e

            wrapped = PlaywrightPage(page)
            self._connections[debug_address] = (browser, wrapped)
            logger.info(f"[CDP] Connected to {debug_address}")
            return wrapped

    async def disconnect(self, debug_address: str):
        async with self._lock:
            cached = self._connections.pop(debug_address, None)
        if cached:
            try:
                await cached[0].close()
            except PlaywrightError as e:
                logger.debug(f"[CDP] Disconnect {debug_address}: {e}")

    async def close(self):
        for address in list(self._connections):
            await self.disconnect(address)
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None
