"""
GPM-Login Provider

Talks to the local GPM-Login API (http://127.0.0.1:<port>/api/v3).
The API port is not fixed, so it is discovered by scanning a small list
of candidate ports with bounded retries and cached afterwards.
"""
import asyncio
import logging
from typing import Optional, List, Dict, Any

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from .abstractions import EnvironmentProvider
from ..exceptions import ProviderUnavailableError, SessionStartError

logger = logging.getLogger(__name__)


class GpmLoginProvider(EnvironmentProvider):
    def __init__(
        self,
        host: str = "127.0.0.1",
        ports: Optional[List[int]] = None,
        discovery_retries: int = 5,
        discovery_delay: float = 2.0,
        probe_timeout: float = 5.0,
        group_name: str = "flowbatch",
        window_size: str = "400,400",
        request_timeout: float = 30.0
    ):
        self.host = host
        self.ports = ports or [19995]
        self.discovery_retries = discovery_retries
        self.discovery_delay = discovery_delay
        self.probe_timeout = probe_timeout
        self.group_name = group_name
        self.window_size = window_size
        self.request_timeout = request_timeout

        self._api_url: Optional[str] = None
        self._discover_lock = asyncio.Lock()

    @property
    def api_url(self) -> Optional[str]:
        return self._api_url

    async def discover(self) -> str:
        async with self._discover_lock:
            if self._api_url:
                return self._api_url

            async with AsyncSession() as http:
                for attempt in range(1, self.discovery_retries + 1):
                    for port in self.ports:
                        url = f"http://{self.host}:{port}/api/v3"
                        try:
                            resp = await http.get(f"{url}/profiles", timeout=self.probe_timeout)
                        except CurlError:
                            continue
                        if resp.status_code == 200:
                            logger.info(f"[GPM] Found GPM-Login API at {url}")
                            self._api_url = url
                            return url

                    logger.warning(
                        f"[GPM] Attempt {attempt}/{self.discovery_retries}: "
                        f"API not found on ports {self.ports}"
                    )
                    if attempt < self.discovery_retries:
                        await asyncio.sleep(self.discovery_delay)

        raise ProviderUnavailableError(
            "GPM-Login API not found. Make sure GPM-Login is running."
        )

    async def _call(
        self,
        method: str,
        path: str,
        api_url: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        base = api_url or await self.discover()
        try:
            async with AsyncSession() as http:
                resp = await http.request(
                    method,
                    f"{base}{path}",
                    timeout=self.request_timeout,
                    **kwargs
                )
        except CurlError as e:
            raise SessionStartError(f"GPM request {path} failed: {e}") from e

        if resp.status_code != 200:
            raise SessionStartError(f"GPM request {path} failed: HTTP {resp.status_code}")

        body = resp.json()
        if body.get("success") is False:
            raise SessionStartError(f"GPM request {path} failed: {body.get('message')}")
        return body.get("data") or {}

    async def create(self, profile_name: str) -> str:
        data = await self._call(
            "POST",
            "/profiles/create",
            json={
                "profile_name": profile_name,
                "group_name": self.group_name,
                "browser_core": "chromium",
                "browser_name": "Chrome",
                "is_noise_canvas": True,
                "is_noise_webgl": True,
                "is_noise_audio_context": True,
            },
        )
        profile_id = data.get("id")
        if not profile_id:
            raise SessionStartError("GPM create returned no profile id")
        logger.info(f"[GPM] Created profile {profile_name} ({profile_id})")
        return str(profile_id)

    async def start(self, profile_id: str) -> str:
        data = await self._call(
            "GET",
            f"/profiles/start/{profile_id}",
            params={"win_size": self.window_size},
        )
        address = data.get("remote_debugging_address")
        if not address:
            raise SessionStartError(f"GPM start returned no debug address for {profile_id}")
        return address

    async def status(self, profile_id: str, api_url: Optional[str] = None) -> str:
        data = await self._call("GET", f"/profiles/status/{profile_id}", api_url=api_url)
        return "running" if data.get("status") == "running" else "stopped"

    async def stop(self, profile_id: str, api_url: Optional[str] = None):
        await self._call("GET", f"/profiles/close/{profile_id}", api_url=api_url)
        logger.info(f"[GPM] Closed profile {profile_id}")

    async def delete(self, profile_id: str, api_url: Optional[str] = None):
        await self._call("GET", f"/profiles/delete/{profile_id}", api_url=api_url, params={"mode": 2})
        logger.info(f"[GPM] Deleted profile {profile_id}")
