"""
Driver Abstractions

Narrow interfaces for the three external collaborators:
- EnvironmentProvider: creates/starts/stops isolated browser profiles
- AutomationDriver / BrowserPage: drives a started profile over CDP
- GenerationClient: the remote generation service

The session manager, token broker, submitter and poller depend on these
abstractions only; tests substitute in-process fakes.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List

from ..domain.job import Operation


# ========== Execution environment ==========

class EnvironmentProvider(ABC):
    """
    Isolated execution environment provider (GPM-Login style)
    """

    @abstractmethod
    async def discover(self) -> str:
        """
        Locate the provider API

        Returns:
            Provider base URL

        Raises:
            ProviderUnavailableError: Not found after bounded retries
        """
        pass

    @abstractmethod
    async def create(self, profile_name: str) -> str:
        """Create a profile, return its environment id"""
        pass

    @abstractmethod
    async def start(self, profile_id: str) -> str:
        """Start a profile, return its CDP connection address"""
        pass

    @abstractmethod
    async def status(self, profile_id: str, api_url: Optional[str] = None) -> str:
        """Return "running" or "stopped" """
        pass

    @abstractmethod
    async def stop(self, profile_id: str, api_url: Optional[str] = None):
        pass

    @abstractmethod
    async def delete(self, profile_id: str, api_url: Optional[str] = None):
        pass


# ========== Automation driver ==========

class BrowserPage(ABC):
    """
    One page inside a started profile
    """

    @abstractmethod
    async def goto(self, url: str, wait_until: str = "load", timeout: float = 30.0):
        pass

    @abstractmethod
    async def add_cookies(self, cookies: List[Dict[str, Any]]):
        pass

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate an in-page expression, return its serialized result"""
        pass

    @abstractmethod
    async def capture_request_header(
        self,
        url_fragment: str,
        header: str,
        trigger: str,
        timeout: float
    ) -> Optional[str]:
        """
        Run `trigger` in the page and return `header` from the first
        outgoing request whose URL contains `url_fragment`
        """
        pass


class AutomationDriver(ABC):
    """
    Attaches to profiles by CDP address
    """

    @abstractmethod
    async def connect(self, debug_address: str) -> BrowserPage:
        """
        Raises:
            SessionLostError: Address does not answer
        """
        pass

    @abstractmethod
    async def disconnect(self, debug_address: str):
        pass

    @abstractmethod
    async def close(self):
        """Release every connection and the driver runtime"""
        pass


# ========== Remote generation service ==========

class GenerationClient(ABC):
    """
    Remote generation service (submit-then-poll)
    """

    @abstractmethod
    async def submit(
        self,
        body: Dict[str, Any],
        auth_token: str,
        image_to_video: bool = False
    ) -> List[Operation]:
        """
        Returns:
            One PENDING Operation per fanned-out unit

        Raises:
            SubmissionRejected: Remote service refused the request
        """
        pass

    @abstractmethod
    async def check_status(
        self,
        operations: List[Operation],
        auth_token: str
    ) -> List[Operation]:
        """
        Returns:
            Fresh status per scene_id

        Raises:
            PollTimeoutOrNetworkError: Transport failure for this round
        """
        pass

    @abstractmethod
    async def upload_image(
        self,
        data_url: str,
        aspect_ratio: str,
        auth_token: str
    ) -> str:
        """
        Returns:
            Media id usable as startImage/endImage

        Raises:
            UploadError: Upload refused
        """
        pass

    @abstractmethod
    async def fetch_auth_session(self, cookie: str) -> Dict[str, Any]:
        """Session-introspection endpoint called with a raw cookie header"""
        pass
