"""
Pytest configuration và shared fixtures

In-process fakes stand in for the browser profile provider, the CDP
driver and the remote generation service.
"""
import asyncio
import pytest
import sys
from pathlib import Path
from typing import Generator, Dict, List, Optional, Any
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from flowbatch.database import Base
from flowbatch.core.domain.account import Account
from flowbatch.core.domain.job import Job, JobPayload, Operation, OperationStatus
from flowbatch.core.drivers.abstractions import (
    EnvironmentProvider,
    AutomationDriver,
    BrowserPage,
    GenerationClient
)
from flowbatch.core.exceptions import SessionStartError, SessionLostError


# ========== Database ==========

@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """Tạo test database engine"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Tạo test database session"""
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ========== Fakes ==========

class FakePage(BrowserPage):
    """Page whose in-page scripts answer from plain attributes"""

    def __init__(self):
        self.widget_present = True
        self.session_token: Optional[str] = "auth-token"
        self.next_data_token: Optional[str] = None
        self.header_token: Optional[str] = None
        self.challenge_token: Optional[str] = "challenge-token"
        self.lost = False
        self.visited: List[str] = []
        self.cookies: List[Dict[str, Any]] = []

    def _check(self):
        if self.lost:
            raise SessionLostError("Target page, context or browser has been closed")

    async def goto(self, url, wait_until="load", timeout=30.0):
        self._check()
        self.visited.append(url)

    async def add_cookies(self, cookies):
        self._check()
        self.cookies.extend(cookies)

    async def evaluate(self, expression, arg=None):
        self._check()
        # yield like a real CDP round-trip
        await asyncio.sleep(0)
        if "grecaptcha.enterprise)" in expression:
            return self.widget_present
        if "enterprise.execute" in expression:
            return self.challenge_token
        if "__NEXT_DATA__" in expression:
            return self.next_data_token
        if "fetch(url" in expression:
            return self.session_token
        return None

    async def capture_request_header(self, url_fragment, header, trigger, timeout):
        self._check()
        return f"Bearer {self.header_token}" if self.header_token else None


class FakeDriver(AutomationDriver):
    def __init__(self, page: FakePage):
        self.page = page
        self.connected: List[str] = []
        self.disconnected: List[str] = []
        self.closed = False

    async def connect(self, debug_address):
        if self.page.lost:
            raise SessionLostError(f"CDP connect to {debug_address} failed")
        self.connected.append(debug_address)
        return self.page

    async def disconnect(self, debug_address):
        self.disconnected.append(debug_address)

    async def close(self):
        self.closed = True


class FakeProvider(EnvironmentProvider):
    """
    GPM-style provider; profile ids are prof-1, prof-2, ...

    start_failures: number of start() calls that fail before succeeding
    """

    def __init__(self):
        self.api_url = "http://127.0.0.1:19995"
        self.start_failures = 0
        self.running: Dict[str, bool] = {}
        self.created: List[str] = []
        self.started: List[str] = []
        self.stopped: List[str] = []
        self.deleted: List[str] = []
        self.stop_error: Optional[Exception] = None

    async def discover(self):
        return self.api_url

    async def create(self, profile_name):
        profile_id = f"prof-{len(self.created) + 1}"
        self.created.append(profile_id)
        return profile_id

    async def start(self, profile_id):
        if self.start_failures > 0:
            self.start_failures -= 1
            raise SessionStartError(f"Profile {profile_id} start failed")
        self.started.append(profile_id)
        self.running[profile_id] = True
        return f"127.0.0.1:{9200 + len(self.started)}"

    async def status(self, profile_id, api_url=None):
        return "running" if self.running.get(profile_id) else "stopped"

    async def stop(self, profile_id, api_url=None):
        self.stopped.append(profile_id)
        self.running[profile_id] = False
        if self.stop_error:
            raise self.stop_error

    async def delete(self, profile_id, api_url=None):
        self.deleted.append(profile_id)


class FakeClient(GenerationClient):
    """
    Remote service fake

    Every submitted request becomes one operation named op-<n>. Each
    check_status round pops the next entry of `rounds` (a dict
    scene_id -> (status, media_url|error)); missing rounds keep everything
    pending.
    """

    def __init__(self):
        self.submitted: List[Dict[str, Any]] = []
        self.checks = 0
        self.rounds: List[Dict[str, Any]] = []
        self.succeed_all = False
        self.submit_error: Optional[Exception] = None
        self.check_error: Optional[Exception] = None
        self.uploads: List[str] = []
        self.auth_session: Dict[str, Any] = {}
        self._counter = 0

    async def submit(self, body, auth_token, image_to_video=False):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(body)
        operations = []
        for request in body["requests"]:
            self._counter += 1
            operations.append(Operation(
                operation_name=f"op-{self._counter}",
                scene_id=request["metadata"]["sceneId"],
                status=OperationStatus.PENDING,
            ))
        return operations

    async def check_status(self, operations, auth_token):
        self.checks += 1
        if self.check_error:
            raise self.check_error
        if self.succeed_all:
            return [
                Operation(op.operation_name, op.scene_id, OperationStatus.SUCCESSFUL,
                          media_url=f"https://media/{op.operation_name}.mp4")
                for op in operations
            ]
        round_data = self.rounds.pop(0) if self.rounds else {}
        updates = []
        for op in operations:
            status, value = round_data.get(op.scene_id, (OperationStatus.PENDING, None))
            updates.append(Operation(
                op.operation_name,
                op.scene_id,
                status,
                media_url=value if status == OperationStatus.SUCCESSFUL else None,
                error=value if status == OperationStatus.FAILED else None,
            ))
        return updates

    async def upload_image(self, data_url, aspect_ratio, auth_token):
        self.uploads.append(data_url)
        return f"media-{len(self.uploads)}"

    async def fetch_auth_session(self, cookie):
        return self.auth_session


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_driver(fake_page) -> FakeDriver:
    return FakeDriver(fake_page)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


# ========== Sample data ==========

SAMPLE_COOKIE = "EMAIL=%22alice%40example.com%22; __Secure-next-auth.session-token=abc.def=; __Host-csrf=xyz"


@pytest.fixture
def sample_cookie() -> str:
    return SAMPLE_COOKIE


@pytest.fixture
def sample_account() -> Account:
    return Account(id="acc-1", email="alice@example.com", cookie=SAMPLE_COOKIE, concurrency=1)


@pytest.fixture
def sample_job() -> Job:
    return Job(id="job-1", order=1, payload=JobPayload(prompt="A red fox in snow", count=2))
