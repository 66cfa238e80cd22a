"""
Dependency Injection Container

Central place wiring settings, drivers and core components.
Long-lived components share one database session (like the workers);
request handlers get their own sessions through the API dependencies.
"""

from dependency_injector import containers, providers
from ..database import SessionLocal
from .config import get_settings

from .drivers.browser import PlaywrightDriver
from .drivers.flow_client import FlowApiClient
from .drivers.gpm_provider import GpmLoginProvider
from .repositories.account_repo import AccountRepository
from .repositories.job_repo import JobRepository
from .repositories.session_repo import SessionRepository
from .services.task_service import TaskService
from .session_manager import SessionManager
from .submitter import JobSubmitter
from .task_store import TaskStore
from .token_broker import (
    TokenBroker,
    SessionEndpointExtractor,
    NextDataExtractor,
    InterceptedHeaderExtractor
)
from .workers.poll_worker import OperationPoller
from .workers.scheduler import Scheduler


class Container(containers.DeclarativeContainer):
    """
    Main DI Container
    """

    # ========== Configuration ==========
    settings = providers.Singleton(get_settings)

    # ========== Database ==========
    db_session = providers.Factory(SessionLocal)
    worker_session = providers.Singleton(SessionLocal)

    # ========== Repositories ==========
    account_repository = providers.Factory(AccountRepository, session=db_session)

    core_account_repository = providers.Singleton(AccountRepository, session=worker_session)
    core_job_repository = providers.Singleton(JobRepository, session=worker_session)
    core_session_repository = providers.Singleton(SessionRepository, session=worker_session)

    # ========== Drivers ==========
    provider = providers.Singleton(
        GpmLoginProvider,
        host=settings.provided.provider_host,
        ports=settings.provided.provider_ports,
        discovery_retries=settings.provided.provider_discovery_retries,
        discovery_delay=settings.provided.provider_discovery_delay,
        probe_timeout=settings.provided.provider_probe_timeout,
        group_name=settings.provided.profile_group,
        window_size=settings.provided.profile_window_size,
    )

    driver = providers.Singleton(PlaywrightDriver)

    client = providers.Singleton(
        FlowApiClient,
        api_base_url=settings.provided.api_base_url,
        session_endpoint=settings.provided.session_endpoint,
        timeout=settings.provided.request_timeout,
    )

    # ========== Core ==========
    session_manager = providers.Singleton(
        SessionManager,
        provider=provider,
        driver=driver,
        session_repo=core_session_repository,
        service_base_url=settings.provided.service_base_url,
        flow_url=settings.provided.flow_url,
        start_attempts=settings.provided.session_start_attempts,
        start_delay=settings.provided.session_start_delay,
        settle_delay=settings.provided.page_settle_delay,
    )

    extractors = providers.List(
        providers.Factory(SessionEndpointExtractor, session_endpoint=settings.provided.session_endpoint),
        providers.Factory(NextDataExtractor),
        providers.Factory(
            InterceptedHeaderExtractor,
            api_base_url=settings.provided.api_base_url,
            paygate_tier=settings.provided.paygate_tier,
        ),
    )

    broker = providers.Singleton(
        TokenBroker,
        driver=driver,
        extractors=extractors,
        site_key=settings.provided.recaptcha_site_key,
        action=settings.provided.recaptcha_action,
        extractor_timeout=settings.provided.extractor_timeout,
    )

    submitter = providers.Singleton(
        JobSubmitter,
        client=client,
        video_model=settings.provided.video_model,
        paygate_tier=settings.provided.paygate_tier,
    )

    task_store = providers.Singleton(TaskStore, job_repo=core_job_repository)

    poller = providers.Singleton(
        OperationPoller,
        client=client,
        store=task_store,
        poll_interval=settings.provided.poll_interval,
        max_polls=settings.provided.max_polls,
        round_timeout=settings.provided.poll_round_timeout,
        jitter=settings.provided.poll_jitter,
    )

    scheduler = providers.Singleton(
        Scheduler,
        store=task_store,
        session_manager=session_manager,
        broker=broker,
        submitter=submitter,
        poller=poller,
        account_repo=core_account_repository,
        pickup_delay=settings.provided.worker_pickup_delay,
    )

    # ========== Services ==========
    task_service = providers.Singleton(
        TaskService,
        store=task_store,
        scheduler=scheduler,
        account_repo=core_account_repository,
    )


# Global container instance
container = Container()
