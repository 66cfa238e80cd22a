"""
Application settings

All timing knobs are global (never per job). Values can be overridden
through environment variables prefixed with FLOWBATCH_ or a local .env file.
"""
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLOWBATCH_",
        env_file=".env",
        extra="ignore",
    )

    # ========== Storage ==========
    database_url: str = "sqlite:///./data/db/flowbatch.db"
    log_file: str = "server_debug.log"

    # ========== Polling ==========
    poll_interval: float = 5.0
    poll_jitter: float = 0.0
    max_polls: int = 120
    poll_round_timeout: float = 30.0

    # ========== Scheduling ==========
    worker_pickup_delay: float = 0.3

    # ========== Session start ==========
    session_start_attempts: int = 5
    session_start_delay: float = 3.0
    page_settle_delay: float = 5.0
    extractor_timeout: float = 10.0

    # ========== GPM-Login provider ==========
    provider_host: str = "127.0.0.1"
    provider_ports: List[int] = Field(
        default_factory=lambda: [19995, 19990, 19991, 19992, 19993, 19994, 19996, 19997, 19998, 19999]
    )
    provider_discovery_retries: int = 5
    provider_discovery_delay: float = 2.0
    provider_probe_timeout: float = 5.0
    profile_group: str = "flowbatch"
    profile_window_size: str = "400,400"

    # ========== Remote service ==========
    service_base_url: str = "https://labs.google"
    flow_url: str = "https://labs.google/fx/tools/flow"
    session_endpoint: str = "https://labs.google/fx/api/auth/session"
    api_base_url: str = "https://aisandbox-pa.googleapis.com/v1"
    recaptcha_site_key: str = "6LdsFiUsAAAAAIjVDZcuLhaHiDn5nnHVXVRQGeMV"
    recaptcha_action: str = "VIDEO_GENERATION"
    video_model: str = "veo_3_1_t2v_fast_ultra"
    paygate_tier: str = "PAYGATE_TIER_TWO"
    request_timeout: float = 60.0


settings = Settings()


def get_settings() -> Settings:
    return settings
