from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Signal Research"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Providers
    exa_api_key: str | None = None
    exa_base_url: str = "https://api.exa.ai"
    exa_timeout_seconds: float = 10.0

    # Crawling
    crawl_request_delay_ms: int = 1000
    crawl_max_concurrent: int = 5
    crawl_timeout_seconds: float = 30.0
    crawl_retries: int = 3
    crawl_user_agent: str = "SignalResearch-Bot/1.0"
    site_crawl_user_agent: str = "Mozilla/5.0 (compatible; SignalResearchBot/1.0)"
    crawl_include_company_site: bool = True
    feed_max_items: int = 20
    feed_max_per_type: int = 20

    # Research runs
    research_max_candidates: int = 20
    research_timeout_seconds: float | None = None
    discovery_max_results: int = 100

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_namespace: str = "signal_research"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
