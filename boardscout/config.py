"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///data/boardscout.db"
    database_echo: bool = False

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 8001
    admin_api_key: str = ""

    # ==========================================================================
    # HTTP Client Settings
    # ==========================================================================
    connection_timeout: float = 10.0
    read_timeout: float = 30.0
    http_max_attempts: int = 3
    http_max_connections: int = 20
    user_agents: list[str] = [
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ]

    # Per-source overrides of the default site policy
    # Format: {"retailer:rei": {"max_attempts": 1, "read_timeout": 20}}
    source_policies: dict[str, dict] = {}

    # ==========================================================================
    # HTTP Caching Settings
    # ==========================================================================
    http_cache_enabled: bool = True
    http_cache_max_age_seconds: int | None = 24 * 60 * 60  # None = any age

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    pipeline_batch_size: int = 3  # Adapters fetched in parallel per batch
    adapter_timeout_seconds: float = 300.0
    detail_delay_seconds: float = 1.0  # Delay between uncached detail fetches
    detail_min_body_bytes: int = 5000  # Smaller detail pages are treated as blocks
    block_markers: list[str] = [
        "captcha",
        "cf-challenge",
        "cf-browser-verification",
        "px-captcha",
        "access denied",
        "pardon our interruption",
        "request unsuccessful. incapsula",
        "are you a robot",
    ]

    # Region/currency applied when an adapter does not declare its own
    default_region: str = "US"
    default_currency: str = "USD"
    # Fixed rate for listing prices reported in KRW
    krw_to_usd_rate: float = 0.00074

    # ==========================================================================
    # Reconciliation Settings
    # ==========================================================================
    # Highest precedence first. Tiers not listed rank below every listed tier.
    source_precedence: list[str] = [
        "manufacturer",
        "review-site",
        "retailer",
        "inferred",
        "heuristic",
    ]

    # ==========================================================================
    # Scheduler
    # ==========================================================================
    scheduler_enabled: bool = False
    pipeline_interval_hours: int = 24

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
