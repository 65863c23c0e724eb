"""ADLEDGER — Central Configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_request_timeout: float = 30.0
    meta_max_retries: int = 3
    meta_retry_base_delay: float = 2.0  # seconds

    # ── Rate budget ──
    rate_limit_calls_per_hour: int = 200
    rate_limit_window_seconds: float = 3600.0
    inter_account_delay_seconds: float = 3.0

    # ── Sync ──
    sync_days_back: int = 3
    upsert_batch_size: int = 1000
    insight_page_limit: int = 500

    # ── Quality thresholds ──
    video_missing_impressions_threshold: float = 1000
    video_divergence_tolerance: float = 0.10

    # ── Aggregation ──
    trend_threshold_pct: float = 5.0
    breakdown_default_limit: int = 10

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    default_currency: str = "USD"

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        return "sqlite:///./adledger.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
