"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Local persistence
    database_url: str = "sqlite:///./tanda_engine.db"

    # External Services
    ledger_api_base: str = "http://localhost:3000"

    # Device identity (wallet owned by this client)
    wallet_address: str = ""

    # Service
    service_name: str = "tanda-engine"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 15.0
    ledger_max_retries: int = 3
    ledger_retry_delay_seconds: float = 1.0  # Linear backoff: delay * attempt

    # Deposit retry policy
    grace_period_ms: int = 60 * 60 * 1000  # 1 hour before the first automatic retry
    retry_interval_ms: int = 24 * 60 * 60 * 1000  # Fixed spacing, not exponential
    max_attempts: int = 7
    retry_attempt_timeout_seconds: float = 60.0
    cleanup_max_age_days: int = 30

    # Cycle policy
    delinquency_window_ms: int = 6 * 24 * 60 * 60 * 1000

    # Scheduler
    scheduler_tick_interval_ms: int = 60 * 60 * 1000
    scheduler_enabled: bool = True


settings = Settings()
