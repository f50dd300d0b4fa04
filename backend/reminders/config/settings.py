"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "portfolio_reminders_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Frontend URL (prefixed to action links in external channels)
    frontend_url: str = "http://localhost:3000"

    # Scheduler
    scheduler_enabled: bool = True
    sweep_interval_seconds: int = 300  # Run a reminder sweep every 5 minutes
    sweep_timeout_seconds: int = 240  # Stop starting new events after this
    evaluation_concurrency: int = 16

    # Dispatch
    dispatch_concurrency: int = 8
    dispatch_max_attempts: int = 4
    dispatch_backoff_base_seconds: float = 1.0  # 1, 2, 4 ... seconds between attempts
    dispatch_backoff_max_seconds: float = 30.0
    dispatch_attempt_timeout_seconds: float = 15.0

    # Trigger window policy
    trigger_window_inclusive: bool = True  # "within n days" includes day n
    trigger_day_granularity: Literal["elapsed", "calendar"] = "elapsed"  # 24h multiples or UTC days

    # Channel transports (a channel without URL has no transport)
    email_relay_url: Optional[str] = None
    slack_webhook_url: Optional[str] = None
    teams_webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 10.0

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def uses_calendar_days(self) -> bool:
        """Whether trigger windows count whole calendar days"""
        return self.trigger_day_granularity == "calendar"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
