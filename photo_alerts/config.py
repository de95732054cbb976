from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PHOTO_ALERTS_", env_file=".env", extra="ignore")

    # Evaluation
    evaluation_interval_seconds: int = 60
    notification_timeout_seconds: float = 5.0
    metric_retention_hours: int = 24

    # State persistence
    state_backend: Literal["memory", "file", "redis"] = "memory"
    state_dir: str = "data/alert-state"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "photo_alerts"

    # Email
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_sender: str = "alerts@localhost"
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True

    # Slack
    slack_webhook_url: str | None = None

    # SMS gateway
    sms_gateway_url: str | None = None
    sms_api_key: str | None = None
    sms_from_number: str | None = None

    # Archive stats API (metric producers)
    archive_api_url: str | None = None
    archive_api_token: str | None = None
    monthly_budget_usd: float = 10.0

    # App
    log_level: str = "INFO"


settings = Settings()
