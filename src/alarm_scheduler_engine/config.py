import enum

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class OverduePolicy(enum.StrEnum):
    FIRE_IMMEDIATELY = "fire_immediately"
    REJECT = "reject"


class EngineConfig(BaseSettings):
    """Engine settings, read from ALARM_ENGINE_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ALARM_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///alarms.db"

    # Notification webhook
    webhook_url: HttpUrl | None = None
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    # Scheduling
    overdue_policy: OverduePolicy = OverduePolicy.FIRE_IMMEDIATELY

    # Delivery retries
    delivery_max_attempts: int = Field(default=3, ge=1)
    delivery_backoff_seconds: float = Field(default=1.0, ge=0)
    delivery_backoff_factor: float = Field(default=2.0, ge=1)

    notification_template: str = "notification_body.j2"
    log_level: str = "INFO"

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.delivery_backoff_seconds * self.delivery_backoff_factor ** (attempt - 1)
