"""Environment-driven settings for the exam portal."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, overridable with EXAM_PORTAL_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXAM_PORTAL_", env_file=".env", extra="ignore"
    )

    # ============= Application =============
    APP_NAME: str = "Leveled Exam Portal"
    LOG_LEVEL: str = Field(default="INFO")
    SESSION_SECRET: SecretStr = Field(default="CHANGE_ME_TO_A_RANDOM_SECRET")

    # ============= Database =============
    DATABASE_URL: str = Field(default="sqlite:///./exam_portal.db")
    DATABASE_ECHO: bool = False
    SQLITE_BUSY_TIMEOUT: float = 30.0

    # ============= Exam timing & scoring =============
    TIME_LIMIT_GRACE_SECONDS: int = 60
    DEFAULT_EXAM_DURATION_SECONDS: int = 3600
    EVALUATOR_ALERT_ATTEMPTS: int = 5
    TRANSACTION_MAX_RETRIES: int = 3

    # ============= Mail =============
    MAIL_ENABLED: bool = False
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[SecretStr] = None
    MAIL_SENDER: str = "noreply@exam-portal.local"


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
