import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _bool(name: str, default: bool) -> bool:
    """
    Helper to parse boolean environment variables.
    Accepts: 1, true, yes, on (case-insensitive).
    """
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _norm_db_url(url: str | None) -> str | None:
    """
    Normalize database URL to use async drivers for SQLAlchemy.

    ``postgres`` URLs get ``asyncpg`` and plain ``sqlite`` URLs get
    ``aiosqlite``. URLs that already name an async driver are returned as-is.
    """
    if not url:
        return None
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://") :]
    if url.startswith("sqlite://"):
        url = "sqlite+aiosqlite://" + url[len("sqlite://") :]
    return url


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables (and ``.env``).
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = Field("sqlite+aiosqlite:///./liftwise.db", description="Database URL")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    ALERT_WEBHOOK_URL: str | None = Field(
        None, description="Webhook receiving ERROR log records (Slack-compatible JSON)"
    )

    # Training calibration
    PLATE_INCREMENT_KG: float = Field(2.5, gt=0, description="Smallest loadable weight step")
    DEFAULT_BAR_WEIGHT_KG: float = Field(20.0, ge=0, description="Empty barbell weight")
    ONE_RM_MIN_CONFIDENCE: float = Field(
        0.6, ge=0, le=1, description="Minimum confidence for a 1RM estimate to be stored"
    )
    DEFAULT_TARGET_REPS: int = Field(5, ge=1, description="Target reps when none are requested")

    # Feature flags
    FF_AUTO_ONE_RM: bool = Field(
        default_factory=lambda: _bool("FF_AUTO_ONE_RM", True),
        description="Capture 1RM estimates automatically after workouts",
    )
    FF_ADMIN_ALERTS: bool = Field(
        default_factory=lambda: _bool("FF_ADMIN_ALERTS", True),
        description="Admin alerts feature flag",
    )

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL environment variable is required")
        return _norm_db_url(v)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level


SETTINGS = Config()  # pyright: ignore[reportCallIssue]
