import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    ⚠️ WARNING: SQLite is meant for local development and tests only.
    Set DATABASE_URL to a PostgreSQL connection string in production.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "coachplan.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"⚠️ Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    sql_echo: bool = Field(default=False, validation_alias="SQL_ECHO")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    max_weeks: int = Field(
        default=52,
        validation_alias="MAX_WEEKS",
        description="Upper bound for weeks_count on assignments and applied plans",
    )
    lock_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="LOCK_TIMEOUT_SECONDS",
        description="How long a mutation waits for the per-aggregate lock",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("max_weeks")
    @classmethod
    def validate_max_weeks(cls, value: int) -> int:
        """Clamp MAX_WEEKS to the 1..52 range supported by the schedule generator."""
        if value < 1 or value > 52:
            logger.warning(f"MAX_WEEKS={value} is outside 1..52. Defaulting to 52.")
            return 52
        return value


settings = Settings()
