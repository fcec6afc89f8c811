import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using an absolute path for the default SQLite file.

    The store is local to one app instance, so a SQLite file next to the
    project is the default. Set DATABASE_URL to point somewhere else.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "cadence.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"DATABASE_URL not set, using local SQLite database: {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    timezone: str = Field(
        default="UTC",
        validation_alias="CADENCE_TIMEZONE",
        description="IANA timezone of the local calendar used for day keys and recurrence",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="CADENCE_LOG_FILE")
    log_components: str = Field(
        default="",
        validation_alias="CADENCE_LOG_COMPONENTS",
        description="Comma-separated component tags the log file keeps, e.g. PRELOAD,TEMPLATE_UPDATE",
    )
    upcoming_days_ahead: int = Field(
        default=90,
        validation_alias="CADENCE_UPCOMING_DAYS_AHEAD",
        description="Window used when propagating template edits to upcoming instances",
    )
    plan_days_ahead: int = Field(
        default=120,
        validation_alias="CADENCE_PLAN_DAYS_AHEAD",
        description="Window used by the template update planner",
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

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Fall back to UTC when the configured zone is unknown."""
        if value.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown CADENCE_TIMEZONE '{value}'. Defaulting to UTC.")
            return "UTC"
        return value

    @field_validator("upcoming_days_ahead", "plan_days_ahead")
    @classmethod
    def validate_window(cls, value: int) -> int:
        """Windows are at least one day long."""
        return max(value, 1)


settings = Settings()
