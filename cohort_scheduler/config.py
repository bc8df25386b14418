"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ALL_JOBS = ("drip", "reminders", "recovery")


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Scheduler configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/cohort_scheduler.db"))

    # Turso (hosted libSQL) — when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")
    enabled_jobs: str = Field(default=",".join(ALL_JOBS))
    drip_cron: str = Field(default="0 * * * *")
    reminder_interval_minutes: int = Field(default=5)
    recovery_cron: str = Field(default="0 6 * * *")

    # Content drip
    drip_ignore_time_of_day: bool = Field(default=True)

    # Recovery tracking
    inactivity_threshold_days: int = Field(default=3)

    # Notifications
    default_notification_channel: str = Field(default="in_app")
    drip_notification_channel: str = Field(default="")
    reminder_notification_channel: str = Field(default="")
    dispatch_timeout_seconds: float = Field(default=10.0)
    notification_webhook_url: str = Field(default="")
    notification_webhook_secret: str = Field(default="")
    lms_url: str = Field(default="")

    # HTTP trigger
    trigger_port: int = Field(default=8443)
    trigger_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_enabled_jobs(self) -> list[str]:
        """Parse ENABLED_JOBS into a list of known job names."""
        if not self.enabled_jobs.strip():
            return []
        names = [name.strip() for name in self.enabled_jobs.split(",") if name.strip()]
        unknown = [name for name in names if name not in ALL_JOBS]
        if unknown:
            msg = f"Unknown job name(s) in ENABLED_JOBS: {', '.join(unknown)}"
            raise ValueError(msg)
        return names


settings = Settings()
