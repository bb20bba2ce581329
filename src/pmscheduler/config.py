"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """PM scheduler configuration. All values come from environment variables."""

    # Scheduler
    scheduler_timezone: str = Field(default="Europe/Berlin")
    scheduler_autostart: bool = Field(default=True)
    disabled_tasks: str = Field(default="")

    # Database (the product's SQLite file the PM tasks read from)
    database_path: Path = Field(default=Path("data/pm.db"))

    # Admin control surface
    control_host: str = Field(default="127.0.0.1")
    control_port: int = Field(default=8787)
    control_token: str = Field(default="")

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

    def get_disabled_tasks(self) -> set[str]:
        """Parse DISABLED_TASKS into a set of task ids."""
        if not self.disabled_tasks.strip():
            return set()
        return {tid.strip() for tid in self.disabled_tasks.split(",") if tid.strip()}

    @property
    def control_url(self) -> str:
        """Base URL of the admin control surface."""
        return f"http://{self.control_host}:{self.control_port}"


settings = Settings()
