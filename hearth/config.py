"""Settings for the scheduler, read from the environment (and ``.env``)."""

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_UNDER_PYTEST = "PYTEST_CURRENT_TEST"


class Settings(BaseSettings):
    """hearth configuration. Every field maps to an upper-case env var."""

    # Local database file, used unless a Turso URL is configured
    database_path: Path = Field(default=Path("data/hearth.db"))
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Store path that holds one record per pending task
    store_namespace: str = Field(default="scheduler/tasks")

    scheduler_timezone: str = Field(default="UTC")
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=None if os.getenv(_UNDER_PYTEST) else ".env",
        env_file_encoding="utf-8",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Tests see defaults plus whatever they pass in, never the host env.
        if os.getenv(_UNDER_PYTEST):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @field_validator("store_namespace")
    @classmethod
    def _namespace_has_segments(cls, value: str) -> str:
        if not any(part.strip() for part in value.split("/")):
            msg = "STORE_NAMESPACE needs at least one path segment"
            raise ValueError(msg)
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        name = value.strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            msg = f"Unknown LOG_LEVEL {value!r}"
            raise ValueError(msg)
        return name


settings = Settings()
