"""Runtime configuration read from the environment and an optional .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from assessment_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT


class Settings(BaseSettings):
    # Unset keeps every record in process memory
    database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

    host: str = Field(default=DEFAULT_HOST, validation_alias="ELC_HOST")
    port: int = Field(default=DEFAULT_PORT, validation_alias="ELC_PORT")
    log_level: str = Field(default="INFO", validation_alias="ELC_LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def load_settings() -> Settings:
    return Settings()
