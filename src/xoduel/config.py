"""Server settings read from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Network and logging options.

    ``XODUEL_PORT`` wins over the plain ``PORT`` variable that hosting
    platforms set.
    """

    model_config = SettingsConfigDict(env_prefix="XODUEL_", extra="ignore")

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("XODUEL_PORT", "PORT"),
        description="Listening port",
    )
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    @field_validator("port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return normalized


@lru_cache()
def get_settings() -> Settings:
    return Settings()
