"""Configuration for paayo-query clients."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paayo_query.duration import parse_duration


class ClientSettings(BaseSettings):
    """Client settings, read from ``PAAYO_*`` environment variables or ``.env``.

    Example:
        PAAYO_API_BASE_URL=https://paayonepal.com/api
        PAAYO_GC_TIME=10m
    """

    model_config = SettingsConfigDict(
        env_prefix="PAAYO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    api_base_url: str = "http://backend:8080/api"
    gc_time: str = Field(default="5m", description="How long unused entries are kept")
    request_timeout: float = Field(default=30.0, gt=0)
    default_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("gc_time")
    @classmethod
    def _check_gc_time(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def gc_time_ms(self) -> int:
        return parse_duration(self.gc_time)


__all__ = ["ClientSettings"]
