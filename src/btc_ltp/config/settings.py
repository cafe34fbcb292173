"""Runtime settings for the LTP service.

Every value can be overridden through an environment variable prefixed
with ``LTP_``; for example ``LTP_REFRESH_INTERVAL=15`` shortens the
periodic refresh tick.  Durations are expressed in seconds.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Refresh policy, upstream location and server binding."""

    model_config = SettingsConfigDict(env_prefix="LTP_")

    upstream_base_url: str = "https://api.kraken.com"
    refresh_interval: float = Field(30.0, gt=0)
    stale_after: float = Field(60.0, gt=0)
    max_retries: int = Field(3, ge=1)
    backoff_base: float = Field(0.1, ge=0)
    backoff_jitter: float = Field(0.1, ge=0)
    request_timeout: float = Field(10.0, gt=0)
    host: str = "0.0.0.0"
    port: int = 8080


def load_settings() -> Settings:
    """Build settings from the environment."""

    return Settings()


__all__ = ["Settings", "load_settings"]
