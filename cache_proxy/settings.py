from typing import Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 3000


class Settings(BaseSettings):
    """Runtime configuration for the proxy.

    Notes
    -----
    - Every field can be overridden with a `PROXY_`-prefixed environment
      variable (e.g. `PROXY_PORT=8080`) or a `.env` file.
    - Durations are expressed in seconds.
    - `cache_methods` lists the HTTP methods whose responses are cached. The
      cache key itself ignores the method, so adding non-idempotent methods
      lets a write share a slot with a read of the same path.
    """

    model_config = SettingsConfigDict(env_prefix="PROXY_", env_file=".env", env_file_encoding="utf-8")

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "info"

    upstream_base_url: str = "https://api.kraken.com"
    upstream_timeout: float = 5.0  # 5s, the call fails after this
    cache_ttl: float = 30.0  # 30s per cached response
    cache_methods: List[str] = ["GET"]

    @field_validator("port", mode="before")
    @classmethod
    def _fallback_port(cls, value: Any) -> int:
        """Fall back to the default port when the value is unset or not a positive number."""

        try:
            port = int(value)
        except (TypeError, ValueError):
            return DEFAULT_PORT
        return port if port > 0 else DEFAULT_PORT

    @field_validator("cache_methods")
    @classmethod
    def _upper_methods(cls, value: List[str]) -> List[str]:
        return [m.upper() for m in value]


settings = Settings()
