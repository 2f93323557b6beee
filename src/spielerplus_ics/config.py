"""Application configuration.

Settings are read from environment variables prefixed with ``SPIELERPLUS_``
(or a ``.env`` file) using pydantic-settings. Credentials are never part of
the configuration; they arrive with each request.

## Example .env file

```
SPIELERPLUS_PORT=3000
SPIELERPLUS_LOG_LEVEL=DEBUG
SPIELERPLUS_PACING_DELAY=1.5
```
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .classifier import RetryPolicy
from .session import BASE_URL, USER_AGENT


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPIELERPLUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    allowed_origins: list[str] = ["*"]
    max_sessions: int = Field(default=100, ge=1)

    # Remote site
    base_url: str = BASE_URL
    user_agent: str = USER_AGENT
    timezone: str = "Europe/Berlin"
    default_calendar_name: str = "Team Calendar"

    # Fetching and pacing
    request_timeout: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=5, ge=0, le=20)
    fetch_attempts: int = Field(default=2, ge=1, le=10)
    fetch_delay: float = Field(default=1.0, ge=0)
    render_retries: int = Field(default=3, ge=0, le=10)
    render_delay: float = Field(default=1.0, ge=0)
    redirect_delay: float = Field(default=2.0, ge=0)
    pacing_delay: float = Field(default=1.0, ge=0)

    def retry_policy(self) -> RetryPolicy:
        """Build the classifier's :class:`RetryPolicy` from these settings."""
        return RetryPolicy(
            max_redirects=self.max_redirects,
            timeout=self.request_timeout,
            fetch_attempts=self.fetch_attempts,
            fetch_delay=self.fetch_delay,
            render_retries=self.render_retries,
            render_delay=self.render_delay,
            redirect_delay=self.redirect_delay,
            pacing_delay=self.pacing_delay,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    To reload after changing the environment, call
    ``get_settings.cache_clear()``.
    """
    return Settings()
