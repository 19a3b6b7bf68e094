"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.  Every
environment variable is prefixed with ``HARVESTER_``; never call
``os.getenv`` directly elsewhere in the codebase.

Usage::

    from article_harvester.config.settings import get_settings

    settings = get_settings()
    fetcher = ContentFetcher(settings.to_fetcher_config())
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from article_harvester.scraper.config import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_MAX_CONTENT_LENGTH,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    USER_AGENT,
)
from article_harvester.scraper.models import FetcherConfig


class Settings(BaseSettings):
    """Process-wide configuration backed by environment variables and an optional .env file.

    Every field has a default, so an empty environment yields a working
    configuration.  List and dict fields accept JSON in the environment, e.g.
    ``HARVESTER_SKIP_DOMAINS='["example.com"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------

    concurrency_limit: int = Field(default=DEFAULT_CONCURRENCY_LIMIT, ge=1)
    """Maximum number of fetch-and-extract operations in flight per batch."""

    requests_per_second: Optional[int] = None
    """Per-domain politeness cap.  ``None`` disables the per-second window."""

    requests_per_minute: Optional[int] = None
    """Per-domain politeness cap.  ``None`` disables the per-minute window."""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    user_agent: str = USER_AGENT
    """Identity string sent with every request."""

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    """Per-attempt timeout in seconds."""

    follow_redirects: bool = True
    max_redirects: int = Field(default=DEFAULT_MAX_REDIRECTS, ge=0)

    max_content_length: int = Field(default=DEFAULT_MAX_CONTENT_LENGTH, gt=0)
    """Responses with a larger body (bytes) fail with ``CONTENT_TOO_LARGE``."""

    custom_headers: dict[str, str] = {}
    """Extra request headers merged over the defaults."""

    respect_robots_txt: bool = False
    """Honour robots.txt disallow rules (fail-open when robots.txt is unreachable)."""

    allowed_domains: list[str] = []
    """Default host allow-list.  Empty means every host is allowed."""

    skip_domains: list[str] = []
    """Hosts (and their subdomains) that are never fetched."""

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=1)
    max_retry_delay: float = Field(default=DEFAULT_MAX_RETRY_DELAY, ge=0)
    retry_jitter: float = Field(default=0.0, ge=0, le=1)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    def to_fetcher_config(self) -> FetcherConfig:
        """Build the closed :class:`FetcherConfig` used by the content fetcher."""
        return FetcherConfig(
            concurrency_limit=self.concurrency_limit,
            user_agent=self.user_agent,
            timeout=self.timeout,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_retry_delay=self.max_retry_delay,
            retry_jitter=self.retry_jitter,
            requests_per_second=self.requests_per_second,
            requests_per_minute=self.requests_per_minute,
            follow_redirects=self.follow_redirects,
            max_redirects=self.max_redirects,
            max_content_length=self.max_content_length,
            custom_headers=dict(self.custom_headers),
            respect_robots_txt=self.respect_robots_txt,
            allowed_domains=tuple(self.allowed_domains),
            skip_domains=tuple(self.skip_domains),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.
    """
    return Settings()
