"""Application settings using Pydantic Settings."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ig_scraper.models.account import Account

logger = logging.getLogger(__name__)


class PrivateCheckPolicy(str, Enum):
    """What to do when the private-profile check itself fails.

    PASS_THROUGH: treat the profile as public and keep scraping.
    RETRY: fail the attempt so the next account gets a go. This also applies
    when a profile assumed public yields no timeline at all.
    """

    PASS_THROUGH = "pass_through"
    RETRY = "retry"


def parse_ig_accounts(environ: Mapping[str, str] | None = None) -> list[Account]:
    """Read bot accounts from ``IG_ACCOUNT_1``, ``IG_ACCOUNT_2``, ...

    Each value is ``username:password``. Scanning stops at the first missing
    index; malformed entries are skipped with a warning.
    """
    env = os.environ if environ is None else environ
    accounts: list[Account] = []
    index = 1

    while True:
        raw = env.get(f"IG_ACCOUNT_{index}")
        if not raw:
            break

        parts = raw.split(":")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            logger.warning(
                "IG_ACCOUNT_%d is malformed (expected username:password), skipping",
                index,
            )
            index += 1
            continue

        accounts.append(
            Account(username=parts[0].strip(), password=SecretStr(parts[1].strip()))
        )
        index += 1

    if not accounts:
        logger.warning("No Instagram accounts configured. Define IG_ACCOUNT_1, IG_ACCOUNT_2, ...")
    return accounts


class Settings(BaseSettings):
    """Global settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    port: int = 3000
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT"),
    )
    api_key: str | None = None
    cors_origins: str = "http://localhost:3001,http://localhost:4000"

    # Bot accounts (IG_ACCOUNT_n, not a single env var)
    accounts: list[Account] = Field(default_factory=parse_ig_accounts, exclude=True)

    # Browser
    headless: bool = True
    docker_env: bool = False
    verbose_logs: bool = False
    chrome_path: str | None = None
    browser_locale: str = "es-EC"
    browser_timezone: str = "America/Guayaquil"
    enable_proxy: bool = False
    global_proxy_url: str = ""

    # Scraper
    max_posts_per_request: int = Field(default=50, ge=1)
    scraper_timeout_ms: int = 120000
    batch_max_targets: int = Field(default=5, ge=1)
    batch_tab_concurrency: int = Field(default=2, ge=1)
    cache_ttl_seconds: int = 600
    skip_inactive_accounts: bool = False
    private_check_policy: PrivateCheckPolicy = PrivateCheckPolicy.PASS_THROUGH
    verify_sessions_on_startup: bool = True

    # Process reaper
    reaper_interval_seconds: float = 300.0
    reaper_memory_percent: float = 10.0

    # Paths
    sessions_root_dir: str = "sessions"
    data_root_dir: str = "data"

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: str) -> str:
        """Normalise the comma-separated origin list."""
        return ",".join(o.strip() for o in v.split(",") if o.strip())

    @model_validator(mode="after")
    def force_headless_in_docker(self) -> Settings:
        if self.docker_env:
            self.headless = True
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        return [o for o in self.cors_origins.split(",") if o]

    @property
    def rotation_state_path(self) -> Path:
        return Path(self.data_root_dir) / "account-rotation-state.json"

    @property
    def proxy_server(self) -> str | None:
        """Proxy URL for browser launches, or None when disabled."""
        if self.enable_proxy and self.global_proxy_url:
            return self.global_proxy_url
        return None

    @property
    def max_concurrent_requests(self) -> int:
        """Admission cap: one in-flight request per configured account."""
        return max(len(self.accounts), 1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (clear cache and return new instance)."""
    get_settings.cache_clear()
    return get_settings()
