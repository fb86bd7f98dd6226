"""Shared dependencies for API endpoints."""

from __future__ import annotations

import asyncio
import logging
import time

from fastapi import Depends, Header, HTTPException

from ig_scraper.config import Settings, get_settings
from ig_scraper.platforms.instagram.browser import SessionPool
from ig_scraper.platforms.instagram.executor import InstagramExecutor
from ig_scraper.services import AccountLedger, AdmissionController, ResultCache, RotationStore

logger = logging.getLogger(__name__)

_settings: Settings | None = None
_ledger: AccountLedger | None = None
_pool: SessionPool | None = None
_executor: InstagramExecutor | None = None
_admission: AdmissionController | None = None
_cache: ResultCache | None = None
_verify_task: asyncio.Task | None = None
_started_at: float = time.time()


async def init_deps(settings: Settings | None = None) -> None:
    """Initialize shared dependencies (called on app startup)."""
    global _settings, _ledger, _pool, _executor, _admission, _cache, _verify_task, _started_at
    _settings = settings or get_settings()
    _started_at = time.time()

    _ledger = AccountLedger(
        _settings.accounts,
        RotationStore(_settings.rotation_state_path),
        sessions_root=_settings.sessions_root_dir,
        skip_inactive=_settings.skip_inactive_accounts,
    )
    _pool = SessionPool(_settings)
    await _pool.start()
    _executor = InstagramExecutor(_settings, _ledger, _pool)
    _admission = AdmissionController(_settings.max_concurrent_requests)
    _cache = ResultCache(ttl_seconds=_settings.cache_ttl_seconds)

    logger.info(
        "Scraper ready: %d account(s), max %d concurrent request(s), headless=%s",
        _ledger.account_count, _admission.max_concurrent, _settings.headless,
    )

    if _settings.verify_sessions_on_startup and _ledger.account_count:
        _verify_task = asyncio.create_task(_executor.verify_all_sessions())


async def close_deps() -> None:
    """Close shared dependencies (called on app shutdown)."""
    global _verify_task
    if _verify_task:
        _verify_task.cancel()
        await asyncio.gather(_verify_task, return_exceptions=True)
        _verify_task = None
    if _executor:
        await _executor.close()
    if _pool:
        await _pool.shutdown()


def get_app_settings() -> Settings:
    """Settings the app was started with (falls back to the environment)."""
    return _settings or get_settings()


def get_ledger() -> AccountLedger:
    assert _ledger is not None, "Ledger not initialized, call init_deps() first"
    return _ledger


def get_pool() -> SessionPool:
    assert _pool is not None, "SessionPool not initialized, call init_deps() first"
    return _pool


def get_executor() -> InstagramExecutor:
    assert _executor is not None, "Executor not initialized, call init_deps() first"
    return _executor


def get_admission() -> AdmissionController:
    assert _admission is not None, "Admission not initialized, call init_deps() first"
    return _admission


def get_cache() -> ResultCache:
    assert _cache is not None, "ResultCache not initialized, call init_deps() first"
    return _cache


def uptime_seconds() -> float:
    return time.time() - _started_at


def require_api_key(
    x_api_key: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject the request unless it carries the configured ``X-API-Key``."""
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
