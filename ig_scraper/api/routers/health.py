"""Health check endpoints."""

from __future__ import annotations

import os
import time

import psutil
from fastapi import APIRouter, Depends

from ig_scraper import __version__
from ig_scraper.api.deps import (
    get_admission,
    get_app_settings,
    get_cache,
    get_ledger,
    get_pool,
    uptime_seconds,
)
from ig_scraper.config import Settings
from ig_scraper.platforms.instagram.browser import SessionPool
from ig_scraper.services import AccountLedger, AdmissionController, ResultCache

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    return {"status": "ok", "timestamp": int(time.time())}


@router.get("/health/detailed")
async def health_detailed(
    settings: Settings = Depends(get_app_settings),
    ledger: AccountLedger = Depends(get_ledger),
    pool: SessionPool = Depends(get_pool),
    cache: ResultCache = Depends(get_cache),
    admission: AdmissionController = Depends(get_admission),
) -> dict:
    """Configuration, account health, browser pool and process stats."""
    mem = psutil.Process(os.getpid()).memory_info()
    accounts = ledger.status()
    return {
        "status": "ok" if accounts["activeAccounts"] else "degraded",
        "version": __version__,
        "uptimeSeconds": round(uptime_seconds(), 1),
        "config": {
            "environment": settings.environment,
            "headless": settings.headless,
            "maxPostsPerRequest": settings.max_posts_per_request,
            "scraperTimeoutMs": settings.scraper_timeout_ms,
            "batchMaxTargets": settings.batch_max_targets,
            "batchTabConcurrency": settings.batch_tab_concurrency,
            "proxyEnabled": settings.proxy_server is not None,
            "privateCheckPolicy": settings.private_check_policy.value,
        },
        "accounts": {
            "total": accounts["totalAccounts"],
            "active": accounts["activeAccounts"],
            "inactive": accounts["inactiveAccounts"],
        },
        "browser": pool.stats(),
        "cache": cache.stats,
        "concurrency": admission.status(),
        "memory": {
            "rssMb": round(mem.rss / 1024 / 1024, 1),
            "vmsMb": round(mem.vms / 1024 / 1024, 1),
            "systemPercent": psutil.virtual_memory().percent,
        },
    }
