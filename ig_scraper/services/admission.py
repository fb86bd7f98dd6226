"""Admission control: cap the number of scrape requests in flight."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ig_scraper.platforms.instagram.errors import AdmissionRejected

logger = logging.getLogger(__name__)


class AdmissionController:
    """Counter-based admission gate.

    Requests over the cap are rejected immediately, never queued.

    Usage:
        async with admission.slot():
            await executor.scrape_profile("nasa")
    """

    def __init__(self, max_concurrent: int) -> None:
        self.max_concurrent = max(max_concurrent, 1)
        self.active = 0

    def acquire_slot(self) -> None:
        """Take a slot or raise ``AdmissionRejected`` (counter unchanged)."""
        if self.active >= self.max_concurrent:
            logger.warning(
                "Request rejected: %d/%d requests in flight",
                self.active, self.max_concurrent,
            )
            raise AdmissionRejected(self.active, self.max_concurrent)
        self.active += 1
        logger.debug("Slot acquired (%d/%d)", self.active, self.max_concurrent)

    def release_slot(self) -> None:
        self.active = max(self.active - 1, 0)
        logger.debug("Slot released (%d/%d)", self.active, self.max_concurrent)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        self.acquire_slot()
        try:
            yield
        finally:
            self.release_slot()

    def status(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "max": self.max_concurrent,
            "available": self.max_concurrent - self.active,
        }
