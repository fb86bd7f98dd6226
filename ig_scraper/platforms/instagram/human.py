"""Human-like pacing helpers.

Every wait in the scraper goes through ``_sleep`` so tests can neutralise
pacing with a single monkeypatch.
"""

from __future__ import annotations

import asyncio
import logging
import random

from playwright.async_api import Page

logger = logging.getLogger(__name__)

_sleep = asyncio.sleep


def random_between(low: int, high: int) -> int:
    """Random integer in ``[low, high]`` (inclusive)."""
    return random.randint(low, high)


async def human_delay(min_ms: int = 1000, max_ms: int = 3000) -> None:
    """Wait a random duration to simulate human behavior."""
    await _sleep(random_between(min_ms, max_ms) / 1000)


async def pause(window: tuple[int, int]) -> None:
    """``human_delay`` over a ``(min_ms, max_ms)`` window."""
    await human_delay(*window)


async def random_mouse_movements(page: Page, moves: int | None = None) -> None:
    """Move the mouse to a few random points inside the viewport.

    Best-effort: a closed page or missing viewport is ignored.
    """
    viewport = page.viewport_size or {"width": 1366, "height": 768}
    count = moves if moves is not None else random_between(2, 4)
    try:
        for _ in range(count):
            x = random_between(100, max(viewport["width"] - 100, 101))
            y = random_between(100, max(viewport["height"] - 100, 101))
            await page.mouse.move(x, y, steps=random_between(5, 15))
            await _sleep(random_between(100, 300) / 1000)
    except Exception:
        logger.debug("Mouse movement skipped", exc_info=True)
