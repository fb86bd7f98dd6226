"""Timeline capture: collect a profile's most recent posts.

The page is reloaded with the interceptor attached so the first timeline
GraphQL call is observed, then scrolled progressively until enough edges
arrive or the feed stops growing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from playwright.async_api import Page

from ig_scraper.models.post import Post

from .. import human
from ..constants import (
    AFTER_RELOAD_DELAY,
    FINAL_CAPTURE_DELAY,
    SCROLL_DELAY,
    SCROLL_DELTA_MAX,
    SCROLL_DELTA_MIN,
    STALE_SCROLL_LIMIT,
)
from ..interceptor import TimelineInterceptor
from ..parsers.post import parse_timeline

logger = logging.getLogger(__name__)


@dataclass
class TimelineCapture:
    """Posts extracted from one profile page, newest first."""

    posts: list[Post] = field(default_factory=list)
    graphql_captured: bool = False
    payload_count: int = 0


async def capture_timeline(page: Page, username: str, limit: int) -> TimelineCapture:
    """Capture up to ``limit`` posts from the profile currently open on ``page``.

    Args:
        page: Tab already positioned on the profile.
        username: Profile owner, stamped on every post.
        limit: Maximum number of posts to return.

    Returns:
        A ``TimelineCapture``. ``graphql_captured`` is False when no
        timeline payload was observed at all (usually a restricted bot
        account); that case is logged, never raised.
    """
    interceptor = TimelineInterceptor()
    interceptor.attach(page)
    try:
        await page.reload(wait_until="domcontentloaded")
        await human.pause(AFTER_RELOAD_DELAY)

        stale = 0
        last_count = 0
        scrolls = 0
        while True:
            current = interceptor.edge_count
            if current >= limit:
                logger.info("[%s] Reached post limit: %d/%d", username, current, limit)
                break

            if current == last_count:
                stale += 1
                if stale >= STALE_SCROLL_LIMIT:
                    logger.info(
                        "[%s] Feed exhausted: %d edges after %d scrolls",
                        username, current, scrolls,
                    )
                    break
            else:
                stale = 0
                logger.debug("[%s] Scroll %d: %d edges loaded", username, scrolls + 1, current)
            last_count = current

            await page.mouse.wheel(0, human.random_between(SCROLL_DELTA_MIN, SCROLL_DELTA_MAX))
            await human.pause(SCROLL_DELAY)
            scrolls += 1

        await human.pause(FINAL_CAPTURE_DELAY)
    finally:
        interceptor.detach()

    posts = parse_timeline(interceptor.payloads, username)
    posts.sort(key=lambda p: p.created_at, reverse=True)

    if not interceptor.captured:
        logger.warning(
            "[%s] No timeline GraphQL responses captured; the bot account may be "
            "restricted. Check /accounts/status",
            username,
        )
    elif not posts:
        logger.info("[%s] Timeline captured but no posts found", username)

    return TimelineCapture(
        posts=posts[:limit],
        graphql_captured=interceptor.captured,
        payload_count=len(interceptor.payloads),
    )
