"""Profile page checks: load errors and private-account detection."""

from __future__ import annotations

import logging
from enum import Enum

from playwright.async_api import Page

from ..constants import BAD_TITLE_MARKERS, PRIVATE_PROFILE_RE

logger = logging.getLogger(__name__)


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNKNOWN = "unknown"


async def bad_title(page: Page) -> str | None:
    """Return the page title if it marks a login or not-found page."""
    title = await page.title()
    if any(marker in title for marker in BAD_TITLE_MARKERS):
        return title
    return None


async def detect_visibility(page: Page) -> Visibility:
    """Look for the "This Account is Private" banner.

    UNKNOWN means the check itself failed; callers decide what that means.
    """
    try:
        count = await page.get_by_text(PRIVATE_PROFILE_RE).count()
    except Exception as e:
        logger.warning("Private profile check failed: %s", e)
        return Visibility.UNKNOWN
    return Visibility.PRIVATE if count > 0 else Visibility.PUBLIC
