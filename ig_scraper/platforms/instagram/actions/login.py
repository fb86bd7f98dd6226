"""Login-wall detection and the Instagram login flow."""

from __future__ import annotations

import logging

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ig_scraper.models.account import Account

from .. import human
from ..constants import (
    LOGIN_FORM_SELECTOR,
    LOGIN_FORM_TIMEOUT_MS,
    LOGIN_INPUT_SELECTOR,
    LOGIN_PATH,
    LOGIN_REDIRECT_TIMEOUT_MS,
    NETWORK_IDLE_TIMEOUT_MS,
    PASSWORD_INPUTS,
    SUBMIT_FALLBACK_SELECTOR,
    SUBMIT_FALLBACK_TIMEOUT_MS,
    SUBMIT_SELECTOR,
    TYPING_DELAY,
    USERNAME_INPUTS,
)
from ..errors import LoginFailedError

logger = logging.getLogger(__name__)

_LEFT_LOGIN_JS = f"() => !window.location.href.includes('{LOGIN_PATH}')"


async def wait_for_network_idle(page: Page, timeout_ms: int = NETWORK_IDLE_TIMEOUT_MS) -> None:
    """Wait for network idle; a timeout just means "proceed"."""
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        logger.debug("Network idle wait timed out after %dms", timeout_ms)


def on_login_path(page: Page) -> bool:
    return LOGIN_PATH in page.url


async def is_login_wall(page: Page) -> bool:
    """True if the page redirected to login or shows the login form."""
    if on_login_path(page):
        return True
    return await page.locator(LOGIN_INPUT_SELECTOR).count() > 0


async def _first_visible(page: Page, selectors: tuple[str, ...]) -> str:
    for selector in selectors[:-1]:
        if await page.is_visible(selector):
            return selector
    return selectors[-1]


async def perform_login(page: Page, account: Account) -> None:
    """Fill and submit the login form, then wait to leave the login path.

    Raises:
        LoginFailedError: The form never appeared or Instagram kept us on
            the login page.
    """
    logger.info("Logging in as %s", account.username)
    try:
        await page.wait_for_selector(LOGIN_FORM_SELECTOR, timeout=LOGIN_FORM_TIMEOUT_MS)
    except PlaywrightTimeoutError as e:
        raise LoginFailedError(f"Login form not found for {account.username}") from e

    await page.fill(await _first_visible(page, USERNAME_INPUTS), account.username)
    await human.pause(TYPING_DELAY)
    await page.fill(
        await _first_visible(page, PASSWORD_INPUTS), account.password.get_secret_value(),
    )
    await human.pause(TYPING_DELAY)

    if await page.locator(SUBMIT_SELECTOR).count() > 0:
        await page.click(SUBMIT_SELECTOR)
    else:
        try:
            await page.click(SUBMIT_FALLBACK_SELECTOR, timeout=SUBMIT_FALLBACK_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            raise LoginFailedError(f"Login button not found for {account.username}") from e

    try:
        await page.wait_for_function(_LEFT_LOGIN_JS, timeout=LOGIN_REDIRECT_TIMEOUT_MS)
    except PlaywrightTimeoutError as e:
        raise LoginFailedError(
            f"Still on login page after {LOGIN_REDIRECT_TIMEOUT_MS // 1000}s "
            f"for {account.username} (checkpoint or wrong password?)"
        ) from e

    logger.info("Login submitted for %s, now at %s", account.username, page.url)
