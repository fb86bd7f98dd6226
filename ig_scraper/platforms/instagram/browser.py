"""Persistent Playwright sessions for Instagram bot accounts.

One persistent Chromium context per account session directory, shared by
every request that uses that account. The pool guarantees at most one live
context per session key: concurrent ``acquire`` calls for the same key wait
on the same in-flight launch instead of racing to open the profile twice.

A background reaper kills zombie or runaway Chromium processes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import psutil
from playwright.async_api import (
    BrowserContext,
    CDPSession,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ig_scraper.config import Settings
from ig_scraper.stealth import accept_language_for, random_profile

from .constants import (
    COMMON_VIEWPORTS,
    IGNORE_DEFAULT_ARGS,
    LAUNCH_ARGS,
    NAVIGATION_TIMEOUT_MS,
    SINGLETON_FILES,
    STEALTH_JS,
)
from .errors import LaunchFailure

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class BrowserSession:
    """A live persistent context plus the pages it has handed out."""
    key: str
    context: BrowserContext
    launched_at: float = field(default_factory=time.time)
    tabs: set[Page] = field(default_factory=set)
    closed: bool = False

    @property
    def is_alive(self) -> bool:
        if self.closed:
            return False
        # Persistent contexts have no Browser object on some Playwright versions
        browser = self.context.browser
        return browser is None or browser.is_connected()


@dataclass(eq=False)
class Tab:
    """A page claimed for a single scrape attempt."""
    page: Page
    session: BrowserSession
    cdp: CDPSession | None = None


def clear_singleton_locks(user_data_dir: str) -> None:
    """Remove Chromium's profile lock files left behind by a crashed browser."""
    for name in SINGLETON_FILES:
        path = Path(user_data_dir) / name
        try:
            # SingletonLock is usually a dangling symlink, so no exists() check
            path.unlink()
            logger.debug("Removed stale %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def reap_browser_processes(memory_percent: float) -> int:
    """Kill Chromium processes that are zombies or above ``memory_percent``.

    Best-effort: errors are logged at debug level and never raised.
    Returns the number of processes killed.
    """
    killed = 0
    try:
        for proc in psutil.process_iter(["pid", "name", "status", "memory_percent"]):
            try:
                name = (proc.info.get("name") or "").lower()
                if "chrom" not in name:
                    continue
                zombie = proc.info.get("status") == psutil.STATUS_ZOMBIE
                mem = proc.info.get("memory_percent") or 0.0
                if not zombie and mem <= memory_percent:
                    continue
                logger.warning(
                    "Reaping browser process %s (%s, zombie=%s, mem=%.1f%%)",
                    proc.info.get("pid"), name, zombie, mem,
                )
                proc.kill()
                killed += 1
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
    except Exception:
        logger.debug("Process reaper failed", exc_info=True)
    return killed


class SessionPool:
    """Owns every persistent browser context in the process.

    Usage:
        pool = SessionPool(settings)
        await pool.start()

        session = await pool.acquire("sessions/instagram/bot_1")
        tab = await pool.create_tab(session, "https://www.instagram.com/nasa/")
        try:
            ...
        finally:
            await pool.close_tab(tab)

        await pool.shutdown()
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._sessions: dict[str, BrowserSession] = {}
        self._launches: dict[str, asyncio.Future[BrowserSession]] = {}
        self._pw: Playwright | None = None
        self._pw_lock = asyncio.Lock()
        self._reaper_task: asyncio.Task[None] | None = None
        self._closed = False

    async def start(self) -> None:
        """Start the background process reaper."""
        if self._reaper_task is None:
            self._reaper_task = asyncio.create_task(self._reaper_loop())

    # ──────────────────────────────────────
    # Sessions
    # ──────────────────────────────────────

    async def acquire(self, session_key: str) -> BrowserSession:
        """Return the live session for ``session_key``, launching it if needed.

        Raises:
            LaunchFailure: The context could not be launched. Every caller
                waiting on the same launch gets the same error.
        """
        session = self._sessions.get(session_key)
        if session is not None:
            if session.is_alive:
                return session
            logger.info("Session %s is disconnected, relaunching", session_key)
            self._sessions.pop(session_key, None)

        future = self._launches.get(session_key)
        if future is None:
            future = asyncio.ensure_future(self._launch(session_key))
            self._launches[session_key] = future
            future.add_done_callback(
                lambda f, key=session_key: self._launch_done(key, f)
            )
        else:
            logger.debug("Waiting for in-flight launch of %s", session_key)

        # shield: a cancelled waiter must not cancel the launch for the others
        return await asyncio.shield(future)

    def _launch_done(self, key: str, future: asyncio.Future[BrowserSession]) -> None:
        if self._launches.get(key) is future:
            del self._launches[key]
        if not future.cancelled():
            # Mark retrieved in case every waiter went away
            future.exception()

    async def _launch(self, key: str) -> BrowserSession:
        if self._closed:
            raise LaunchFailure(key, "session pool is shut down")

        try:
            Path(key).mkdir(parents=True, exist_ok=True)
            clear_singleton_locks(key)
            pw = await self._ensure_playwright()
            context = await pw.chromium.launch_persistent_context(
                user_data_dir=key, **self._launch_options(),
            )
        except Exception as e:
            logger.error("Browser launch failed for %s: %s", key, e)
            raise LaunchFailure(key, str(e)) from e

        session = BrowserSession(key=key, context=context)
        context.on("close", lambda *_: self._on_context_closed(session))
        self._sessions[key] = session
        logger.info("Browser session launched: %s", key)
        return session

    def _on_context_closed(self, session: BrowserSession) -> None:
        session.closed = True
        if self._sessions.get(session.key) is session:
            del self._sessions[session.key]
            logger.info("Browser session closed: %s", session.key)

    async def _ensure_playwright(self) -> Playwright:
        async with self._pw_lock:
            if self._pw is None:
                self._pw = await async_playwright().start()
            return self._pw

    def _launch_options(self) -> dict[str, Any]:
        s = self._settings
        options: dict[str, Any] = {
            "headless": s.headless,
            "viewport": dict(random.choice(COMMON_VIEWPORTS)),
            "locale": s.browser_locale,
            "timezone_id": s.browser_timezone,
            "args": list(LAUNCH_ARGS),
            "ignore_default_args": list(IGNORE_DEFAULT_ARGS),
        }
        if s.chrome_path:
            options["executable_path"] = s.chrome_path
        if s.proxy_server:
            options["proxy"] = {"server": s.proxy_server}
        return options

    async def release(self, session_key: str) -> None:
        """Close the context for ``session_key`` and forget it."""
        session = self._sessions.pop(session_key, None)
        if session is not None:
            await self._close_session(session)

    async def _close_session(self, session: BrowserSession) -> None:
        session.closed = True
        try:
            await session.context.close()
        except Exception as e:
            logger.warning("Error closing session %s: %s", session.key, e)

    # ──────────────────────────────────────
    # Tabs
    # ──────────────────────────────────────

    async def create_tab(self, session: BrowserSession, url: str) -> Tab:
        """Open ``url`` in a fresh (or recycled blank) page of ``session``.

        A navigation timeout is logged and the tab is returned anyway; the
        caller decides whether the partially loaded page is usable.
        """
        page = self._claim_blank_page(session)
        if page is None:
            page = await session.context.new_page()
        session.tabs.add(page)
        tab = Tab(page=page, session=session)

        try:
            profile = random_profile()
            await page.set_extra_http_headers(
                profile.headers(accept_language_for(self._settings.browser_locale))
            )
            await page.add_init_script(STEALTH_JS)
            tab.cdp = await self._open_cdp(session, page)
            try:
                await page.goto(
                    url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS,
                )
            except PlaywrightTimeoutError:
                logger.warning("Navigation to %s timed out, continuing", url)
        except BaseException:
            await self.close_tab(tab)
            raise
        return tab

    @staticmethod
    def _claim_blank_page(session: BrowserSession) -> Page | None:
        for page in session.context.pages:
            if page in session.tabs or page.is_closed():
                continue
            if page.url == "about:blank":
                return page
        return None

    @staticmethod
    async def _open_cdp(session: BrowserSession, page: Page) -> CDPSession | None:
        try:
            cdp = await session.context.new_cdp_session(page)
            await cdp.send("Emulation.setFocusEmulationEnabled", {"enabled": True})
            return cdp
        except Exception as e:
            logger.debug("CDP focus emulation unavailable: %s", e)
            return None

    async def close_tab(self, tab: Tab) -> None:
        """Detach CDP and close the page. Never raises."""
        tab.session.tabs.discard(tab.page)
        if tab.cdp is not None:
            try:
                await tab.cdp.detach()
            except Exception as e:
                logger.warning("Failed to detach CDP session: %s", e)
            tab.cdp = None
        try:
            if not tab.page.is_closed():
                await tab.page.close()
        except Exception as e:
            logger.warning("Failed to close tab: %s", e)

    # ──────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────

    async def _reaper_loop(self) -> None:
        interval = self._settings.reaper_interval_seconds
        while True:
            await asyncio.sleep(interval)
            killed = await asyncio.to_thread(
                reap_browser_processes, self._settings.reaper_memory_percent,
            )
            if killed:
                logger.info("Reaper killed %d browser process(es)", killed)

    async def shutdown(self) -> None:
        """Close every context and stop Playwright. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

        for future in list(self._launches.values()):
            future.cancel()

        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await self._close_session(session)

        if self._pw is not None:
            try:
                await self._pw.stop()
            except Exception as e:
                logger.warning("Error stopping Playwright: %s", e)
            self._pw = None

        await asyncio.to_thread(reap_browser_processes, self._settings.reaper_memory_percent)
        logger.info("Session pool shut down (%d session(s) closed)", len(sessions))

    def is_live(self, session_key: str) -> bool:
        session = self._sessions.get(session_key)
        return session is not None and session.is_alive

    def stats(self) -> dict[str, Any]:
        """Snapshot for /health/detailed."""
        return {
            "liveSessions": len(self._sessions),
            "launching": len(self._launches),
            "openTabs": sum(len(s.tabs) for s in self._sessions.values()),
            "sessions": [
                {
                    "key": s.key,
                    "launchedAt": int(s.launched_at),
                    "tabs": len(s.tabs),
                }
                for s in self._sessions.values()
            ],
        }
