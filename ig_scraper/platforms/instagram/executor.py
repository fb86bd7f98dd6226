"""InstagramExecutor: scrape orchestration across bot accounts.

Single profile:  select least-used account → attempt → success, or report
the failure, schedule a session repair and retry with the next account.

Batch:  one account and one browser session per run, tabs fanned out in
small windows. Account-level failures (login wall, launch failure) move the
unfinished targets to the next account; completed targets are never
re-fetched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from ig_scraper.config import PrivateCheckPolicy, Settings
from ig_scraper.models.account import Account
from ig_scraper.models.post import BatchOutcome, ScrapeOutcome
from ig_scraper.services.accounts_service import AccountLedger
from ig_scraper.utils.retry import RetryConfig, retry_with_result

from . import human
from .actions.login import is_login_wall, on_login_path, perform_login, wait_for_network_idle
from .actions.profile import Visibility, bad_title, detect_visibility
from .actions.timeline import capture_timeline
from .browser import BrowserSession, SessionPool
from .constants import (
    AFTER_LOAD_DELAY,
    BATCH_WINDOW_DELAY,
    LOGIN_PAGE_DELAY,
    LOGIN_URL,
    PRIVATE_MESSAGE,
    profile_url,
)
from .errors import (
    AllAccountsExhausted,
    LaunchFailure,
    ProfileCheckError,
    ProfileLoadError,
    ScraperError,
    SessionInvalidError,
)

logger = logging.getLogger(__name__)

ACCOUNT_LEVEL_ERRORS = (SessionInvalidError, LaunchFailure)
NO_CAPTURE_WARNING = (
    "No timeline data captured. The bot account may be restricted; "
    "check /accounts/status"
)
BATCH_ALL_FAILED = "All parallel scrapes failed"
BATCH_EXHAUSTED = "All accounts exhausted"


class Phase(Enum):
    SELECT_ACCOUNT = "select_account"
    ATTEMPT = "attempt"
    SUCCESS = "success"
    FAILURE = "failure"
    EXHAUSTED = "exhausted"


@dataclass
class RetryState:
    """Bookkeeping for one target (or batch) across accounts."""
    excluded: set[str] = field(default_factory=set)
    attempts: int = 0
    last_error: str | None = None

    def fail(self, account: Account, error: str) -> None:
        self.excluded.add(account.username)
        self.last_error = error


@dataclass
class AttemptResult:
    """What one attempt produced: an outcome, or the error that stopped it."""
    outcome: ScrapeOutcome | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None


def describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def normalize_username(username: str) -> str:
    return username.strip().lstrip("@")


class InstagramExecutor:
    """Scrape Instagram profiles with account rotation and session repair."""

    def __init__(
        self,
        settings: Settings,
        ledger: AccountLedger,
        pool: SessionPool,
        verify_retry: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._ledger = ledger
        self._pool = pool
        self._verify_retry = verify_retry or RetryConfig(max_retries=3, delay=2.0, jitter=2.0)
        self._background: set[asyncio.Task[bool]] = set()
        self._repairing: set[str] = set()

    @property
    def background_tasks(self) -> int:
        return len(self._background)

    # ──────────────────────────────────────
    # Single profile
    # ──────────────────────────────────────

    async def scrape_profile(
        self,
        username: str,
        max_posts: int | None = None,
        created_at: int | None = None,
    ) -> ScrapeOutcome:
        """Scrape one profile, trying accounts until one succeeds.

        Raises:
            AllAccountsExhausted: Every account failed for this profile.
        """
        username = normalize_username(username)
        limit = max_posts or self._settings.max_posts_per_request
        state = RetryState()
        phase = Phase.SELECT_ACCOUNT
        account: Account | None = None
        result = AttemptResult()

        while True:
            if phase is Phase.SELECT_ACCOUNT:
                account = await self._ledger.select_least_used(state.excluded)
                phase = Phase.ATTEMPT if account is not None else Phase.EXHAUSTED

            elif phase is Phase.ATTEMPT:
                assert account is not None
                state.attempts += 1
                logger.info(
                    "[%s] Attempt %d with account %s", username, state.attempts, account.username,
                )
                result = await self._attempt(account, username, limit, created_at)
                phase = Phase.SUCCESS if result.ok else Phase.FAILURE

            elif phase is Phase.SUCCESS:
                assert account is not None and result.outcome is not None
                await self._ledger.report_outcome(account.username, True)
                logger.info(
                    "[%s] Scraped %d post(s) with %s",
                    username, len(result.outcome.posts), account.username,
                )
                return result.outcome

            elif phase is Phase.FAILURE:
                assert account is not None and result.error is not None
                reason = describe(result.error)
                await self._ledger.report_outcome(account.username, False, reason)
                self.schedule_repair(account)
                state.fail(account, reason)
                phase = Phase.SELECT_ACCOUNT

            else:
                logger.error(
                    "[%s] All accounts exhausted after %d attempt(s). Last error: %s",
                    username, state.attempts, state.last_error,
                )
                raise AllAccountsExhausted(username, state.attempts, state.last_error)

    async def _attempt(
        self, account: Account, username: str, limit: int, created_at: int | None,
    ) -> AttemptResult:
        try:
            session = await self._pool.acquire(self._ledger.session_key_for(account))
            outcome = await self._scrape_in_session(session, account, username, limit, created_at)
        except Exception as e:
            logger.warning("[%s] Attempt with %s failed: %s", username, account.username, e)
            return AttemptResult(error=e)
        return AttemptResult(outcome=outcome)

    async def _scrape_in_session(
        self,
        session: BrowserSession,
        account: Account,
        username: str,
        limit: int,
        created_at: int | None,
    ) -> ScrapeOutcome:
        timeout = self._settings.scraper_timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self._scrape_tab(session, account, username, limit, created_at),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ScraperError(f"Scrape of {username} timed out after {timeout:.0f}s") from e

    async def _scrape_tab(
        self,
        session: BrowserSession,
        account: Account,
        username: str,
        limit: int,
        created_at: int | None,
    ) -> ScrapeOutcome:
        target = profile_url(username)
        tab = await self._pool.create_tab(session, target)
        page = tab.page
        try:
            await wait_for_network_idle(page)
            await human.pause(AFTER_LOAD_DELAY)

            if await is_login_wall(page):
                raise SessionInvalidError(
                    f"Session invalid for {account.username} (login required)"
                )

            if f"/{username.lower()}" not in page.url.lower():
                logger.info("[%s] Redirected to %s, navigating back", username, page.url)
                await page.goto(target, wait_until="domcontentloaded")

            title = await bad_title(page)
            if title is not None:
                raise ProfileLoadError(f"Failed to load profile (Title: {title})")

            visibility = await detect_visibility(page)
            if visibility is Visibility.UNKNOWN:
                if self._settings.private_check_policy is PrivateCheckPolicy.RETRY:
                    raise ProfileCheckError(f"Could not determine whether {username} is private")
                logger.info("[%s] Private check inconclusive, assuming public", username)
            elif visibility is Visibility.PRIVATE:
                logger.info("[%s] Account is private", username)
                return ScrapeOutcome(
                    success=True,
                    username=username,
                    scraped_with=account.username,
                    error=PRIVATE_MESSAGE,
                )

            await human.random_mouse_movements(page)
            capture = await capture_timeline(page, username, limit)
        finally:
            await self._pool.close_tab(tab)

        if not capture.graphql_captured and self._settings.private_check_policy is PrivateCheckPolicy.RETRY:
            raise ProfileCheckError(
                f"No timeline captured for {username}; visibility unconfirmed"
            )

        posts = capture.posts
        if created_at is not None:
            posts = [p for p in posts if p.created_at > created_at]
            logger.info(
                "[%s] %d/%d post(s) newer than %d", username, len(posts), len(capture.posts), created_at,
            )

        return ScrapeOutcome(
            success=True,
            username=username,
            posts=posts,
            scraped_with=account.username,
            graphql_captured=capture.graphql_captured,
            warning=None if capture.graphql_captured else NO_CAPTURE_WARNING,
        )

    # ──────────────────────────────────────
    # Batch
    # ──────────────────────────────────────

    async def scrape_profiles(
        self,
        usernames: Sequence[str],
        max_posts: int | None = None,
        created_at: int | None = None,
        created_at_map: Mapping[str, int] | None = None,
    ) -> BatchOutcome:
        """Scrape several profiles with one account and one session per run.

        Results come back in input order.

        Raises:
            ValueError: Empty batch or more than ``batch_max_targets`` names.
            AllAccountsExhausted: Accounts ran out before any target completed.
        """
        max_targets = self._settings.batch_max_targets
        if not 1 <= len(usernames) <= max_targets:
            raise ValueError(f"Between 1 and {max_targets} usernames are required")

        targets = [normalize_username(u) for u in usernames]
        limit = max_posts or self._settings.max_posts_per_request
        thresholds = created_at_map or {}
        results: list[ScrapeOutcome | None] = [None] * len(targets)
        state = RetryState()

        while True:
            pending = [i for i, r in enumerate(results) if r is None]
            if not pending:
                break
            account = await self._ledger.select_least_used(state.excluded)
            if account is None:
                break

            state.attempts += 1
            logger.info(
                "Batch run %d: %d target(s) with account %s",
                state.attempts, len(pending), account.username,
            )
            try:
                await self._run_batch(account, targets, pending, results, limit, created_at, thresholds)
            except ACCOUNT_LEVEL_ERRORS as e:
                reason = describe(e)
                logger.warning("Batch aborted for account %s: %s", account.username, reason)
                await self._ledger.report_outcome(account.username, False, reason)
                self.schedule_repair(account)
                state.fail(account, reason)
                continue

            run = [r for i, r in enumerate(results) if i in pending and r is not None]
            failed = sum(1 for r in run if not r.success)
            if run and failed == len(run):
                await self._ledger.report_outcome(account.username, False, BATCH_ALL_FAILED)
            elif failed == 0:
                await self._ledger.report_outcome(account.username, True)

        missing = [i for i, r in enumerate(results) if r is None]
        if missing:
            if len(missing) == len(targets):
                logger.error("Batch exhausted all accounts: %s", ", ".join(targets))
                raise AllAccountsExhausted(", ".join(targets), state.attempts, state.last_error)
            for i in missing:
                results[i] = ScrapeOutcome(
                    success=False, username=targets[i], error=BATCH_EXHAUSTED,
                )

        return BatchOutcome.from_results([r for r in results if r is not None])

    async def _run_batch(
        self,
        account: Account,
        targets: list[str],
        pending: list[int],
        results: list[ScrapeOutcome | None],
        limit: int,
        created_at: int | None,
        thresholds: Mapping[str, int],
    ) -> None:
        """Fill ``results`` for ``pending`` using one session.

        Raises the first account-level error after its window finishes.
        """
        session_key = self._ledger.session_key_for(account)
        window = self._settings.batch_tab_concurrency
        try:
            session = await self._pool.acquire(session_key)
            for start in range(0, len(pending), window):
                if start:
                    await human.pause(BATCH_WINDOW_DELAY)
                chunk = pending[start:start + window]
                outcomes = await asyncio.gather(
                    *(
                        self._scrape_in_session(
                            session, account, targets[i], limit,
                            thresholds.get(targets[i], created_at),
                        )
                        for i in chunk
                    ),
                    return_exceptions=True,
                )

                account_error: Exception | None = None
                for i, outcome in zip(chunk, outcomes):
                    if isinstance(outcome, ScrapeOutcome):
                        results[i] = outcome
                    elif isinstance(outcome, ACCOUNT_LEVEL_ERRORS):
                        account_error = account_error or outcome
                    elif isinstance(outcome, Exception):
                        logger.warning("[%s] Batch target failed: %s", targets[i], outcome)
                        results[i] = ScrapeOutcome(
                            success=False,
                            username=targets[i],
                            scraped_with=account.username,
                            error=describe(outcome),
                        )
                    else:
                        raise outcome
                if account_error is not None:
                    raise account_error
        finally:
            await self._pool.release(session_key)

    # ──────────────────────────────────────
    # Session verification & repair
    # ──────────────────────────────────────

    async def ensure_session_ready(self, account: Account) -> bool:
        """Make sure ``account`` is logged in, logging in if needed.

        Returns True when Instagram no longer redirects to the login page.
        """
        session = await self._pool.acquire(self._ledger.session_key_for(account))
        tab = await self._pool.create_tab(session, LOGIN_URL)
        page = tab.page
        try:
            await wait_for_network_idle(page)
            await human.pause(LOGIN_PAGE_DELAY)
            if not on_login_path(page):
                logger.info("Session for %s is already logged in", account.username)
                return True

            await perform_login(page, account)
            await human.pause(AFTER_LOAD_DELAY)

            await page.goto(LOGIN_URL, wait_until="domcontentloaded")
            await wait_for_network_idle(page)
            ready = not on_login_path(page)
            if ready:
                logger.info("Login succeeded for %s", account.username)
            else:
                logger.warning("Login did not stick for %s", account.username)
            return ready
        finally:
            await self._pool.close_tab(tab)

    async def repair_session(self, account: Account) -> bool:
        """Relaunch and re-login ``account``. Never raises."""
        if account.username in self._repairing:
            logger.debug("Repair already running for %s", account.username)
            return False

        self._repairing.add(account.username)
        try:
            logger.info("Repairing session for %s", account.username)
            await self._pool.release(self._ledger.session_key_for(account))
            ready = await self.ensure_session_ready(account)
        except Exception:
            logger.exception("Session repair crashed for %s", account.username)
            return False
        finally:
            self._repairing.discard(account.username)

        if ready:
            logger.info("Session repaired for %s", account.username)
        else:
            logger.error("Session repair failed for %s", account.username)
        return ready

    def schedule_repair(self, account: Account) -> None:
        """Run ``repair_session`` in the background; the request never waits on it."""
        task = asyncio.create_task(self.repair_session(account))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def verify_all_sessions(self) -> dict[str, bool]:
        """Check (and log in) every account at startup, then log a report."""
        report: dict[str, bool] = {}
        for account in self._ledger.accounts:
            result = await retry_with_result(
                self.ensure_session_ready,
                account,
                config=self._verify_retry,
                accept=bool,
                label=f"session check for {account.username}",
            )
            report[account.username] = result.success
            if not result.success:
                logger.warning(
                    "Session for %s is not ready after %d attempt(s): %s",
                    account.username, result.attempts, result.error,
                )

        live = sum(report.values())
        logger.info("Session report: %d/%d live", live, len(report))
        for name, ok in report.items():
            logger.info("  %-6s %s", "LIVE" if ok else "DEAD", name)
        return report

    async def close(self) -> None:
        """Cancel background repairs."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
