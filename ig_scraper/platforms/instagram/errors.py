"""Instagram scraper error hierarchy.

Private profiles and empty extractions are outcome values, not errors.
"""

from __future__ import annotations


class ScraperError(Exception):
    """Base error for Instagram scraping operations."""


class SessionInvalidError(ScraperError):
    """The bot account hit the login wall; its session needs repair."""


class ProfileLoadError(ScraperError):
    """The profile page did not load (login or not-found title)."""


class ProfileCheckError(ScraperError):
    """The private-profile check itself failed."""


class LaunchFailure(ScraperError):
    """A persistent browser context could not be launched."""

    def __init__(self, session_key: str, reason: str = "") -> None:
        self.session_key = session_key
        msg = f"Failed to launch browser for {session_key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LoginFailedError(ScraperError):
    """The login form could not be completed."""


class AllAccountsExhausted(ScraperError):
    """Every bot account was tried for a target and none succeeded."""

    def __init__(
        self, username: str, attempts: int, last_error: str | None = None,
    ) -> None:
        self.username = username
        self.attempts = attempts
        self.last_error = last_error
        msg = f"Failed to scrape {username} after trying {attempts} account(s)"
        if last_error:
            msg += f". Last error: {last_error}"
        super().__init__(msg)


class AdmissionRejected(ScraperError):
    """Too many requests are already in flight."""

    def __init__(self, active: int, max_concurrent: int) -> None:
        self.active = active
        self.max_concurrent = max_concurrent
        super().__init__(
            f"Server busy: {active}/{max_concurrent} requests in progress. "
            "Please retry later."
        )
