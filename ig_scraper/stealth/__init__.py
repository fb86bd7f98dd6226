"""Stealth helpers for Playwright tabs.

Usage:
    from ig_scraper.stealth import accept_language_for, random_profile

    profile = random_profile()
    await page.set_extra_http_headers(profile.headers(accept_language_for("es-EC")))
"""

from .profiles import DEFAULT_ACCEPT_LANGUAGE, UAProfile, accept_language_for, random_profile

__all__ = ["DEFAULT_ACCEPT_LANGUAGE", "UAProfile", "accept_language_for", "random_profile"]
