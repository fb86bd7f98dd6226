"""User-Agent profiles and the realistic header set sent with them.

Each profile bundles a UA string with the Sec-CH-UA client hints that
modern Chrome sends on every request. Mismatches between them are an easy
bot signal, so the headers are always derived from the chosen profile.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

_CH_131 = '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"'
_CH_130 = '"Google Chrome";v="130", "Chromium";v="130", "Not_A Brand";v="24"'
_CH_129 = '"Google Chrome";v="129", "Chromium";v="129", "Not=A?Brand";v="8"'
_CH_EDGE_131 = '"Microsoft Edge";v="131", "Chromium";v="131", "Not_A Brand";v="24"'

DEFAULT_ACCEPT_LANGUAGE = "es-EC,es;q=0.9,en;q=0.8"


@dataclass(frozen=True)
class UAProfile:
    """A consistent user agent + client hints fingerprint."""
    user_agent: str
    sec_ch_ua: str              # Sec-CH-UA header
    sec_ch_ua_platform: str     # Sec-CH-UA-Platform header
    sec_ch_ua_mobile: str = "?0"

    def headers(self, accept_language: str = DEFAULT_ACCEPT_LANGUAGE) -> dict[str, str]:
        """Request headers of a normal top-level navigation from this browser."""
        return {
            "User-Agent": self.user_agent,
            "Accept-Language": accept_language,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
            "Accept-Encoding": "gzip, deflate, br",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            "Sec-CH-UA": self.sec_ch_ua,
            "Sec-CH-UA-Mobile": self.sec_ch_ua_mobile,
            "Sec-CH-UA-Platform": self.sec_ch_ua_platform,
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Cache-Control": "max-age=0",
        }


# ──────────────────────────────────────────────
# Chrome 129-131 on Windows / macOS / Linux, Edge 131
# ──────────────────────────────────────────────

_PROFILES = [
    UAProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_131,
        sec_ch_ua_platform='"Windows"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_130,
        sec_ch_ua_platform='"Windows"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_129,
        sec_ch_ua_platform='"Windows"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_131,
        sec_ch_ua_platform='"macOS"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6_0) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_130,
        sec_ch_ua_platform='"macOS"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        sec_ch_ua=_CH_131,
        sec_ch_ua_platform='"Linux"',
    ),
    UAProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        sec_ch_ua=_CH_EDGE_131,
        sec_ch_ua_platform='"Windows"',
    ),
]


def random_profile() -> UAProfile:
    """Pick a random UA profile with consistent fingerprint."""
    return random.choice(_PROFILES)


def accept_language_for(locale: str) -> str:
    """Accept-Language value a browser set to ``locale`` would send.

    ``es-EC`` -> ``es-EC,es;q=0.9,en;q=0.8``; ``en-US`` -> ``en-US,en;q=0.9``.
    """
    locale = locale.strip()
    if not locale:
        return DEFAULT_ACCEPT_LANGUAGE
    lang = locale.split("-")[0]
    parts = [locale]
    if lang != locale:
        parts.append(f"{lang};q=0.9")
    if lang != "en":
        parts.append("en;q=0.8")
    return ",".join(parts)
