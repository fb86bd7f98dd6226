"""Instagram platform constants: URLs, selectors, timeouts, stealth JS."""

from __future__ import annotations

import re

BASE_URL = "https://www.instagram.com"
LOGIN_URL = f"{BASE_URL}/accounts/login/"
LOGIN_PATH = "/accounts/login"
PERMALINK_TEMPLATE = "https://instagram.com/p/{code}/"


def profile_url(username: str) -> str:
    return f"{BASE_URL}/{username}/"


# GraphQL timeline capture
GRAPHQL_URL_MARKER = "graphql/query"
TIMELINE_CONNECTION_KEY = "xdt_api__v1__feed__user_timeline_graphql_connection"

# Selectors
LOGIN_INPUT_SELECTOR = 'input[name="username"]'
LOGIN_FORM_SELECTOR = 'input[name="username"], input[name="email"]'
USERNAME_INPUTS = ('input[name="username"]', 'input[name="email"]')
PASSWORD_INPUTS = ('input[name="password"]', 'input[name="pass"]')
SUBMIT_SELECTOR = 'button[type="submit"]'
SUBMIT_FALLBACK_SELECTOR = (
    'div[role="button"]:has-text("Iniciar sesión"), '
    'div[role="button"]:has-text("Log in")'
)

# Page sentinels
BAD_TITLE_MARKERS = ("Login", "Page Not Found")
PRIVATE_PROFILE_RE = re.compile(r"Esta cuenta es privada|This Account is Private", re.I)
PRIVATE_MESSAGE = "Account is private"

# Timeouts (ms)
NETWORK_IDLE_TIMEOUT_MS = 10000
LOGIN_FORM_TIMEOUT_MS = 10000
SUBMIT_FALLBACK_TIMEOUT_MS = 5000
LOGIN_REDIRECT_TIMEOUT_MS = 35000
NAVIGATION_TIMEOUT_MS = 60000

# Progressive scroll
STALE_SCROLL_LIMIT = 5
SCROLL_DELTA_MIN = 800
SCROLL_DELTA_MAX = 1200

# Pacing windows (ms)
AFTER_LOAD_DELAY = (2000, 4000)
AFTER_RELOAD_DELAY = (3000, 4000)
SCROLL_DELAY = (1500, 2500)
FINAL_CAPTURE_DELAY = (2000, 3000)
BATCH_WINDOW_DELAY = (1000, 2000)
LOGIN_PAGE_DELAY = (1500, 2500)
TYPING_DELAY = (600, 1500)

# Browser launch
COMMON_VIEWPORTS = (
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--no-default-browser-check",
    "--no-first-run",
    "--disable-session-crashed-bubble",
    "--disable-infobars",
]
IGNORE_DEFAULT_ARGS = ["--enable-automation"]

SINGLETON_FILES = ("SingletonLock", "SingletonSocket", "SingletonCookie")

# Stealth JavaScript, injected via page.add_init_script() before any page loads.
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined
});

if (!window.chrome) { window.chrome = {}; }
if (!window.chrome.runtime) {
    window.chrome.runtime = {
        connect: function() {},
        sendMessage: function() {}
    };
}

for (const key of Object.keys(window)) {
    if (key.startsWith('__playwright') || key.startsWith('__pw_')) {
        delete window[key];
    }
}

Object.defineProperty(navigator, 'languages', {
    get: () => ['es-EC', 'es', 'en']
});
"""
