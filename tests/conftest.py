"""Shared fixtures and Playwright stand-ins.

The stubs implement just the slice of the Playwright async API the scraper
touches: page events, reload/goto, mouse, locators and contexts.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import SecretStr

from ig_scraper.config import Settings
from ig_scraper.models.account import Account
from ig_scraper.platforms.instagram import human
from ig_scraper.platforms.instagram.browser import BrowserSession, Tab
from ig_scraper.platforms.instagram.constants import LOGIN_PATH
from ig_scraper.services import AccountLedger, RotationStore

HOME_URL = "https://www.instagram.com/"


# ──────────────────────────────────────
# Timeline payload builders
# ──────────────────────────────────────

def make_node(node_id: str, taken_at: int = 0, **extra: Any) -> dict[str, Any]:
    node = {
        "id": node_id,
        "code": f"C{node_id}",
        "taken_at": taken_at,
        "media_type": 1,
        "caption": {"text": f"post {node_id}"},
        "image_versions2": {
            "candidates": [{"url": f"https://cdn/{node_id}.jpg", "width": 1080, "height": 1080}],
        },
    }
    node.update(extra)
    return node


def timeline_payload(*nodes: dict[str, Any]) -> dict[str, Any]:
    return {
        "data": {
            "xdt_api__v1__feed__user_timeline_graphql_connection": {
                "edges": [{"node": n} for n in nodes],
            },
        },
    }


# ──────────────────────────────────────
# Playwright stubs
# ──────────────────────────────────────

class StubResponse:
    def __init__(self, body: Any, url: str = "https://www.instagram.com/graphql/query") -> None:
        self.url = url
        self._body = body

    async def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class StubLocator:
    def __init__(self, count: int = 0, error: Exception | None = None) -> None:
        self._count = count
        self._error = error

    async def count(self) -> int:
        if self._error is not None:
            raise self._error
        return self._count


class StubMouse:
    def __init__(self, page: StubPage) -> None:
        self._page = page
        self.wheels: list[tuple[int, int]] = []
        self.moves: list[tuple[int, int]] = []

    async def wheel(self, dx: int, dy: int) -> None:
        self.wheels.append((dx, dy))
        if self._page.scroll_batches:
            await self._page.emit_responses(self._page.scroll_batches.pop(0))

    async def move(self, x: int, y: int, steps: int = 1) -> None:
        self.moves.append((x, y))


class StubPage:
    """A scriptable page.

    ``reload_responses`` are emitted on reload; each mouse wheel emits the
    next batch from ``scroll_batches``.
    """

    def __init__(
        self,
        url: str = "about:blank",
        title: str = "Instagram",
        reload_responses: list[StubResponse] | None = None,
        scroll_batches: list[list[StubResponse]] | None = None,
        login_form: bool = False,
        private: bool = False,
        private_error: Exception | None = None,
        goto_error: Exception | None = None,
        logged_in: bool = True,
        login_form_missing: bool = False,
        login_sticks: bool = True,
    ) -> None:
        self.url = url
        self.title_text = title
        self.reload_responses = list(reload_responses or [])
        self.scroll_batches = [list(b) for b in (scroll_batches or [])]
        self.login_form = login_form
        self.private = private
        self.private_error = private_error
        self.goto_error = goto_error
        self.logged_in = logged_in
        self.login_form_missing = login_form_missing
        self.login_sticks = login_sticks

        self.mouse = StubMouse(self)
        self.viewport_size = {"width": 1366, "height": 768}
        self.headers: dict[str, str] = {}
        self.init_scripts: list[str] = []
        self.filled: dict[str, str] = {}
        self.clicked: list[str] = []
        self.visited: list[str] = []
        self.reloads = 0
        self.closed = False
        self.close_error: Exception | None = None
        self._events: dict[str, list[Any]] = {}

    # events
    def on(self, event: str, callback: Any) -> None:
        self._events.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Any) -> None:
        self._events.get(event, []).remove(callback)

    def listeners(self, event: str) -> list[Any]:
        return list(self._events.get(event, []))

    async def emit_responses(self, responses: list[StubResponse]) -> None:
        for response in responses:
            for cb in self.listeners("response"):
                await cb(response)

    # navigation
    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None) -> None:
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        if LOGIN_PATH in url and self.logged_in:
            self.url = HOME_URL
        elif not self.logged_in and LOGIN_PATH not in url:
            self.url = f"https://www.instagram.com{LOGIN_PATH}/?next={url}"
        else:
            self.url = url

    async def reload(self, wait_until: str | None = None) -> None:
        self.reloads += 1
        await self.emit_responses(self.reload_responses)

    async def wait_for_load_state(self, state: str, timeout: int | None = None) -> None:
        return None

    async def set_extra_http_headers(self, headers: dict[str, str]) -> None:
        self.headers = dict(headers)

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def title(self) -> str:
        return self.title_text

    # queries
    def locator(self, selector: str) -> StubLocator:
        if 'name="username"' in selector:
            return StubLocator(1 if self.login_form or LOGIN_PATH in self.url else 0)
        if 'type="submit"' in selector:
            return StubLocator(1)
        return StubLocator(0)

    def get_by_text(self, pattern: Any) -> StubLocator:
        return StubLocator(1 if self.private else 0, error=self.private_error)

    # login form
    async def wait_for_selector(self, selector: str, timeout: int | None = None) -> None:
        if self.login_form_missing:
            raise PlaywrightTimeoutError("login form not found")

    async def is_visible(self, selector: str) -> bool:
        return True

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def click(self, selector: str, timeout: int | None = None) -> None:
        self.clicked.append(selector)
        if self.login_sticks:
            self.logged_in = True

    async def wait_for_function(self, expression: str, timeout: int | None = None) -> None:
        if not self.logged_in:
            raise PlaywrightTimeoutError("still on login page")
        self.url = HOME_URL

    # lifecycle
    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class StubCDPSession:
    def __init__(self, detach_error: Exception | None = None) -> None:
        self.sent: list[tuple[str, dict]] = []
        self.detached = False
        self._detach_error = detach_error

    async def send(self, method: str, params: dict | None = None) -> dict:
        self.sent.append((method, params or {}))
        return {}

    async def detach(self) -> None:
        if self._detach_error is not None:
            raise self._detach_error
        self.detached = True


class StubContext:
    def __init__(self, page_factory: Any = StubPage) -> None:
        self.pages: list[StubPage] = []
        self.browser = None
        self.closed = False
        self.cdp_error: Exception | None = None
        self.cdp_sessions: list[StubCDPSession] = []
        self._page_factory = page_factory
        self._events: dict[str, list[Any]] = {}

    def on(self, event: str, callback: Any) -> None:
        self._events.setdefault(event, []).append(callback)

    async def new_page(self) -> StubPage:
        page = self._page_factory()
        self.pages.append(page)
        return page

    async def new_cdp_session(self, page: StubPage) -> StubCDPSession:
        if self.cdp_error is not None:
            raise self.cdp_error
        cdp = StubCDPSession()
        self.cdp_sessions.append(cdp)
        return cdp

    async def close(self) -> None:
        self.closed = True
        for cb in list(self._events.get("close", [])):
            cb(self)


class StubChromium:
    def __init__(self) -> None:
        self.launches: list[dict[str, Any]] = []
        self.contexts: list[StubContext] = []
        self.error: Exception | None = None

    async def launch_persistent_context(self, user_data_dir: str, **options: Any) -> StubContext:
        # Yield a few times so concurrent callers overlap with the launch
        for _ in range(3):
            await asyncio.sleep(0)
        self.launches.append({"user_data_dir": user_data_dir, **options})
        if self.error is not None:
            raise self.error
        context = StubContext()
        self.contexts.append(context)
        return context


class StubPlaywright:
    def __init__(self) -> None:
        self.chromium = StubChromium()
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class StubPlaywrightManager:
    def __init__(self, pw: StubPlaywright) -> None:
        self._pw = pw
        self.starts = 0

    async def start(self) -> StubPlaywright:
        self.starts += 1
        return self._pw


class StubPool:
    """Stand-in for ``SessionPool`` used by executor tests.

    ``page_for(account, url)`` builds the page each tab gets; ``acquire_errors``
    maps an account's session name to the exception ``acquire`` raises.
    """

    def __init__(self, page_for: Any) -> None:
        self.page_for = page_for
        self.acquire_errors: dict[str, Exception] = {}
        self.acquired: list[str] = []
        self.released: list[str] = []
        self.tabs: list[Tab] = []
        self.closed_tabs: list[Tab] = []

    async def acquire(self, session_key: str) -> BrowserSession:
        name = Path(session_key).name
        self.acquired.append(name)
        if name in self.acquire_errors:
            raise self.acquire_errors[name]
        return BrowserSession(key=session_key, context=StubContext())

    async def create_tab(self, session: BrowserSession, url: str) -> Tab:
        page = self.page_for(Path(session.key).name, url)
        await page.goto(url)
        tab = Tab(page=page, session=session)
        self.tabs.append(tab)
        return tab

    async def close_tab(self, tab: Tab) -> None:
        self.closed_tabs.append(tab)

    async def release(self, session_key: str) -> None:
        self.released.append(Path(session_key).name)


# ──────────────────────────────────────
# Fixtures
# ──────────────────────────────────────

@pytest.fixture(autouse=True)
def no_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    """Neutralise all human pacing."""
    async def _instant(_seconds: float) -> None:
        return None

    monkeypatch.setattr(human, "_sleep", _instant)


@pytest.fixture
def accounts() -> list[Account]:
    return [
        Account(username=name, password=SecretStr("pw"))
        for name in ("bot_one", "bot_two", "bot_three")
    ]


@pytest.fixture
def settings(tmp_path: Path, accounts: list[Account]) -> Settings:
    return Settings(
        _env_file=None,
        accounts=accounts,
        sessions_root_dir=str(tmp_path / "sessions"),
        data_root_dir=str(tmp_path / "data"),
        verify_sessions_on_startup=False,
        api_key=None,
    )


@pytest.fixture
def ledger(settings: Settings, tmp_path: Path) -> AccountLedger:
    return AccountLedger(
        settings.accounts,
        RotationStore(settings.rotation_state_path),
        sessions_root=settings.sessions_root_dir,
    )
