"""GraphQL response interceptor for Instagram profile timelines.

Instagram's web client loads profile posts through:
    /graphql/query  ->  data.xdt_api__v1__feed__user_timeline_graphql_connection

This interceptor keeps every payload that carries a non-empty edge list so
the scroll loop can count progress and the parser can flatten them later.
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Page, Response

from .constants import GRAPHQL_URL_MARKER
from .parsers.post import extract_edges

logger = logging.getLogger(__name__)


class TimelineInterceptor:
    """Collects timeline GraphQL payloads from a Playwright page.

    Usage:
        interceptor = TimelineInterceptor()
        interceptor.attach(page)
        try:
            await page.reload()
            ...
            print(interceptor.edge_count)
        finally:
            interceptor.detach()
    """

    def __init__(self) -> None:
        self.payloads: list[dict[str, Any]] = []
        self._edge_count = 0
        self._page: Page | None = None

    @property
    def edge_count(self) -> int:
        """Total edges across all captured payloads (duplicates included)."""
        return self._edge_count

    @property
    def captured(self) -> bool:
        return bool(self.payloads)

    def attach(self, page: Page) -> None:
        if self._page is not None:
            raise RuntimeError("Interceptor already attached")
        page.on("response", self.on_response)
        self._page = page

    def detach(self) -> None:
        """Remove the response listener. Safe to call more than once."""
        if self._page is None:
            return
        try:
            self._page.remove_listener("response", self.on_response)
        except Exception:
            logger.debug("Failed to remove response listener", exc_info=True)
        self._page = None

    async def on_response(self, response: Response) -> None:
        """Playwright response handler.

        Exceptions raised inside Playwright event handlers are swallowed,
        so parse failures are simply dropped here.
        """
        if GRAPHQL_URL_MARKER not in response.url:
            return

        try:
            body = await response.json()
        except Exception:
            logger.debug("Non-JSON graphql response from %s", response.url)
            return

        if not isinstance(body, dict):
            return

        edges = extract_edges(body)
        if not edges:
            return

        self.payloads.append(body)
        self._edge_count += len(edges)
        logger.debug(
            "Captured timeline payload: %d edges (total %d)",
            len(edges), self._edge_count,
        )
