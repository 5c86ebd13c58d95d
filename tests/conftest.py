"""Shared test fixtures."""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

import pytest

from sitecompare.browser.ready import BODY_JS, FINGERPRINT_JS, PageReadySynchronizer
from sitecompare.crawler.discovery import CLICK_JS, DISCOVER_ACTIONS_JS, STATE_JS
from sitecompare.models.domain import NetworkEvent
from sitecompare.types import Side
from sitecompare.utils.urls import path_and_query

NOT_FOUND = (404, "<html><body><h1>Not found</h1></body></html>")


class FakeBrowser:
    """In-memory stand-in for RemoteBrowserClient serving a dict of pages.

    ``pages`` maps a path to ``(status, html)``; ``actions`` maps a path to
    the raw discovery output of that page. Clicking an action navigates to
    its href.
    """

    def __init__(
        self,
        side: Side,
        base: str,
        pages: dict[str, tuple[int, str]],
        actions: dict[str, list[dict[str, Any]]] | None = None,
        login_landing: str = "/dashboard",
    ) -> None:
        self.side = side
        self.base = base
        self.pages = pages
        self.actions = actions or {}
        self.login_landing = login_landing
        self.url = "about:blank"
        self.started = False
        self.closed = False
        self.navigations: list[str] = []
        self.clicks: list[str] = []
        self.filled: list[tuple[str, str]] = []
        self._pending: list[NetworkEvent] = []
        self.performance_ring: list[dict[str, Any]] = []

    @property
    def path(self) -> str:
        return path_and_query(self.url)

    def _page(self) -> tuple[int, str]:
        return self.pages.get(self.path, NOT_FOUND)

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def navigate(self, url: str) -> None:
        self.url = url
        self.navigations.append(self.path)
        status, _ = self._page()
        self._pending = [
            NetworkEvent(
                method="Network.responseReceived",
                params={
                    "type": "Document",
                    "response": {"url": url, "status": status, "mimeType": "text/html"},
                },
                timestamp=1.0,
            )
        ]

    async def drain_network_events(self) -> list[NetworkEvent]:
        events, self._pending = self._pending, []
        return events

    async def execute_script(self, script: str, *args: Any) -> Any:
        if script == BODY_JS:
            return True
        if script == FINGERPRINT_JS:
            return [len(self._page()[1]), 10]
        if script == STATE_JS:
            return {"top": self.url, "frames": []}
        if script == DISCOVER_ACTIONS_JS:
            return [dict(a) for a in self.actions.get(self.path, [])]
        if script == CLICK_JS:
            wanted = args[1]
            for action in self.actions.get(self.path, []):
                if action["id"] == wanted:
                    self.clicks.append(wanted)
                    await self.navigate(urljoin(self.url, action["href"]))
                    return True
            return False
        return None

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        return None

    async def current_url(self) -> str:
        return self.url

    async def page_source(self) -> str:
        return self._page()[1]

    async def get_cookies(self) -> list[dict[str, Any]]:
        return [
            {"name": ".AspNetCore.Antiforgery.abc", "value": "token"},
            {"name": "sid", "value": "s3cr3t"},
        ]

    async def alert_text(self) -> str | None:
        return None

    async def accept_alert(self) -> None:
        return None

    async def find_element(self, css: str) -> str | None:
        return f"el:{css}"

    async def clear_element(self, element_id: str) -> None:
        return None

    async def send_keys(self, element_id: str, text: str) -> None:
        self.filled.append((element_id, text))

    async def click_element(self, element_id: str) -> None:
        await self.navigate(self.base + self.login_landing)


@pytest.fixture()
def fake_browser_class() -> type[FakeBrowser]:
    return FakeBrowser


@pytest.fixture()
def fast_synchronizer() -> PageReadySynchronizer:
    """Readiness gates with no quiet windows and no sleeping."""
    return PageReadySynchronizer(
        timeout_s=0.5, network_quiet_ms=0, dom_quiet_ms=0, poll_interval_s=0
    )
