"""Main-document response extraction as an ordered list of strategies."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from sitecompare.browser.ready import is_document_response
from sitecompare.exceptions import BrowserError
from sitecompare.models.domain import NetworkEvent, ResponseInfo

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient

logger = structlog.get_logger(__name__)

LIVE_FETCH_JS = """
var done = arguments[arguments.length - 1];
fetch(location.href, {
  method: 'GET', redirect: 'manual', cache: 'no-store', credentials: 'same-origin'
}).then(function (res) {
  done({status: res.status, type: res.headers.get('content-type') || ''});
}).catch(function (e) {
  done({status: 0, type: '', error: String(e)});
});
"""

CONTENT_TYPE_JS = "return document.contentType || '';"


def normalize_content_type(value: str | None) -> str:
    """Lower-case, parameters stripped: 'Text/HTML; charset=x' -> 'text/html'."""
    return (value or "").split(";", 1)[0].strip().lower()


def _header(headers: dict[str, Any], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name:
            return str(value)
    return ""


def pick_main_document(events: list[NetworkEvent], final_url: str) -> NetworkEvent | None:
    """Document response for ``final_url`` if any, else the latest one."""
    docs = [e for e in events if is_document_response(e)]
    if not docs:
        return None
    for event in docs:
        if event.params.get("response", {}).get("url", "") == final_url:
            return event
    return max(docs, key=lambda e: e.params.get("timestamp", e.timestamp) or 0)


class ResponseStrategy:
    """One way of finding out the status and content-type of the current page."""

    name = "base"

    async def extract(
        self, client: RemoteBrowserClient, events: list[NetworkEvent], final_url: str
    ) -> ResponseInfo | None:
        raise NotImplementedError


class PerformanceLogStrategy(ResponseStrategy):
    name = "performance_log"

    async def extract(
        self, client: RemoteBrowserClient, events: list[NetworkEvent], final_url: str
    ) -> ResponseInfo | None:
        event = pick_main_document(events, final_url)
        if event is None:
            return None
        response = event.params.get("response") or {}
        status = int(response.get("status") or 0)
        if not status:
            return None
        content_type = response.get("mimeType") or _header(
            response.get("headers") or {}, "content-type"
        )
        return ResponseInfo(
            status=status,
            content_type=normalize_content_type(content_type),
            url=response.get("url", ""),
            source=self.name,
        )


class LiveFetchStrategy(ResponseStrategy):
    """Re-fetch the page from inside it, without following redirects."""

    name = "live_fetch"

    async def extract(
        self, client: RemoteBrowserClient, events: list[NetworkEvent], final_url: str
    ) -> ResponseInfo | None:
        try:
            result = await client.execute_async_script(LIVE_FETCH_JS)
        except BrowserError as e:
            logger.debug("live_fetch_failed", side=client.side.value, error=str(e))
            return None
        if not isinstance(result, dict) or not result.get("status"):
            return None
        return ResponseInfo(
            status=int(result["status"]),
            content_type=normalize_content_type(result.get("type")),
            url=final_url,
            source=self.name,
        )


class HeuristicDefaultStrategy(ResponseStrategy):
    """Last resort: the body is there, so call it a 200."""

    name = "heuristic"

    async def extract(
        self, client: RemoteBrowserClient, events: list[NetworkEvent], final_url: str
    ) -> ResponseInfo | None:
        try:
            content_type = await client.execute_script(CONTENT_TYPE_JS)
        except BrowserError:
            content_type = ""
        return ResponseInfo(
            status=200,
            content_type=normalize_content_type(content_type),
            url=final_url,
            source=self.name,
        )


DEFAULT_STRATEGIES: tuple[ResponseStrategy, ...] = (
    PerformanceLogStrategy(),
    LiveFetchStrategy(),
    HeuristicDefaultStrategy(),
)


async def extract_response(
    client: RemoteBrowserClient,
    events: list[NetworkEvent],
    final_url: str,
    strategies: tuple[ResponseStrategy, ...] = DEFAULT_STRATEGIES,
) -> ResponseInfo | None:
    """Try each strategy in order and return the first answer."""
    if not events:
        try:
            events = await client.drain_network_events()
        except BrowserError as e:
            logger.debug("performance_log_unavailable", side=client.side.value, error=str(e))
            events = []
    for strategy in strategies:
        info = await strategy.extract(client, events, final_url)
        if info is not None:
            if strategy.name != PerformanceLogStrategy.name:
                logger.debug(
                    "response_fallback",
                    side=client.side.value,
                    strategy=strategy.name,
                    status=info.status,
                )
            return info
    return None
