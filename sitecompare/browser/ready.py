"""Page readiness gates: body presence, network idle, DOM stability."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from sitecompare.constants import (
    DEFAULT_GATE_TIMEOUT_S,
    DOM_QUIET_MS,
    NETWORK_QUIET_MS,
    POLL_INTERVAL_S,
)
from sitecompare.exceptions import UnexpectedAlertError

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient
    from sitecompare.models.domain import NetworkEvent

logger = structlog.get_logger(__name__)

BODY_JS = "return !!document.body;"
FINGERPRINT_JS = (
    "var b = document.body;"
    "return [b ? (b.innerText || '').length : 0,"
    " document.getElementsByTagName('*').length];"
)


def is_document_response(event: NetworkEvent) -> bool:
    return (
        event.method == "Network.responseReceived" and event.params.get("type") == "Document"
    )


@dataclass
class ReadyResult:
    ready: bool
    alerts: list[str] = field(default_factory=list)
    events: list[NetworkEvent] = field(default_factory=list)


async def wait_until(
    predicate: Callable[[], Awaitable[Any]],
    timeout_s: float,
    poll_interval_s: float = POLL_INTERVAL_S,
) -> bool:
    """Poll an async predicate until it is truthy or the timeout elapses."""
    deadline = time.monotonic() + timeout_s
    while True:
        if await predicate():
            return True
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(poll_interval_s)


async def wait_for_url_change(
    client: RemoteBrowserClient,
    previous_url: str,
    timeout_s: float,
    poll_interval_s: float = POLL_INTERVAL_S,
) -> str | None:
    """Wait for the top document URL to move away from ``previous_url``."""
    current = previous_url

    async def _changed() -> bool:
        nonlocal current
        current = await client.current_url()
        return current != previous_url

    if await wait_until(_changed, timeout_s, poll_interval_s):
        return current
    return None


class PageReadySynchronizer:
    """Blocks until a freshly navigated page is usable.

    The three gates run one after the other, each with its own timeout, so
    the total wait may exceed ``timeout_s``. Only the body gate can make a
    page not ready; the other two degrade to a warning.
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_GATE_TIMEOUT_S,
        network_quiet_ms: int = NETWORK_QUIET_MS,
        dom_quiet_ms: int = DOM_QUIET_MS,
        poll_interval_s: float = POLL_INTERVAL_S,
    ) -> None:
        self._timeout_s = timeout_s
        self._network_quiet_ms = network_quiet_ms
        self._dom_quiet_ms = dom_quiet_ms
        self._poll_interval_s = poll_interval_s

    async def await_ready(self, client: RemoteBrowserClient) -> ReadyResult:
        result = ReadyResult(ready=False)
        if not await self.wait_for_body(client, result.alerts, result.events):
            logger.warning("page_body_missing", side=client.side.value, timeout=self._timeout_s)
            return result
        result.ready = True

        if not await self.wait_for_network_idle(client, result.events, result.alerts):
            logger.debug("network_not_idle", side=client.side.value, events=len(result.events))
        if not await self.wait_for_dom_stable(client, result.alerts):
            logger.warning("dom_not_stable", side=client.side.value)
        if result.alerts:
            logger.info("alerts_cleared", side=client.side.value, alerts=result.alerts)
        return result

    async def wait_for_body(
        self,
        client: RemoteBrowserClient,
        alerts: list[str],
        events: list[NetworkEvent],
    ) -> bool:
        deadline = time.monotonic() + self._timeout_s
        while True:
            try:
                if await client.execute_script(BODY_JS):
                    return True
            except UnexpectedAlertError:
                pass
            await self._clear_alert(client, alerts)
            try:
                events.extend(await client.drain_network_events())
            except UnexpectedAlertError:
                await self._clear_alert(client, alerts)
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_s)

    async def wait_for_network_idle(
        self,
        client: RemoteBrowserClient,
        events: list[NetworkEvent],
        alerts: list[str],
    ) -> bool:
        start = time.monotonic()
        deadline = start + self._timeout_s
        last_activity = start
        seen_document = any(is_document_response(e) for e in events)
        while True:
            try:
                fresh = await client.drain_network_events()
            except UnexpectedAlertError:
                await self._clear_alert(client, alerts)
                fresh = []
            events.extend(fresh)
            now = time.monotonic()
            if any(e.method.startswith("Network.") for e in fresh):
                last_activity = now
            if not seen_document:
                seen_document = any(is_document_response(e) for e in fresh)
            if seen_document and (now - last_activity) * 1000 >= self._network_quiet_ms:
                return True
            if now >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_s)

    async def wait_for_dom_stable(
        self, client: RemoteBrowserClient, alerts: list[str]
    ) -> bool:
        deadline = time.monotonic() + self._timeout_s
        last: Any = None
        stable_since = time.monotonic()
        while True:
            try:
                fingerprint = await client.execute_script(FINGERPRINT_JS)
            except UnexpectedAlertError:
                await self._clear_alert(client, alerts)
                fingerprint = None
            now = time.monotonic()
            if fingerprint is None or fingerprint != last:
                last = fingerprint
                stable_since = now
            elif (now - stable_since) * 1000 >= self._dom_quiet_ms:
                return True
            if now >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_s)

    async def _clear_alert(self, client: RemoteBrowserClient, alerts: list[str]) -> None:
        text = await client.alert_text()
        if text is None:
            return
        alerts.append(text)
        await client.accept_alert()
        logger.debug("alert_accepted", side=client.side.value, text=text)
