"""Remote browser client speaking the W3C WebDriver protocol over httpx."""

from __future__ import annotations

import base64
import json
from collections import deque
from typing import Any

import httpx
import structlog

from sitecompare.constants import (
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    PERF_LOG_RING_SIZE,
    TRANSPORT_RETRIES,
    TRANSPORT_RETRY_DELAY_MS,
)
from sitecompare.exceptions import (
    BrowserError,
    NoSuchAlertError,
    NoSuchElementError,
    TransportTimeoutError,
    UnexpectedAlertError,
)
from sitecompare.models.domain import NetworkEvent
from sitecompare.types import Side
from sitecompare.utils.retry import retry

logger = structlog.get_logger(__name__)

ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"

_ERRORS: dict[str, type[BrowserError]] = {
    "no such element": NoSuchElementError,
    "no such alert": NoSuchAlertError,
    "unexpected alert open": UnexpectedAlertError,
    "timeout": TransportTimeoutError,
}


def build_capabilities(width: int, height: int) -> dict[str, Any]:
    """Fixed capability set: headless Chrome with performance logging."""
    return {
        "capabilities": {
            "alwaysMatch": {
                "browserName": "chrome",
                "acceptInsecureCerts": True,
                "unhandledPromptBehavior": "ignore",
                "goog:loggingPrefs": {"performance": "ALL"},
                "goog:chromeOptions": {
                    "args": [
                        "--headless=new",
                        "--no-sandbox",
                        "--disable-gpu",
                        "--disable-dev-shm-usage",
                        f"--window-size={width},{height}",
                    ],
                    "perfLoggingPrefs": {"enableNetwork": True, "enablePage": True},
                },
            }
        }
    }


def decode_performance_entry(entry: dict[str, Any]) -> NetworkEvent | None:
    """Turn one raw performance-log entry into a NetworkEvent."""
    try:
        payload = json.loads(entry.get("message", ""))
    except (TypeError, ValueError):
        return None
    message = payload.get("message") if isinstance(payload, dict) else None
    if not isinstance(message, dict) or "method" not in message:
        return None
    return NetworkEvent(
        method=message["method"],
        params=message.get("params") or {},
        timestamp=float(entry.get("timestamp", 0)),
    )


class RemoteBrowserClient:
    """One exclusive WebDriver session for one side of a role."""

    def __init__(
        self,
        server_url: str,
        side: Side,
        width: int = DEFAULT_VIEWPORT_WIDTH,
        height: int = DEFAULT_VIEWPORT_HEIGHT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.side = side
        self._server_url = server_url.rstrip("/")
        self._width = width
        self._height = height
        self._request_timeout = request_timeout
        self._http = httpx.AsyncClient(
            base_url=self._server_url, timeout=request_timeout, transport=transport
        )
        self._session_id: str | None = None
        self._perf_ring: deque[dict[str, Any]] = deque(maxlen=PERF_LOG_RING_SIZE)

    async def __aenter__(self) -> RemoteBrowserClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def performance_ring(self) -> list[dict[str, Any]]:
        """The last raw performance-log entries seen by this client."""
        return list(self._perf_ring)

    async def start(self) -> None:
        """Create the remote session."""
        value = await self._request(
            "POST", "/session", build_capabilities(self._width, self._height)
        )
        session_id = value.get("sessionId") if isinstance(value, dict) else None
        if not session_id:
            msg = f"WebDriver server {self._server_url} returned no session id"
            raise BrowserError(msg, "session not created")
        self._session_id = session_id
        await self._command(
            "POST", "/timeouts", {"script": int(self._request_timeout * 1000)}
        )
        logger.info("browser_session_started", side=self.side.value, session=session_id)

    async def close(self) -> None:
        """Delete the remote session and release the HTTP client."""
        if self._session_id:
            try:
                await self._command("DELETE", "")
            except BrowserError as e:
                logger.warning("browser_close_failed", side=self.side.value, error=str(e))
            logger.info("browser_session_closed", side=self.side.value, session=self._session_id)
            self._session_id = None
        await self._http.aclose()

    @retry(
        max_attempts=TRANSPORT_RETRIES,
        delay_ms=TRANSPORT_RETRY_DELAY_MS,
        retry_on=(TransportTimeoutError,),
    )
    async def navigate(self, url: str) -> None:
        logger.debug("navigate", side=self.side.value, url=url)
        await self._command("POST", "/url", {"url": url})

    @retry(
        max_attempts=TRANSPORT_RETRIES,
        delay_ms=TRANSPORT_RETRY_DELAY_MS,
        retry_on=(TransportTimeoutError,),
    )
    async def execute_script(self, script: str, *args: Any) -> Any:
        """Run a script in the page context; the script body may ``return``."""
        return await self._command("POST", "/execute/sync", {"script": script, "args": list(args)})

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        """Run a script whose last argument is the completion callback."""
        return await self._command(
            "POST", "/execute/async", {"script": script, "args": list(args)}
        )

    async def current_url(self) -> str:
        return str(await self._command("GET", "/url"))

    async def page_source(self) -> str:
        return str(await self._command("GET", "/source"))

    async def get_cookies(self) -> list[dict[str, Any]]:
        value = await self._command("GET", "/cookie")
        return list(value or [])

    async def get_log(self, log_type: str) -> list[dict[str, Any]]:
        value = await self._command("POST", "/se/log", {"type": log_type})
        return list(value or [])

    async def drain_network_events(self) -> list[NetworkEvent]:
        """Read and decode everything the performance log holds right now."""
        entries = await self.get_log("performance")
        self._perf_ring.extend(entries)
        events: list[NetworkEvent] = []
        for entry in entries:
            event = decode_performance_entry(entry)
            if event is not None:
                events.append(event)
        return events

    async def screenshot(self) -> bytes:
        """Viewport screenshot as PNG bytes."""
        value = await self._command("GET", "/screenshot")
        return base64.b64decode(value)

    async def alert_text(self) -> str | None:
        """Text of the open native dialog, or None when there is none."""
        try:
            value = await self._command("GET", "/alert/text")
        except NoSuchAlertError:
            return None
        return "" if value is None else str(value)

    async def accept_alert(self) -> None:
        await self._command("POST", "/alert/accept", {})

    async def dismiss_alert(self) -> None:
        await self._command("POST", "/alert/dismiss", {})

    async def find_element(self, css: str) -> str | None:
        """Element reference for a CSS selector, or None when nothing matches."""
        try:
            value = await self._command(
                "POST", "/element", {"using": "css selector", "value": css}
            )
        except NoSuchElementError:
            return None
        return value.get(ELEMENT_KEY) if isinstance(value, dict) else None

    async def clear_element(self, element_id: str) -> None:
        await self._command("POST", f"/element/{element_id}/clear", {})

    async def send_keys(self, element_id: str, text: str) -> None:
        await self._command("POST", f"/element/{element_id}/value", {"text": text})

    async def click_element(self, element_id: str) -> None:
        await self._command("POST", f"/element/{element_id}/click", {})

    async def _command(self, method: str, path: str, payload: Any = None) -> Any:
        if not self._session_id:
            msg = f"no active session on the {self.side.value} side"
            raise BrowserError(msg, "invalid session id")
        return await self._request(method, f"/session/{self._session_id}{path}", payload)

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        try:
            resp = await self._http.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            msg = f"{method} {path} timed out"
            raise TransportTimeoutError(msg, "timeout") from e
        except httpx.HTTPError as e:
            msg = f"{method} {path} failed: {e}"
            raise BrowserError(msg, "transport") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        value = body.get("value") if isinstance(body, dict) else None

        if resp.is_error:
            error = value.get("error", "") if isinstance(value, dict) else ""
            message = value.get("message", resp.text) if isinstance(value, dict) else resp.text
            exc_class = _ERRORS.get(error, BrowserError)
            raise exc_class(f"{method} {path}: {error or resp.status_code}: {message}", error)
        return value
