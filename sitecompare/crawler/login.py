"""Form login on one side and session cookie selection."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import structlog

from sitecompare.browser.ready import wait_for_url_change
from sitecompare.constants import DEFAULT_EXCLUDED_COOKIES
from sitecompare.exceptions import LoginError
from sitecompare.utils.urls import join_base

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient
    from sitecompare.config.schema import LoginConfig

logger = structlog.get_logger(__name__)


def pick_session_cookie(
    cookies: list[dict[str, Any]],
    name_regex: str | None = None,
    excluded: list[str] | None = None,
) -> dict[str, Any] | None:
    """Cookie matching ``name_regex``, else the first one not excluded."""
    if name_regex:
        pattern = re.compile(name_regex, re.IGNORECASE)
        return next((c for c in cookies if pattern.search(c.get("name", ""))), None)
    rules = [re.compile(p, re.IGNORECASE) for p in excluded or DEFAULT_EXCLUDED_COOKIES]
    for cookie in cookies:
        name = cookie.get("name", "")
        if any(r.search(name) for r in rules):
            logger.debug("cookie_excluded", name=name)
            continue
        return cookie
    return None


class LoginHandler:
    """Logs a browser in through the configured form."""

    def __init__(self, config: LoginConfig, timeout_s: float) -> None:
        self._config = config
        self._timeout_s = timeout_s

    async def log_in(
        self, client: RemoteBrowserClient, base_url: str, username: str, password: str
    ) -> dict[str, Any] | None:
        """Fill and submit the login form; returns the session cookie if any.

        Raises LoginError when one of the form elements cannot be found.
        """
        if not self._config.path:
            return None
        logger.info("login_started", side=client.side.value, user=username, base=base_url)
        await client.navigate(join_base(base_url, self._config.path))

        await self._fill(client, self._config.user_selector, username)
        await self._fill(client, self._config.pass_selector, password)

        before = await client.current_url()
        submit = await self._element(client, self._config.submit_selector)
        await client.click_element(submit)
        landed = await wait_for_url_change(client, before, self._timeout_s)
        if landed is None:
            logger.warning("login_url_unchanged", side=client.side.value, url=before)

        cookie = pick_session_cookie(
            await client.get_cookies(),
            self._config.session_cookie_regex,
            self._config.excluded_cookies,
        )
        if cookie is None:
            logger.warning("session_cookie_missing", side=client.side.value, user=username)
        else:
            logger.info("login_done", side=client.side.value, cookie=cookie.get("name"))
        return cookie

    async def _element(self, client: RemoteBrowserClient, selector: str | None) -> str:
        element = await client.find_element(selector) if selector else None
        if element is None:
            msg = f"unable to find login element {selector!r} on the {client.side.value} side"
            raise LoginError(msg)
        return element

    async def _fill(self, client: RemoteBrowserClient, selector: str | None, text: str) -> None:
        element = await self._element(client, selector)
        await client.clear_element(element)
        await client.send_keys(element, text)
