"""Turns the page a browser currently shows into a Capture."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from sitecompare.capture.response import extract_response
from sitecompare.exceptions import BrowserError
from sitecompare.models.domain import Capture
from sitecompare.visual.stitch import stitch_full_page

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient
    from sitecompare.browser.ready import PageReadySynchronizer
    from sitecompare.capture.sanitize import MarkupSanitizer
    from sitecompare.config.schema import VisualConfig
    from sitecompare.models.domain import NetworkEvent
    from sitecompare.storage.artifacts import RoleArtifacts
    from sitecompare.types import Side

logger = structlog.get_logger(__name__)


class CaptureNormalizer:
    """Navigates (optionally), waits, extracts the response and hashes the markup."""

    def __init__(
        self,
        synchronizer: PageReadySynchronizer,
        sanitizer: MarkupSanitizer,
        artifacts: RoleArtifacts | None = None,
        visual: VisualConfig | None = None,
        write_screenshots: bool = False,
        write_htmls: bool = False,
        keep_markup: bool = False,
    ) -> None:
        self._synchronizer = synchronizer
        self._sanitizer = sanitizer
        self._artifacts = artifacts
        self._visual = visual
        self._write_screenshots = write_screenshots or bool(visual and visual.enabled)
        self._write_htmls = write_htmls
        self._keep_markup = keep_markup

    async def capture(
        self,
        client: RemoteBrowserClient,
        side: Side,
        basename: str,
        url: str | None = None,
        assume_ready: bool = False,
    ) -> Capture | None:
        """Capture the current page, or ``url`` after navigating to it.

        Returns None when the page never became ready or its response could
        not be determined.
        """
        events: list[NetworkEvent] = []
        alerts: list[str] = []
        if url:
            await client.drain_network_events()
            await client.navigate(url)

        if not assume_ready:
            ready = await self._synchronizer.await_ready(client)
            if not ready.ready:
                logger.warning("page_not_ready", side=side.value, url=url)
                return None
            events, alerts = ready.events, ready.alerts

        final_url = await client.current_url()
        info = await extract_response(client, events, final_url)
        if info is None:
            logger.warning("response_unknown", side=side.value, url=final_url)
            return None

        source = await client.page_source()
        sanitized, digest = self._sanitizer.sanitize_and_hash(source)

        screenshot_path: str | None = None
        markup_dump_path: str | None = None
        if self._artifacts is not None:
            if self._write_screenshots:
                screenshot_path = await self._save_screenshot(
                    client, side, basename, self._artifacts
                )
            if self._write_htmls:
                markup_dump_path = str(self._artifacts.save_markup(basename, side, sanitized))

        capture = Capture(
            side=side,
            status=info.status,
            content_type=info.content_type,
            final_url=final_url,
            response_url=info.url or final_url,
            markup_hash=digest,
            raw_markup=source if self._keep_markup else None,
            alerts=tuple(alerts),
            screenshot_path=screenshot_path,
            markup_dump_path=markup_dump_path,
        )
        logger.debug(
            "page_captured",
            side=side.value,
            url=final_url,
            status=capture.status,
            content_type=capture.content_type,
            hash=digest,
            source=info.source,
        )
        return capture

    async def _save_screenshot(
        self,
        client: RemoteBrowserClient,
        side: Side,
        basename: str,
        artifacts: RoleArtifacts,
    ) -> str | None:
        kwargs: dict[str, int] = {}
        if self._visual is not None:
            kwargs = {
                "overlap": self._visual.stitch_overlap,
                "settle_ms": self._visual.settle_ms,
                "max_segments": self._visual.max_segments,
            }
        try:
            image = await stitch_full_page(client, **kwargs)
        except BrowserError as e:
            logger.warning("screenshot_failed", side=side.value, error=str(e))
            return None
        return str(artifacts.save_screenshot(basename, side, image))
