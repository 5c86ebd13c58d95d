"""Full-page screenshots built by scrolling the viewport and stitching."""

from __future__ import annotations

import asyncio
import io
from typing import TYPE_CHECKING

import structlog
from PIL import Image

from sitecompare.constants import PAD_FILL, STITCH_MAX_SEGMENTS, STITCH_OVERLAP_PX, STITCH_SETTLE_MS

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient

logger = structlog.get_logger(__name__)

MEASURE_JS = """
return [
  window.innerHeight,
  window.innerWidth,
  Math.max(
    document.documentElement.scrollHeight,
    document.body ? document.body.scrollHeight : 0,
    document.documentElement.offsetHeight,
    document.documentElement.clientHeight
  ),
  window.devicePixelRatio || 1
];
"""
SCROLL_JS = "window.scrollTo(0, arguments[0]); return true;"


def scroll_offsets(
    doc_height: int,
    viewport_height: int,
    overlap: int = STITCH_OVERLAP_PX,
    max_segments: int = STITCH_MAX_SEGMENTS,
) -> list[int]:
    """Vertical scroll positions covering the document, last one clamped to the bottom."""
    offsets = [0]
    step = max(1, viewport_height - overlap)
    last_start = max(0, doc_height - viewport_height)
    while offsets[-1] + viewport_height < doc_height and len(offsets) < max_segments:
        nxt = min(offsets[-1] + step, last_start)
        if nxt == offsets[-1]:
            break
        offsets.append(nxt)
    return offsets


async def stitch_full_page(
    client: RemoteBrowserClient,
    overlap: int = STITCH_OVERLAP_PX,
    settle_ms: int = STITCH_SETTLE_MS,
    max_segments: int = STITCH_MAX_SEGMENTS,
) -> Image.Image:
    """Scroll through the page, grab each viewport and paste them top to bottom."""
    measured = await client.execute_script(MEASURE_JS) or []
    viewport_h = int(measured[0]) if len(measured) > 0 and measured[0] else 800
    doc_h = int(measured[2]) if len(measured) > 2 and measured[2] else viewport_h
    ratio = float(measured[3]) if len(measured) > 3 and measured[3] else 1.0

    offsets = scroll_offsets(doc_h, viewport_h, overlap, max_segments)
    tiles: list[Image.Image] = []
    previous: int | None = None
    for y in offsets:
        await client.execute_script(SCROLL_JS, y)
        await asyncio.sleep(settle_ms / 1000)
        with Image.open(io.BytesIO(await client.screenshot())) as shot:
            tile = shot.convert("RGB")
        if previous is not None:
            band = round((previous + viewport_h - y) * ratio)
            band = min(max(band, 0), tile.height - 1)
            tile = tile.crop((0, band, tile.width, tile.height))
        tiles.append(tile)
        previous = y

    width = tiles[0].width
    canvas = Image.new("RGB", (width, sum(t.height for t in tiles)), PAD_FILL)
    top = 0
    for tile in tiles:
        canvas.paste(tile, (0, top))
        top += tile.height
    await client.execute_script(SCROLL_JS, 0)
    logger.debug(
        "page_stitched",
        side=client.side.value,
        segments=len(tiles),
        doc_height=doc_h,
        size=canvas.size,
    )
    return canvas
