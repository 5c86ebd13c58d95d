"""Finding the candidate-side element that corresponds to a reference action.

Structural identifiers are not stable across environments that hold
different data, so matching degrades in six ordered passes from exact text
identity to approximate token similarity. The first pass with a hit wins.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

from sitecompare.constants import (
    EQUIVALENCE_PREFIX_LEN,
    FUZZY_TEXT_SIMILARITY,
    SIGNATURE_TEXT_SIMILARITY,
)
from sitecompare.crawler.discovery import discover

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient
    from sitecompare.models.domain import Action

logger = structlog.get_logger(__name__)

_WS_RE = re.compile(r"\s+")


def canon_text(text: str | None) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", text.replace("\u00a0", " ").replace("&nbsp;", " ")).strip()


def jaccard(a: str, b: str) -> float:
    """Token Jaccard similarity, case-insensitive; two empty texts are identical."""
    tokens_a = set(canon_text(a).lower().split())
    tokens_b = set(canon_text(b).lower().split())
    if not tokens_a and not tokens_b:
        return 1.0
    inter = len(tokens_a & tokens_b)
    return inter / (len(tokens_a) + len(tokens_b) - inter)


def href_path_query(href: str | None) -> str:
    """Path plus query of an href, fragment and origin ignored."""
    if not href or href.strip().lower().startswith("javascript:"):
        return ""
    parsed = urlparse(href.strip())
    if not parsed.path and not parsed.query:
        return ""
    return parsed.path + (f"?{parsed.query}" if parsed.query else "")


def match_equivalent(wanted: Action, candidates: list[Action]) -> Action | None:
    """Return the best candidate for ``wanted``, or None."""
    pool = [c for c in candidates if c.kind == wanted.kind]
    if not pool:
        return None

    text = canon_text(wanted.text)
    if text:
        for c in pool:
            if canon_text(c.text) == text:
                return c
        lowered = text.lower()
        for c in pool:
            if canon_text(c.text).lower() == lowered:
                return c
        prefix = text[:EQUIVALENCE_PREFIX_LEN]
        for c in pool:
            if prefix in canon_text(c.text):
                return c

    href = href_path_query(wanted.href)
    if href:
        for c in pool:
            if href_path_query(c.href) == href:
                return c

    if wanted.script_signature:
        for c in pool:
            if c.script_signature == wanted.script_signature:
                return c
    else:
        for c in pool:
            if c.script_signature and jaccard(c.text, text) >= SIGNATURE_TEXT_SIMILARITY:
                return c

    if text:
        best, best_score = None, -1.0
        for c in pool:
            score = jaccard(c.text, text)
            if score > best_score:
                best, best_score = c, score
        if best is not None and best_score >= FUZZY_TEXT_SIMILARITY:
            return best
    return None


async def find_equivalent(
    other: RemoteBrowserClient,
    action: Action,
    finders: list[str] | None = None,
    exclude_selectors: list[str] | None = None,
) -> str | None:
    """Discover the other side's targets and return the id of the equivalent one."""
    candidates = await discover(other, finders, exclude_selectors)
    match = match_equivalent(action, candidates)
    if match is None:
        logger.info(
            "equivalent_not_found",
            side=other.side.value,
            text=action.text,
            kind=action.kind.value,
            candidates=len(candidates),
        )
        return None
    logger.debug("equivalent_found", side=other.side.value, wanted=action.id, found=match.id)
    return match.id
