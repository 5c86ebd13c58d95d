"""Link extraction and the breadth-first queue of link mode."""

from __future__ import annotations

from collections import deque
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup

from sitecompare.config.schema import CrawlConfig
from sitecompare.utils.urls import allowed, compile_patterns, path_and_query, same_host, strip_fragment

logger = structlog.get_logger(__name__)


def replicate_prefixes(path: str, prefixes: list[str]) -> list[str]:
    """The same page under each configured path prefix.

    A path already starting with one of the prefixes is first stripped of it,
    so ``/fr/about`` with prefixes ``["", "/fr"]`` gives ``/about`` and
    ``/fr/about``.
    """
    cleaned = [p.rstrip("/") for p in prefixes] or [""]
    stripped = path
    for prefix in sorted((p for p in cleaned if p), key=len, reverse=True):
        if path == prefix or path.startswith(f"{prefix}/") or path.startswith(f"{prefix}?"):
            stripped = path[len(prefix):] or "/"
            if not stripped.startswith("/"):
                stripped = f"/{stripped}"
            break
    out: list[str] = []
    for prefix in cleaned:
        candidate = f"{prefix}{stripped}" if prefix else stripped
        if candidate not in out:
            out.append(candidate)
    return out


class LinkExtractor:
    """Pulls followable paths out of a page's markup."""

    def __init__(self, crawl: CrawlConfig, base_url: str) -> None:
        self._crawl = crawl
        self._base_url = base_url
        self._href_allow = compile_patterns(crawl.href_allow_patterns, "href_allow")
        self._href_deny = compile_patterns(crawl.href_deny_patterns, "href_deny")
        self._url_allow = compile_patterns(crawl.url_allow_patterns, "url_allow")
        self._url_deny = compile_patterns(crawl.url_deny_patterns, "url_deny")

    def extract(self, markup: str, page_url: str) -> list[str]:
        """Sorted unique paths (with query when configured) linked from the page."""
        soup = BeautifulSoup(markup or "", "html.parser")
        for selector in self._crawl.exclude_selectors:
            for element in soup.select(selector):
                if not element.decomposed:
                    element.decompose()

        paths: set[str] = set()
        for finder in self._crawl.find_links:
            for element in soup.select(finder.find):
                value = element.get(finder.member)
                if isinstance(value, list):
                    value = " ".join(value)
                if not value or not value.strip():
                    continue
                if not allowed(value.strip(), self._href_allow, self._href_deny):
                    continue
                href = strip_fragment(value)
                if not href:
                    continue
                absolute = urljoin(page_url, href)
                if not absolute.lower().startswith(("http://", "https://")):
                    continue
                if self._crawl.same_host_only and not same_host(absolute, self._base_url):
                    continue
                if not allowed(absolute, self._url_allow, self._url_deny):
                    continue
                paths.add(path_and_query(absolute, self._crawl.follow_query))
        result = sorted(paths)
        logger.debug("links_extracted", page=page_url, count=len(result))
        return result


class LinkQueue:
    """FIFO of ``(path, depth)`` that keeps every path at its shallowest depth."""

    def __init__(self, prefixes: list[str] | None = None) -> None:
        self._prefixes = prefixes or [""]
        self._queue: deque[tuple[str, int]] = deque()
        self._pending: dict[str, int] = {}
        self._seen: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def push(self, path: str, depth: int) -> int:
        """Enqueue a path (and its prefix replicas); returns how many were added."""
        added = 0
        for candidate in replicate_prefixes(path, self._prefixes):
            seen = self._seen.get(candidate)
            if seen is not None and seen <= depth:
                continue
            pending = self._pending.get(candidate)
            if pending is not None and pending <= depth:
                continue
            self._pending[candidate] = depth
            self._queue.append((candidate, depth))
            added += 1
        return added

    def pop(self) -> tuple[str, int] | None:
        """Next path to visit, skipping entries superseded by a shallower one."""
        while self._queue:
            path, depth = self._queue.popleft()
            if self._pending.get(path) != depth:
                continue
            del self._pending[path]
            seen = self._seen.get(path)
            if seen is not None and seen <= depth:
                continue
            return path, depth
        return None

    def mark_seen(self, path: str, depth: int) -> None:
        self._seen[path] = depth

    def seen_depth(self, path: str) -> int | None:
        return self._seen.get(path)
