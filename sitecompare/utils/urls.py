"""URL helpers and pattern list compilation."""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse

import structlog

logger = structlog.get_logger(__name__)


def strip_fragment(url: str) -> str:
    """Strip whitespace and remove the fragment from a URL."""
    url = url.strip()
    parsed = urlparse(url)
    return parsed._replace(fragment="").geturl()


def path_and_query(url: str, keep_query: bool = True) -> str:
    """Return the path (plus query when asked) of a URL, defaulting to '/'."""
    parsed = urlparse(url.strip())
    path = parsed.path or "/"
    if keep_query and parsed.query:
        return f"{path}?{parsed.query}"
    return path


def same_host(url: str, base: str) -> bool:
    """True when both URLs share scheme host and port."""
    a = urlparse(url)
    b = urlparse(base)
    return (a.scheme, a.netloc.lower()) == (b.scheme, b.netloc.lower())


def join_base(base: str, path: str) -> str:
    """Resolve a root-relative path against a base URL."""
    return urljoin(base.rstrip("/") + "/", path.lstrip("/"))


def compile_patterns(patterns: list[str], label: str) -> list[re.Pattern[str]]:
    """Compile a list of user regexes, skipping the ones that do not compile."""
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.warning("pattern_skipped", label=label, pattern=pattern, error=str(e))
    return compiled


def matches_any(value: str, patterns: list[re.Pattern[str]]) -> bool:
    return any(p.search(value) for p in patterns)


def allowed(
    value: str, allow: list[re.Pattern[str]], deny: list[re.Pattern[str]]
) -> bool:
    """Deny wins; an empty allow list allows everything."""
    if matches_any(value, deny):
        return False
    return not allow or matches_any(value, allow)
