"""Rendered-markup sanitization and content hashing."""

from __future__ import annotations

import hashlib
import re
import unicodedata

import soupsieve
import structlog
from bs4 import BeautifulSoup

from sitecompare.constants import ACTION_ID_ATTRIBUTE, TEXT_PLACEHOLDER, TIMESTAMP_PLACEHOLDER

logger = structlog.get_logger(__name__)

_EPOCH_RE = re.compile(r"\b\d{10}\b")
_CACHE_BUSTER_RE = re.compile(r"([?&]|^)v=[^&#]*(&?)", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def _drop_cache_buster(match: re.Match[str]) -> str:
    separator, trailing = match.group(1), match.group(2)
    return separator if trailing else ""


def normalize_attribute_value(value: str) -> str:
    """Mask epoch timestamps and remove the ``v=`` cache-busting parameter."""
    value = _EPOCH_RE.sub(TIMESTAMP_PLACEHOLDER, value)
    while True:
        value, count = _CACHE_BUSTER_RE.subn(_drop_cache_buster, value)
        if not count:
            return value


def content_hash(text: str) -> str:
    return hashlib.md5(unicodedata.normalize("NFC", text).encode("utf-8")).hexdigest()  # noqa: S324


class MarkupSanitizer:
    """Strips the noisy parts of a rendered page so both sides hash alike."""

    def __init__(
        self,
        ignore_selectors: list[str] | None = None,
        ignore_attributes: list[str] | None = None,
        ignore_text_patterns: list[str] | None = None,
    ) -> None:
        self._selectors: list[str] = []
        for selector in ignore_selectors or []:
            try:
                soupsieve.compile(selector)
            except soupsieve.SelectorSyntaxError as e:
                logger.warning("ignore_selector_skipped", selector=selector, error=str(e))
                continue
            self._selectors.append(selector)
        self._attributes = [re.compile(p) for p in ignore_attributes or []]
        self._text_patterns = [re.compile(p) for p in ignore_text_patterns or []]

    def sanitize(self, markup: str) -> str:
        soup = BeautifulSoup(markup or "", "html.parser")

        for selector in self._selectors:
            for element in soup.select(selector):
                if not element.decomposed:
                    element.decompose()

        for element in soup.find_all(True):
            for name in list(element.attrs):
                if name == ACTION_ID_ATTRIBUTE or any(p.search(name) for p in self._attributes):
                    del element.attrs[name]
                    continue
                value = element.attrs[name]
                if isinstance(value, list):
                    value = " ".join(value)
                element.attrs[name] = normalize_attribute_value(value)

        out = str(soup)
        for pattern in self._text_patterns:
            out = pattern.sub(TEXT_PLACEHOLDER, out)
        return _WHITESPACE_RE.sub(" ", out).strip()

    def sanitize_and_hash(self, markup: str) -> tuple[str, str]:
        """Return the sanitized markup and its hash."""
        sanitized = self.sanitize(markup)
        return sanitized, content_hash(sanitized)
