"""Inter-module data contracts (captures, actions, crawl state, report rows)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from sitecompare.types import ActionKind, Side


class NetworkEvent(BaseModel):
    """One decoded DevTools message from the performance log."""

    method: str
    params: dict[str, Any] = {}
    timestamp: float = 0.0


class ResponseInfo(BaseModel):
    status: int
    content_type: str = ""
    url: str = ""
    source: str = ""  # name of the strategy that produced it


class Capture(BaseModel):
    """Normalized snapshot of one page load on one side. Never mutated."""

    model_config = ConfigDict(frozen=True)

    side: Side
    status: int
    content_type: str
    final_url: str
    response_url: str
    markup_hash: str
    raw_markup: str | None = None
    alerts: tuple[str, ...] = ()
    screenshot_path: str | None = None
    markup_dump_path: str | None = None


class Action(BaseModel):
    """A discovered clickable or navigable element."""

    id: str
    text: str = ""
    href: str = ""
    kind: ActionKind = ActionKind.OTHER
    document_key: str = "top"
    frame_source: str = ""
    script_signature: str | None = None


class StateKey(BaseModel):
    """Where a browser currently is: top URL plus same-origin frame URLs."""

    model_config = ConfigDict(frozen=True)

    top_url: str
    frame_sources: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return "|".join([self.top_url, *sorted(self.frame_sources)])

    def __str__(self) -> str:
        return self.key


class CrawlItem(BaseModel):
    """A click-mode queue entry."""

    action: Action
    origin: StateKey
    depth: int = 1

    @property
    def dedup_key(self) -> str:
        return f"{self.origin.key}|{self.action.id}"


class SitemapRow(BaseModel):
    """One comparison outcome, as written to sitemap.json."""

    path: str
    depth: int = 0
    full: bool = True
    status_ref: int | None = None
    status_new: int | None = None
    type_ref: str | None = None
    type_new: str | None = None
    hash_ref: str | None = None
    hash_new: str | None = None
    url_ref: str | None = None
    url_new: str | None = None
    shot_ref: str | None = None
    shot_new: str | None = None
    html_ref: str | None = None
    html_new: str | None = None
    links_found: int | None = None
    action: str | None = None
    equivalent: bool | None = None
    rmse: float | None = None
    diff: str | None = None
    errs: list[str] = []

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
