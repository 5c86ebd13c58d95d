"""Run configuration schema with Pydantic validation."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import soupsieve
import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from sitecompare.constants import (
    DEFAULT_CLICK_FINDERS,
    DEFAULT_CLICK_HREF_DENY_PATTERNS,
    DEFAULT_DANGEROUS_WORD_PATTERNS,
    DEFAULT_DRIVER_SERVER,
    DEFAULT_DRIVER_URL_BASE,
    DEFAULT_EXCLUDED_COOKIES,
    DEFAULT_FUZZ,
    DEFAULT_GATE_TIMEOUT_S,
    DEFAULT_IGNORE_ATTRIBUTES,
    DEFAULT_IGNORE_SELECTORS,
    DEFAULT_LINK_HREF_DENY_PATTERNS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_SUCCESSIVE_ERRORS,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_RMSE_THRESHOLD,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    STITCH_MAX_SEGMENTS,
    STITCH_OVERLAP_PX,
    STITCH_SETTLE_MS,
)
from sitecompare.exceptions import ConfigError
from sitecompare.types import AlignPolicy, CrawlMode

logger = structlog.get_logger(__name__)


def _check_regexes(patterns: list[str]) -> list[str]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            msg = f"invalid regex {pattern!r}: {e}"
            raise ValueError(msg) from e
    return patterns


def _check_selectors(selectors: list[str]) -> list[str]:
    for selector in selectors:
        try:
            soupsieve.compile(selector)
        except soupsieve.SelectorSyntaxError as e:
            msg = f"invalid CSS selector {selector!r}: {e}"
            raise ValueError(msg) from e
    return selectors


class BasesConfig(BaseModel):
    ref: str = ""
    new: str = ""

    @field_validator("ref", "new")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")


class BrowserConfig(BaseModel):
    port: int | None = None
    remote_server_addr: str = DEFAULT_DRIVER_SERVER
    url_base: str = DEFAULT_DRIVER_URL_BASE
    timeout: float = Field(default=DEFAULT_GATE_TIMEOUT_S, gt=0)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT_S, gt=0)
    width: int = Field(default=DEFAULT_VIEWPORT_WIDTH, ge=4)
    height: int = Field(default=DEFAULT_VIEWPORT_HEIGHT, ge=3)

    @property
    def driver_url(self) -> str:
        """Root URL of the WebDriver server, without the session part."""
        return f"http://{self.remote_server_addr}:{self.port}{self.url_base.rstrip('/')}"


class LinkFinder(BaseModel):
    find: str = "a[href]"
    member: str = "href"

    @field_validator("find")
    @classmethod
    def _must_parse(cls, selector: str) -> str:
        return _check_selectors([selector])[0]


class CrawlConfig(BaseModel):
    mode: CrawlMode = CrawlMode.LINK
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0)
    max_pages: int = Field(default=DEFAULT_MAX_PAGES, ge=0)  # 0 means unbounded
    same_host_only: bool = True
    url_allow_patterns: list[str] = Field(default_factory=list)
    url_deny_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_WORD_PATTERNS)
    )
    href_allow_patterns: list[str] = Field(default_factory=list)
    href_deny_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LINK_HREF_DENY_PATTERNS)
    )
    exclude_selectors: list[str] = Field(default_factory=list)
    find_links: list[LinkFinder] = Field(default_factory=lambda: [LinkFinder()])
    prefix_path: list[str] = Field(default_factory=lambda: [""])
    follow_query: bool = True
    write_screenshots: bool = False
    write_htmls: bool = False
    make_sitemap_csv: bool = False
    click_finders: list[str] = Field(default_factory=lambda: list(DEFAULT_CLICK_FINDERS))
    click_href_deny_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CLICK_HREF_DENY_PATTERNS)
    )
    click_text_deny_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_WORD_PATTERNS)
    )
    max_successive_errors: int = Field(default=DEFAULT_MAX_SUCCESSIVE_ERRORS, ge=1)

    @field_validator("exclude_selectors", "click_finders")
    @classmethod
    def _must_parse(cls, selectors: list[str]) -> list[str]:
        return _check_selectors(selectors)


class HtmlConfig(BaseModel):
    ignore_selectors: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_SELECTORS))
    ignore_attributes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_ATTRIBUTES)
    )
    ignore_text_patterns: list[str] = Field(default_factory=list)

    @field_validator("ignore_attributes", "ignore_text_patterns")
    @classmethod
    def _must_compile(cls, patterns: list[str]) -> list[str]:
        return _check_regexes(patterns)


class VisualConfig(BaseModel):
    enabled: bool = False
    rmse_fail_threshold: float = Field(default=DEFAULT_RMSE_THRESHOLD, ge=0)
    align: AlignPolicy = AlignPolicy.CROP
    fuzz: float = Field(default=DEFAULT_FUZZ, ge=0, le=1)
    resize_width: int | None = None
    stitch_overlap: int = Field(default=STITCH_OVERLAP_PX, ge=0)
    settle_ms: int = Field(default=STITCH_SETTLE_MS, ge=0)
    max_segments: int = Field(default=STITCH_MAX_SEGMENTS, ge=1)


class LoginConfig(BaseModel):
    path: str | None = None
    user_selector: str | None = None
    pass_selector: str | None = None
    submit_selector: str | None = None
    session_cookie_regex: str | None = None
    excluded_cookies: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_COOKIES))

    @field_validator("session_cookie_regex")
    @classmethod
    def _cookie_regex_must_compile(cls, pattern: str | None) -> str | None:
        if pattern:
            _check_regexes([pattern])
        return pattern

    @field_validator("excluded_cookies")
    @classmethod
    def _exclusions_must_compile(cls, patterns: list[str]) -> list[str]:
        return _check_regexes(patterns)

    @property
    def is_defined(self) -> bool:
        return bool(
            self.path and self.user_selector and self.pass_selector and self.submit_selector
        )


class RoleCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str | None = None
    password: str | None = Field(default=None, alias="pass")


class RoleConfig(BaseModel):
    enabled: bool = True
    creds: RoleCredentials = Field(default_factory=RoleCredentials)
    routes: list[str] = Field(default_factory=list)

    @property
    def has_credentials(self) -> bool:
        return bool(self.creds.user and self.creds.password)

    def seed_routes(self) -> list[str]:
        """Configured routes made absolute, defaulting to the site root."""
        routes = self.routes or ["/"]
        return [route if route.startswith("/") else f"/{route}" for route in routes]


class RunConfig(BaseModel):
    bases: BasesConfig = Field(default_factory=BasesConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    html: HtmlConfig = Field(default_factory=HtmlConfig)
    visual: VisualConfig = Field(default_factory=VisualConfig)
    login: LoginConfig | None = None
    roles: dict[str, RoleConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_mandatory(self) -> RunConfig:
        if not self.bases.ref:
            msg = "bases.ref (reference base URL) is mandatory"
            raise ValueError(msg)
        if not self.bases.new:
            msg = "bases.new (candidate base URL) is mandatory"
            raise ValueError(msg)
        if self.browser.port is None:
            msg = "browser.port is mandatory"
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, text: str) -> RunConfig:
        """Parse a JSON or YAML document into a RunConfig."""
        try:
            raw = yaml.safe_load(text) if text and text.strip() else None
        except yaml.YAMLError as e:
            msg = f"configuration is not valid JSON/YAML: {e}"
            raise ConfigError(msg) from e
        if not isinstance(raw, dict):
            msg = "configuration must be a mapping"
            raise ConfigError(msg)
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    def with_overrides(
        self, max_pages: int | None = None, mode: CrawlMode | str | None = None
    ) -> RunConfig:
        """Return a copy with command-line overrides applied."""
        updates: dict[str, Any] = {}
        if max_pages is not None:
            if max_pages < 0:
                msg = f"--maxpages must be greater or equal to zero, got {max_pages}"
                raise ConfigError(msg)
            updates["max_pages"] = max_pages
        if mode is not None:
            try:
                updates["mode"] = CrawlMode(mode)
            except ValueError as e:
                msg = f"unknown crawl mode {mode!r}"
                raise ConfigError(msg) from e
        if not updates:
            return self
        return self.model_copy(update={"crawl": self.crawl.model_copy(update=updates)})


def load_run_config(
    path: str | Path, max_pages: int | None = None, mode: CrawlMode | str | None = None
) -> RunConfig:
    """Read, validate and override the run configuration file."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"unable to read configuration {config_path}: {e}"
        raise ConfigError(msg) from e
    config = RunConfig.from_yaml(text).with_overrides(max_pages=max_pages, mode=mode)
    logger.debug(
        "config_loaded",
        path=str(config_path),
        mode=config.crawl.mode.value,
        roles=sorted(config.roles),
    )
    return config
