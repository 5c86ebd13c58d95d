"""Crawl orchestrator: per-role lifecycle and the link/click state machines."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from sitecompare.browser.client import RemoteBrowserClient
from sitecompare.browser.ready import PageReadySynchronizer
from sitecompare.capture.normalizer import CaptureNormalizer
from sitecompare.capture.sanitize import MarkupSanitizer
from sitecompare.constants import INTERMEDIATE_SUMMARY_EVERY
from sitecompare.crawler.comparison import compare_captures
from sitecompare.crawler.discovery import click_action, discover, state_key
from sitecompare.crawler.equivalence import find_equivalent
from sitecompare.crawler.links import LinkExtractor, LinkQueue
from sitecompare.crawler.login import LoginHandler
from sitecompare.exceptions import BrowserError, LoginError, RoleSetupError
from sitecompare.models.domain import CrawlItem, SitemapRow
from sitecompare.reporter.collector import ResultCollector, RunReport
from sitecompare.storage.artifacts import RoleArtifacts, create_run_dir
from sitecompare.types import CrawlMode, Side
from sitecompare.utils.timing import timed
from sitecompare.utils.urls import allowed, compile_patterns, join_base, path_and_query
from sitecompare.visual.diff import VisualDiff

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from sitecompare.config.schema import RoleConfig, RunConfig
    from sitecompare.models.domain import Action, Capture, StateKey
    from sitecompare.reporter.collector import RoleReport

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[Side], RemoteBrowserClient]


@dataclass
class RoleSession:
    """Runtime state of one role, owned by the orchestrator."""

    name: str
    config: RoleConfig
    artifacts: RoleArtifacts
    collector: ResultCollector
    normalizer: CaptureNormalizer
    clients: dict[Side, RemoteBrowserClient] = field(default_factory=dict)
    cookies: dict[Side, dict[str, Any] | None] = field(default_factory=dict)
    tried: set[str] = field(default_factory=set)
    candidate_urls: dict[str, str] = field(default_factory=dict)
    successive_errors: int = 0
    last_error: str | None = None
    stopped: bool = False

    @property
    def ref(self) -> RemoteBrowserClient:
        return self.clients[Side.REF]

    @property
    def new(self) -> RemoteBrowserClient:
        return self.clients[Side.NEW]

    @property
    def visited(self) -> int:
        return self.collector.visited


class CrawlOrchestrator:
    """Drives every enabled role, one after the other, through its crawl."""

    def __init__(
        self,
        config: RunConfig,
        output_root: Path,
        client_factory: ClientFactory | None = None,
        synchronizer: PageReadySynchronizer | None = None,
        started: datetime | None = None,
    ) -> None:
        self._config = config
        self._output_root = output_root
        self._client_factory = client_factory or self._default_client
        self._synchronizer = synchronizer or PageReadySynchronizer(
            timeout_s=config.browser.timeout
        )
        self._started = started
        self._sanitizer = MarkupSanitizer(
            config.html.ignore_selectors,
            config.html.ignore_attributes,
            config.html.ignore_text_patterns,
        )
        visual = config.visual
        self._visual = (
            VisualDiff(visual.align, visual.fuzz, visual.rmse_fail_threshold)
            if visual.enabled
            else None
        )
        crawl = config.crawl
        self._click_href_deny = compile_patterns(crawl.click_href_deny_patterns, "click_href_deny")
        self._click_text_deny = compile_patterns(crawl.click_text_deny_patterns, "click_text_deny")

    def _default_client(self, side: Side) -> RemoteBrowserClient:
        browser = self._config.browser
        return RemoteBrowserClient(
            browser.driver_url,
            side,
            width=browser.width,
            height=browser.height,
            request_timeout=browser.request_timeout,
        )

    def _base(self, side: Side) -> str:
        return self._config.bases.ref if side == Side.REF else self._config.bases.new

    async def run(self) -> RunReport:
        """Process every enabled role and return the run report."""
        run_dir = create_run_dir(self._output_root, self._started)
        report = RunReport(run_dir=run_dir)
        logger.info(
            "run_started",
            ref=self._config.bases.ref,
            new=self._config.bases.new,
            mode=self._config.crawl.mode.value,
            roles=list(self._config.roles),
        )
        for name, role in self._config.roles.items():
            if not role.enabled:
                logger.info("role_disabled", role=name)
                continue
            report.roles.append(await self.run_role(name, role, run_dir))
        logger.info("run_finished", roles=len(report.roles), failures=report.has_failures)
        return report

    async def run_role(self, name: str, role: RoleConfig, run_dir: Path) -> RoleReport:
        """Set up both browsers for a role, crawl, then tear everything down."""
        bind_contextvars(role=name)
        collector = ResultCollector(name)
        artifacts = RoleArtifacts.for_role(run_dir, name)
        crawl = self._config.crawl
        session = RoleSession(
            name=name,
            config=role,
            artifacts=artifacts,
            collector=collector,
            normalizer=CaptureNormalizer(
                self._synchronizer,
                self._sanitizer,
                artifacts=artifacts,
                visual=self._config.visual,
                write_screenshots=crawl.write_screenshots,
                write_htmls=crawl.write_htmls,
                keep_markup=crawl.mode == CrawlMode.LINK,
            ),
        )
        try:
            with timed(f"role_{name}") as t:
                await self._setup(session)
                if crawl.mode == CrawlMode.CLICK:
                    await self._crawl_clicks(session)
                else:
                    await self._crawl_links(session)
            logger.info("role_finished", visited=session.visited, elapsed=round(t["elapsed"], 2))
        except (RoleSetupError, LoginError) as e:
            collector.abort(str(e))
        except BrowserError as e:
            collector.abort(f"browser error: {e}")
        finally:
            for client in session.clients.values():
                await client.close()
            collector.write(artifacts, make_csv=crawl.make_sitemap_csv)
            collector.log_summary()
            unbind_contextvars("role")
        return collector.build_report()

    async def _setup(self, session: RoleSession) -> None:
        login = self._config.login
        needs_login = login is not None and login.is_defined
        if needs_login and not session.config.has_credentials:
            msg = f"role '{session.name}' has no complete credentials"
            raise RoleSetupError(msg)

        for side in (Side.REF, Side.NEW):
            client = self._client_factory(side)
            session.clients[side] = client
            try:
                await client.start()
            except BrowserError as e:
                msg = f"unable to start the {side.value} browser: {e}"
                raise RoleSetupError(msg) from e

        if login is None or not needs_login:
            return
        handler = LoginHandler(login, self._config.browser.timeout)
        creds = session.config.creds
        for side in (Side.REF, Side.NEW):
            try:
                session.cookies[side] = await handler.log_in(
                    session.clients[side], self._base(side), creds.user or "", creds.password or ""
                )
            except (LoginError, BrowserError) as e:
                msg = f"login failed on the {side.value} side: {e}"
                raise RoleSetupError(msg) from e

    def _budget_left(self, session: RoleSession) -> bool:
        max_pages = self._config.crawl.max_pages
        if session.stopped:
            return False
        return not max_pages or session.visited < max_pages

    async def _capture(
        self,
        session: RoleSession,
        side: Side,
        seq: int,
        basename: str,
        url: str | None = None,
    ) -> Capture | None:
        client = session.clients[side]
        try:
            capture = await session.normalizer.capture(client, side, basename, url=url)
        except BrowserError as e:
            logger.warning("capture_failed", side=side.value, url=url, error=str(e))
            capture = None
        if capture is None:
            session.artifacts.dump_perf_log(seq, side, client.performance_ring)
        return capture

    def _cancel(self, session: RoleSession, reason: str) -> None:
        session.collector.add_cancelled(reason)
        if reason == session.last_error:
            session.successive_errors += 1
        else:
            session.last_error = reason
            session.successive_errors = 1
        if session.successive_errors >= self._config.crawl.max_successive_errors:
            logger.error(
                "too_many_successive_errors", reason=reason, count=session.successive_errors
            )
            session.stopped = True

    def _record(self, session: RoleSession, row: SitemapRow, mode: CrawlMode) -> None:
        session.collector.add_row(row, mode)
        session.successive_errors = 0
        session.last_error = None
        if session.visited % INTERMEDIATE_SUMMARY_EVERY == 0:
            session.collector.log_summary()

    def _compare_row(
        self,
        session: RoleSession,
        path: str,
        depth: int,
        basename: str,
        ref: Capture,
        new: Capture,
        **extra: Any,
    ) -> SitemapRow:
        visual = self._config.visual
        diff_path = session.artifacts.diff_path(basename) if self._visual else None
        result = compare_captures(
            ref,
            new,
            visual=self._visual,
            threshold=visual.rmse_fail_threshold,
            diff_path=diff_path,
            resize_width=visual.resize_width,
        )
        return SitemapRow(
            path=path,
            depth=depth,
            status_ref=ref.status,
            status_new=new.status,
            type_ref=ref.content_type,
            type_new=new.content_type,
            hash_ref=ref.markup_hash,
            hash_new=new.markup_hash,
            url_ref=ref.final_url,
            url_new=new.final_url,
            shot_ref=ref.screenshot_path,
            shot_new=new.screenshot_path,
            html_ref=ref.markup_dump_path,
            html_new=new.markup_dump_path,
            rmse=result.rmse,
            diff=str(result.diff_path) if result.diff_path else None,
            errs=result.errs,
            **extra,
        )

    async def _crawl_links(self, session: RoleSession) -> None:
        crawl = self._config.crawl
        queue = LinkQueue(crawl.prefix_path)
        for route in session.config.seed_routes():
            queue.push(route, 0)
        extractor = LinkExtractor(crawl, self._config.bases.ref)

        while self._budget_left(session):
            item = queue.pop()
            if item is None:
                break
            path, depth = item
            if depth > crawl.max_depth:
                logger.debug("depth_exceeded", path=path, depth=depth)
                continue
            queue.mark_seen(path, depth)

            seq = session.artifacts.next_sequence()
            basename = session.artifacts.basename(seq, path)
            ref = await self._capture(
                session, Side.REF, seq, basename, url=join_base(self._config.bases.ref, path)
            )
            if ref is None:
                self._cancel(session, "ref capture failed")
                continue
            new = await self._capture(
                session, Side.NEW, seq, basename, url=join_base(self._config.bases.new, path)
            )
            if new is None:
                self._cancel(session, "new capture failed")
                continue

            if ref.status >= 400 and ref.status == new.status:
                row = SitemapRow(
                    path=path,
                    depth=depth,
                    full=False,
                    status_ref=ref.status,
                    status_new=new.status,
                    url_ref=ref.final_url,
                    url_new=new.final_url,
                )
                self._record(session, row, CrawlMode.LINK)
                continue

            links = extractor.extract(ref.raw_markup or "", ref.final_url)
            if depth < crawl.max_depth:
                for link in links:
                    queue.push(link, depth + 1)
            row = self._compare_row(
                session, path, depth, basename, ref, new, links_found=len(links)
            )
            self._record(session, row, CrawlMode.LINK)

    def _clickable(self, action: Action) -> bool:
        if action.href and not allowed(action.href, [], self._click_href_deny):
            return False
        return not (action.text and not allowed(action.text, [], self._click_text_deny))

    async def _enqueue_actions(
        self,
        session: RoleSession,
        queue: deque[CrawlItem],
        queued: set[str],
        origin: StateKey,
        depth: int,
    ) -> int:
        crawl = self._config.crawl
        if depth > crawl.max_depth:
            return 0
        actions = await discover(session.ref, crawl.click_finders, crawl.exclude_selectors)
        added = 0
        for action in actions:
            if not self._clickable(action):
                continue
            item = CrawlItem(action=action, origin=origin, depth=depth)
            key = item.dedup_key
            if key in session.tried or key in queued:
                continue
            queued.add(key)
            queue.append(item)
            added += 1
        logger.debug("actions_enqueued", origin=origin.key, added=added, queued=len(queue))
        return added

    async def _crawl_clicks(self, session: RoleSession) -> None:
        crawl = self._config.crawl
        queue: deque[CrawlItem] = deque()
        queued: set[str] = set()

        for route in session.config.seed_routes():
            if not self._budget_left(session):
                return
            seq = session.artifacts.next_sequence()
            basename = session.artifacts.basename(seq, route)
            ref = await self._capture(
                session, Side.REF, seq, basename, url=join_base(self._config.bases.ref, route)
            )
            new = await self._capture(
                session, Side.NEW, seq, basename, url=join_base(self._config.bases.new, route)
            )
            if ref is None or new is None:
                self._cancel(session, "seed capture failed")
                continue
            self._record(
                session, self._compare_row(session, route, 0, basename, ref, new), CrawlMode.CLICK
            )
            try:
                origin = await state_key(session.ref)
                session.candidate_urls.setdefault(origin.key, new.final_url)
                await self._enqueue_actions(session, queue, queued, origin, 1)
            except BrowserError as e:
                logger.warning("seed_discovery_failed", route=route, error=str(e))
                self._cancel(session, "browser error")

        while queue and self._budget_left(session):
            item = queue.popleft()
            key = item.dedup_key
            queued.discard(key)
            if key in session.tried:
                continue
            session.tried.add(key)
            try:
                await self._click_item(session, item, queue, queued)
            except BrowserError as e:
                logger.warning("click_item_failed", action=item.action.id, error=str(e))
                self._cancel(session, "browser error")

        if queue:
            logger.info("click_queue_left", remaining=len(queue), stopped=session.stopped)
        logger.debug("click_crawl_done", tried=len(session.tried), max_depth=crawl.max_depth)

    async def _click_item(
        self,
        session: RoleSession,
        item: CrawlItem,
        queue: deque[CrawlItem],
        queued: set[str],
    ) -> None:
        current = await state_key(session.ref)
        if current.key != item.origin.key:
            # history-based recovery does not restore SPA state reliably
            logger.info("reference_state_drift", expected=item.origin.key, actual=current.key)

        expected_new = session.candidate_urls.get(item.origin.key)
        if expected_new:
            landed = await session.new.current_url()
            if path_and_query(landed) != path_and_query(expected_new):
                logger.info("candidate_state_drift", expected=expected_new, actual=landed)
                await session.new.navigate(expected_new)
                await self._synchronizer.await_ready(session.new)

        action = item.action
        seq = session.artifacts.next_sequence()
        basename = session.artifacts.basename(seq, action.text or action.id)

        if not await click_action(session.ref, action.id):
            self._cancel(session, "ref click target missing")
            return
        ref = await self._capture(session, Side.REF, seq, basename)
        if ref is None:
            self._cancel(session, "ref capture failed")
            return

        crawl = self._config.crawl
        equivalent_id = await find_equivalent(
            session.new, action, crawl.click_finders, crawl.exclude_selectors
        )
        equivalent = False
        if equivalent_id is not None:
            equivalent = await click_action(session.new, equivalent_id)
        if not equivalent:
            logger.warning("candidate_unchanged", action=action.id, text=action.text)
        new = await self._capture(session, Side.NEW, seq, basename)
        if new is None:
            self._cancel(session, "new capture failed")
            return

        row = self._compare_row(
            session,
            path_and_query(ref.final_url),
            item.depth,
            basename,
            ref,
            new,
            action=f"{action.kind.value}: {action.text or action.href or action.id}",
            equivalent=equivalent,
        )
        self._record(session, row, CrawlMode.CLICK)

        after = await state_key(session.ref)
        if after.key != item.origin.key:
            session.candidate_urls.setdefault(after.key, new.final_url)
            await self._enqueue_actions(session, queue, queued, after, item.depth + 1)
