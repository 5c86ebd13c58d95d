"""Comparison result collection and report building."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from sitecompare.types import CrawlMode

if TYPE_CHECKING:
    from pathlib import Path

    from sitecompare.models.domain import SitemapRow
    from sitecompare.storage.artifacts import RoleArtifacts

logger = structlog.get_logger(__name__)

CSV_COLUMNS = [
    "path",
    "depth",
    "status_ref",
    "status_new",
    "type_ref",
    "type_new",
    "links_found",
    "shot_ref",
    "shot_new",
]


@dataclass
class RoleReport:
    """Aggregated outcome of one role."""

    role: str
    rows: list[SitemapRow] = field(default_factory=list)
    cancelled: dict[str, int] = field(default_factory=dict)
    by_links: int = 0
    by_clicks: int = 0
    aborted: str | None = None
    output_dir: Path | None = None

    @property
    def visited(self) -> int:
        return len(self.rows)

    @property
    def errors(self) -> list[SitemapRow]:
        return [r for r in self.rows if r.errs]

    @property
    def per_status(self) -> dict[str, list[SitemapRow]]:
        buckets: dict[str, list[SitemapRow]] = {}
        for row in self.rows:
            buckets.setdefault(str(row.status_ref), []).append(row)
        return buckets

    @property
    def has_failures(self) -> bool:
        return self.aborted is not None or bool(self.errors)

    def summary_lines(self) -> list[str]:
        if self.aborted:
            return [f"role '{self.role}': aborted ({self.aborted})"]
        lines = [
            f"role '{self.role}': visited {self.visited} "
            f"(by links: {self.by_links}, by clicks: {self.by_clicks})"
        ]
        statuses = Counter(str(r.status_ref) for r in self.rows)
        for status in sorted(statuses):
            lines.append(f"  status {status}: {statuses[status]}")
        for reason in sorted(self.cancelled):
            lines.append(f"  cancelled ({reason}): {self.cancelled[reason]}")
        errors = self.errors
        lines.append(f"  errors: {len(errors)}")
        for row in errors:
            lines.append(f"    {row.path}: {', '.join(row.errs)}")
        return lines


class ResultCollector:
    """Collects the comparison rows of one role and writes its result files."""

    def __init__(self, role: str) -> None:
        self._report = RoleReport(role=role)

    @property
    def visited(self) -> int:
        return self._report.visited

    def add_row(self, row: SitemapRow, mode: CrawlMode) -> None:
        """Record one attempted comparison."""
        self._report.rows.append(row)
        if mode == CrawlMode.CLICK:
            self._report.by_clicks += 1
        else:
            self._report.by_links += 1
        logger.info(
            "comparison_recorded",
            path=row.path,
            depth=row.depth,
            status_ref=row.status_ref,
            status_new=row.status_new,
            errs=row.errs,
        )

    def add_cancelled(self, reason: str) -> None:
        self._report.cancelled[reason] = self._report.cancelled.get(reason, 0) + 1
        logger.warning("item_cancelled", reason=reason)

    def abort(self, reason: str) -> None:
        self._report.aborted = reason
        logger.error("role_aborted", reason=reason)

    def log_summary(self) -> None:
        for line in self._report.summary_lines():
            logger.info("role_summary", line=line)

    def write(self, artifacts: RoleArtifacts, make_csv: bool = False) -> None:
        """Serialize sitemap, per-status buckets and errors under results/."""
        report = self._report
        report.output_dir = artifacts.base_dir
        rows = [r.to_json() for r in report.rows]
        artifacts.write_json("sitemap.json", rows)
        if make_csv:
            artifacts.write_csv("sitemap.csv", rows, CSV_COLUMNS)
        artifacts.write_json(
            "per_status.json",
            {status: [r.to_json() for r in bucket] for status, bucket in report.per_status.items()},
        )
        artifacts.write_json("errors.json", [r.to_json() for r in report.errors])
        logger.info(
            "role_results_written",
            path=str(artifacts.base_dir),
            rows=len(rows),
            errors=len(report.errors),
        )

    def build_report(self) -> RoleReport:
        return self._report


@dataclass
class RunReport:
    """Outcome of a whole invocation, all roles included."""

    roles: list[RoleReport] = field(default_factory=list)
    run_dir: Path | None = None

    @property
    def has_failures(self) -> bool:
        return any(r.has_failures for r in self.roles)

    def summary_lines(self) -> list[str]:
        lines: list[str] = []
        for role in self.roles:
            lines.extend(role.summary_lines())
        if not self.roles:
            lines.append("no role was processed")
        total = sum(r.visited for r in self.roles)
        failed = sum(len(r.errors) for r in self.roles)
        lines.append(f"total visited: {total}, with errors: {failed}")
        return lines
