"""The fixed assertion set applied to a reference/candidate capture pair."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from sitecompare.models.domain import Capture
    from sitecompare.visual.diff import VisualDiff

logger = structlog.get_logger(__name__)


@dataclass
class ComparisonResult:
    errs: list[str] = field(default_factory=list)
    rmse: float | None = None
    diff_path: Path | None = None

    @property
    def ok(self) -> bool:
        return not self.errs


def compare_captures(
    ref: Capture,
    new: Capture,
    visual: VisualDiff | None = None,
    threshold: float | None = None,
    diff_path: Path | None = None,
    resize_width: int | None = None,
) -> ComparisonResult:
    """Compare status, content-type, markup hash, alerts and optionally pixels."""
    if ref is new:
        msg = "a capture cannot be compared against itself"
        raise ValueError(msg)

    result = ComparisonResult()
    if ref.status != new.status:
        result.errs.append("status")
    if ref.content_type != new.content_type:
        result.errs.append("content-type")
    if ref.markup_hash != new.markup_hash:
        result.errs.append("markup-hash")
    if ref.alerts:
        result.errs.append(f"ref alerts: {' | '.join(ref.alerts)}")
    if new.alerts:
        result.errs.append(f"new alerts: {' | '.join(new.alerts)}")

    if visual is not None and ref.screenshot_path and new.screenshot_path:
        rmse = visual.compare_rmse(
            Path(ref.screenshot_path),
            Path(new.screenshot_path),
            diff_path=diff_path,
            resize_width=resize_width,
        )
        result.rmse = rmse.rmse
        result.diff_path = rmse.diff_path
        if threshold is not None and rmse.rmse > threshold:
            result.errs.append(f"rmse={rmse.rmse:.5f}")

    if result.errs:
        logger.info("comparison_mismatch", url=ref.final_url, errs=result.errs)
    return result
