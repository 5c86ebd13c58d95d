"""Run and role output directories: screenshots, markup dumps, reports.

Layout of one run::

    <output_root>/<YYMMDD-HHMMSS>/byRole/<role>/
        results/      sitemap.json, sitemap.csv, per_status.json, errors.json
        screenshots/  <seq>_<slug>_<side>.png, <seq>_<slug>_diff.png
        htmls/        <seq>_<slug>_<side>.html
        perf_logs/    <seq>_<side>.log
"""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from PIL import Image

    from sitecompare.types import Side

logger = structlog.get_logger(__name__)

RUN_STAMP_FORMAT = "%y%m%d-%H%M%S"
_SLUG_RE = re.compile(r"[^A-Za-z0-9]+")


def slugify(label: str, max_len: int = 80) -> str:
    """Filesystem-safe short name for a path or action label."""
    slug = _SLUG_RE.sub("_", label).strip("_")[:max_len]
    return slug or "root"


def create_run_dir(output_root: Path, started: datetime | None = None) -> Path:
    """Create the timestamped directory one run writes into."""
    stamp = (started or datetime.now()).strftime(RUN_STAMP_FORMAT)
    path = output_root.expanduser().resolve() / stamp
    path.mkdir(parents=True, exist_ok=True)
    logger.info("run_dir_created", path=str(path))
    return path


class RoleArtifacts:
    """Manages the output files of one role, with traversal protection."""

    def __init__(self, base_dir: Path) -> None:
        self._base = base_dir.resolve()
        self._base.mkdir(parents=True, exist_ok=True)
        self._sequence = 0

    @classmethod
    def for_role(cls, run_dir: Path, role: str) -> RoleArtifacts:
        return cls(run_dir / "byRole" / slugify(role))

    @property
    def base_dir(self) -> Path:
        return self._base

    def _safe_path(self, *parts: str) -> Path:
        """Resolve path with traversal protection."""
        path = (self._base / Path(*parts)).resolve()
        if not path.is_relative_to(self._base):
            msg = f"Path traversal detected: {'/'.join(parts)}"
            raise ValueError(msg)
        return path

    def _file(self, folder: str, name: str) -> Path:
        directory = self._safe_path(folder)
        directory.mkdir(parents=True, exist_ok=True)
        return self._safe_path(folder, name)

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def basename(self, seq: int, label: str) -> str:
        return f"{seq:05d}_{slugify(label)}"

    def screenshot_path(self, basename: str, side: Side) -> Path:
        return self._file("screenshots", f"{basename}_{side.value}.png")

    def diff_path(self, basename: str) -> Path:
        return self._file("screenshots", f"{basename}_diff.png")

    def save_screenshot(self, basename: str, side: Side, image: Image.Image) -> Path:
        path = self.screenshot_path(basename, side)
        image.save(path, format="PNG")
        logger.debug("screenshot_saved", path=str(path), size=image.size)
        return path

    def save_markup(self, basename: str, side: Side, markup: str) -> Path:
        path = self._file("htmls", f"{basename}_{side.value}.html")
        path.write_text(markup, encoding="utf-8")
        logger.debug("markup_saved", path=str(path), size=len(markup))
        return path

    def dump_perf_log(self, seq: int, side: Side, entries: list[dict[str, Any]]) -> Path:
        """Write the raw performance-log ring of one side, one JSON entry per line."""
        path = self._file("perf_logs", f"{seq:05d}_{side.value}.log")
        with path.open("w", encoding="utf-8") as fh:
            for entry in entries:
                fh.write(json.dumps(entry, ensure_ascii=False))
                fh.write("\n")
        logger.info("perf_log_dumped", path=str(path), entries=len(entries))
        return path

    def write_json(self, name: str, data: Any) -> Path:
        path = self._file("results", name)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("results_written", path=str(path))
        return path

    def write_csv(self, name: str, rows: list[dict[str, Any]], columns: list[str]) -> Path:
        path = self._file("results", name)
        with path.open("w", encoding="utf-8", newline="") as fh:
            writer = csv.DictWriter(fh, fieldnames=columns, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow({c: "" if row.get(c) is None else row.get(c) for c in columns})
        logger.debug("results_written", path=str(path))
        return path
