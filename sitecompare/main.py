"""sitecompare entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from sitecompare.config.logging import setup_logging
from sitecompare.config.schema import load_run_config
from sitecompare.config.settings import get_settings
from sitecompare.crawler.orchestrator import CrawlOrchestrator
from sitecompare.exceptions import ConfigError
from sitecompare.types import CrawlMode

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitecompare",
        description="Crawl a reference and a candidate site side by side and report divergences.",
    )
    parser.add_argument("--jsonfile", required=True, help="run configuration (JSON or YAML)")
    parser.add_argument("--maxpages", type=int, default=None, help="override crawl.max_pages")
    parser.add_argument(
        "--mode", choices=[m.value for m in CrawlMode], default=None, help="override crawl.mode"
    )
    parser.add_argument("--outdir", default=None, help="output root directory")
    parser.add_argument("--debug", action="store_true", help="trace the WebDriver transport")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(
        log_level="DEBUG" if args.debug else settings.log_level,
        json_output=settings.log_json,
        trace_transport=args.debug,
    )

    try:
        config = load_run_config(args.jsonfile, max_pages=args.maxpages, mode=args.mode)
    except ConfigError as e:
        logger.error("config_invalid", path=args.jsonfile, error=str(e))
        return EXIT_CONFIG

    output_root = Path(args.outdir or settings.output_dir).expanduser()
    report = asyncio.run(CrawlOrchestrator(config, output_root).run())

    for line in report.summary_lines():
        print(line)
    return EXIT_FAILURES if report.has_failures else EXIT_OK


def cli() -> None:
    """CLI entrypoint."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
