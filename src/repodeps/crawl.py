"""CLI entrypoint for crawling an organization's dependency graph."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import CrawlSettings, get_settings
from .crawling import CrawlPhase
from .gateway.client import GitHubAPIError
from .pipeline import PipelineContext, PipelineRunner
from .storage import build_output_layout


def _configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


async def _run_async(settings: CrawlSettings) -> Dict[str, Any]:
    context = PipelineContext(
        crawl_settings=settings,
        output_layout=build_output_layout(settings),
    )
    runner = PipelineRunner([CrawlPhase()], context)
    results = await runner.run()
    crawl_result = next((result for result in results if result.name == "crawl"), None)
    if not crawl_result or not crawl_result.succeeded:
        raise RuntimeError("Crawl phase failed")
    return crawl_result.details.get("report", {})


def run(settings: Optional[CrawlSettings] = None, *, verbose: bool = False) -> Dict[str, Any]:
    """Execute a crawl synchronously and return its report."""

    _configure_logging(verbose)
    return asyncio.run(_run_async(settings or get_settings()))


def _apply_overrides(settings: CrawlSettings, args: argparse.Namespace) -> CrawlSettings:
    overrides: Dict[str, Any] = {}
    if args.organization:
        overrides["organization"] = args.organization
    if args.output:
        overrides["output_path"] = Path(args.output)
    if args.max_concurrent_requests:
        overrides["max_concurrent_requests"] = args.max_concurrent_requests
    if args.partial_on_failure:
        overrides["write_partial_on_failure"] = True
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


def main(argv: list[str] | None = None) -> None:
    """Console script entry point."""

    parser = argparse.ArgumentParser(description="Resolve the internal dependency graph of a GitHub organization")
    parser.add_argument("--organization", "-O", help="Organization to crawl (default: REPODEPS_ORGANIZATION / ORG_NAME)")
    parser.add_argument("--output", "-o", help="Path of the dependency artifact (default: REPODEPS_OUTPUT_PATH / OUT_PATH)")
    parser.add_argument(
        "--max-concurrent-requests",
        type=int,
        help="Upper bound on GitHub requests in flight",
    )
    parser.add_argument(
        "--partial-on-failure",
        action="store_true",
        help="Write the entries resolved so far to '<output>.partial.json' if the crawl aborts",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logger = logging.getLogger(__name__)
    settings = _apply_overrides(get_settings(), args)
    try:
        report = run(settings, verbose=args.verbose)
    except (GitHubAPIError, ValueError) as exc:
        logger.error("Crawl failed: %s", exc)
        raise SystemExit(1) from exc
    logger.info("Crawl completed", extra={"summary": report})


if __name__ == "__main__":  # pragma: no cover
    main()
