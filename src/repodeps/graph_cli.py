"""CLI entrypoint for materializing a dependency artifact into a graph document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import GraphSettings, get_graph_settings
from .graph import GraphPhase
from .pipeline import PipelineContext, PipelineRunner


def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


async def _run_async(settings: GraphSettings) -> Dict[str, Any]:
    context = PipelineContext(graph_settings=settings)
    results = await PipelineRunner([GraphPhase(input_path=settings.input_path)], context).run()
    graph_result = results[-1]
    if not graph_result.succeeded:
        raise FileNotFoundError(graph_result.details.get("error", "graph phase failed"))
    return graph_result.details


def run(settings: Optional[GraphSettings] = None) -> Dict[str, Any]:
    """Materialize the configured artifact and return the phase details."""

    return asyncio.run(_run_async(settings or get_graph_settings()))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Build the node/edge document for a dependency artifact")
    parser.add_argument("--input", "-i", help="Dependency artifact written by repodeps-crawl")
    parser.add_argument("--output", "-o", help="Destination of the graph document")
    parser.add_argument("--organization", "-O", help="Organization name used to select internal nodes")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--internal-only", action="store_true", help="Keep organization nodes only")
    mode.add_argument("--all", action="store_true", help="Keep every node, external packages included")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)
    overrides: Dict[str, Any] = {}
    if args.input:
        overrides["input_path"] = Path(args.input)
    if args.output:
        overrides["graph_output_path"] = Path(args.output)
    if args.organization:
        overrides["organization"] = args.organization
    if args.internal_only:
        overrides["display_mode"] = "internal"
    elif args.all:
        overrides["display_mode"] = "all"
    settings = get_graph_settings().model_copy(update=overrides)

    logger = logging.getLogger(__name__)
    try:
        details = run(settings)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Graph materialization failed: %s", exc)
        raise SystemExit(1) from exc
    logger.info("Graph written to %s", details["output_path"])
    print(json.dumps(details["summary"], indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
