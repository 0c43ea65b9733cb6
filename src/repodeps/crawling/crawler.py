"""Crawl coordinator that resolves an organization and writes the dependency artifact."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, Optional

from ..config import CrawlSettings
from ..gateway.client import CrawlTimeoutError, GitHubClient
from ..resolution.resolver import DependencyResolver
from ..storage import OutputLayout, ensure_output_layout, write_json

_LOGGER = logging.getLogger(__name__)


class DependencyCrawler:
    """Runs one resolution of an organization against GitHub.

    The artifact is written only when every repository resolved. On a fatal
    error nothing is written to the artifact path; with
    ``write_partial_on_failure`` the entries gathered so far go to the
    layout's partial artifact instead.
    """

    def __init__(
        self,
        settings: CrawlSettings,
        layout: OutputLayout,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._layout = layout
        self._logger = logger or _LOGGER
        ensure_output_layout(layout)

    async def run(self) -> Dict[str, Any]:
        organization = self._settings.require_organization()
        started = perf_counter()
        async with GitHubClient(self._settings) as client:
            resolver = DependencyResolver(
                client,
                organization,
                manifest_filename=self._settings.manifest_filename,
                dependency_sections=self._settings.dependency_sections,
                logger=self._logger,
            )
            try:
                await asyncio.wait_for(
                    resolver.resolve_organization(),
                    timeout=self._settings.run_timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                self._handle_failure(resolver)
                raise CrawlTimeoutError(
                    f"Crawl of {organization} did not finish within {self._settings.run_timeout_seconds}s"
                ) from exc
            except Exception:
                self._handle_failure(resolver)
                raise
            request_count = getattr(client, "request_count", None)

        cache = resolver.cache
        write_json(self._layout.artifact, cache.as_dict())
        self._logger.info(
            "Wrote %d nodes and %d edges to %s", len(cache), cache.edge_count(), self._layout.artifact
        )

        report = {
            "organization": organization,
            "crawl_date": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": round(perf_counter() - started, 3),
            "output_path": str(self._layout.artifact),
            "statistics": {
                **resolver.stats.as_dict(),
                "nodes": len(cache),
                "edges": cache.edge_count(),
                "requests": request_count,
            },
            "configuration": {
                "manifest_filename": self._settings.manifest_filename,
                "dependency_sections": list(self._settings.dependency_sections),
                "max_concurrent_requests": self._settings.max_concurrent_requests,
                "run_timeout_seconds": self._settings.run_timeout_seconds,
            },
        }
        write_json(self._layout.report, report, indent=2)
        return report

    def _handle_failure(self, resolver: DependencyResolver) -> None:
        if not self._settings.write_partial_on_failure:
            self._logger.error("Crawl aborted; no dependency artifact written")
            return
        path = write_json(self._layout.partial_artifact, resolver.cache.as_dict())
        self._logger.error(
            "Crawl aborted; wrote %d partial entries to %s", len(resolver.cache), path
        )


__all__ = ["DependencyCrawler"]
