"""Pipeline phase for the crawl stage."""

from __future__ import annotations

from dataclasses import dataclass

from ..pipeline.base import PhaseResult, PipelineContext, PipelinePhase
from .crawler import DependencyCrawler


@dataclass(slots=True)
class CrawlPhase(PipelinePhase):
    """Resolve the configured organization as part of a multi-phase pipeline."""

    name: str = "crawl"

    async def run(self, context: PipelineContext) -> PhaseResult:
        if not context.crawl_settings:
            raise ValueError("crawl_settings missing from pipeline context")
        if not context.output_layout:
            raise ValueError("output_layout missing from pipeline context")
        crawler = DependencyCrawler(context.crawl_settings, context.output_layout)
        report = await crawler.run()
        context.extra.setdefault("crawl", {})["report"] = report
        return PhaseResult(name=self.name, succeeded=True, details={"report": report})


__all__ = ["CrawlPhase"]
