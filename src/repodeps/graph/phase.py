"""Pipeline phase that turns a crawl artifact into a graph document."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..pipeline.base import PhaseResult, PipelineContext, PipelinePhase
from ..storage import load_dependency_cache, write_json
from .materializer import DisplayMode, materialize, summarize


@dataclass(slots=True)
class GraphPhase(PipelinePhase):
    """Materialize the dependency artifact named by the context."""

    input_path: Optional[Path] = None
    name: str = "graph"

    async def run(self, context: PipelineContext) -> PhaseResult:
        settings = context.graph_settings
        if not settings:
            raise ValueError("graph_settings missing from pipeline context")
        source = self.input_path or (
            context.output_layout.artifact if context.output_layout else settings.input_path
        )
        if not source.exists():
            return PhaseResult(name=self.name, succeeded=False, details={"error": f"{source} does not exist"})
        entries = load_dependency_cache(source)
        graph = materialize(entries, settings.organization, DisplayMode(settings.display_mode))
        destination = write_json(settings.graph_output_path, graph.as_dict(), indent=2)
        summary = summarize(graph)
        context.extra.setdefault("graph", {})["summary"] = summary
        return PhaseResult(
            name=self.name,
            succeeded=True,
            details={"summary": summary, "input_path": str(source), "output_path": str(destination)},
        )


__all__ = ["GraphPhase"]
