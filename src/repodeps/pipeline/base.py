"""Phase protocol and runner shared by the crawl and graph commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..config import CrawlSettings, GraphSettings
from ..storage import OutputLayout

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineContext:
    """Runtime context shared across pipeline phases."""

    crawl_settings: Optional[CrawlSettings] = None
    graph_settings: Optional[GraphSettings] = None
    output_layout: Optional[OutputLayout] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PhaseResult:
    """Represents the outcome of a pipeline phase."""

    name: str
    succeeded: bool
    details: Dict[str, Any] = field(default_factory=dict)


class PipelinePhase(Protocol):
    """Interface that all pipeline phases must implement."""

    name: str

    async def run(self, context: PipelineContext) -> PhaseResult:
        ...


class PipelineRunner:
    """Run phases in order against one context, stopping at the first failed phase."""

    def __init__(self, phases: Sequence[PipelinePhase], context: PipelineContext):
        self._phases = list(phases)
        self._context = context

    async def run(self) -> List[PhaseResult]:
        results: List[PhaseResult] = []
        for phase in self._phases:
            result = await phase.run(self._context)
            results.append(result)
            if not result.succeeded:
                _LOGGER.error("Phase %s failed", phase.name)
                break
        return results


__all__ = [
    "PhaseResult",
    "PipelineContext",
    "PipelinePhase",
    "PipelineRunner",
]
