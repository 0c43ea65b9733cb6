from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import pytest

from repodeps.pipeline import PhaseResult, PipelineContext, PipelineRunner


@dataclass
class RecordingPhase:
    name: str
    succeed: bool = True
    calls: List[str] = field(default_factory=list)

    async def run(self, context: PipelineContext) -> PhaseResult:
        self.calls.append(self.name)
        context.extra.setdefault("order", []).append(self.name)
        return PhaseResult(name=self.name, succeeded=self.succeed)


@pytest.mark.asyncio
async def test_runner_stops_after_failed_phase() -> None:
    context = PipelineContext()
    phases = [RecordingPhase("crawl", succeed=False), RecordingPhase("graph")]

    results = await PipelineRunner(phases, context).run()

    assert [result.name for result in results] == ["crawl"]
    assert context.extra["order"] == ["crawl"]
    assert phases[1].calls == []


@pytest.mark.asyncio
async def test_runner_shares_context_between_phases() -> None:
    context = PipelineContext()

    results = await PipelineRunner([RecordingPhase("crawl"), RecordingPhase("graph")], context).run()

    assert [result.succeeded for result in results] == [True, True]
    assert context.extra["order"] == ["crawl", "graph"]
