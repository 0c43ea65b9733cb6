from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from repodeps.config import CrawlSettings
from repodeps.crawling import CrawlPhase, DependencyCrawler
from repodeps.gateway import CrawlTimeoutError, GitHubAPIError, RepositorySummary
from repodeps.pipeline import PipelineContext, PipelineRunner
from repodeps.storage import build_output_layout

OK_SHA = "a" * 40
LIB_SHA = "b" * 40


class DummyClient:
    def __init__(self, settings: CrawlSettings):
        self.settings = settings
        self.request_count = 0
        self._manifests = {
            ("acme/acme-ok", OK_SHA): json.dumps({"dependencies": {"acme-lib": "github:acme/acme-lib"}}),
            ("acme/acme-lib", LIB_SHA): json.dumps({"dependencies": {"left-pad": "^1.2.0"}}),
        }
        self._commits = {"acme/acme-ok": OK_SHA, "acme/acme-lib": LIB_SHA}

    async def __aenter__(self) -> "DummyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def list_repositories(self, organization: str) -> List[RepositorySummary]:
        self.request_count += 1
        return [RepositorySummary(name, "main") for name in self._commits]

    async def get_default_branch(self, repo_full_name: str) -> str:
        self.request_count += 1
        return "main"

    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        self.request_count += 1
        await asyncio.sleep(0)
        return self._commits[repo_full_name]

    async def fetch_raw_file(self, repo_full_name: str, commit: str, path: str) -> Optional[str]:
        self.request_count += 1
        await asyncio.sleep(0)
        return self._manifests.get((repo_full_name, commit))


class BrokenClient(DummyClient):
    def __init__(self, settings: CrawlSettings):
        super().__init__(settings)
        self._commits["acme/acme-broken"] = "unused"

    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        if repo_full_name == "acme/acme-broken":
            await asyncio.sleep(0.05)
            raise GitHubAPIError("Server Error", status=500)
        return await super().get_commit_sha(repo_full_name, ref)


class ChainClient(DummyClient):
    """acme-a reaches acme-s through a chain; acme-z fails while acme-s is still in progress."""

    def __init__(self, settings: CrawlSettings):
        super().__init__(settings)
        shas = {name: f"{index:040x}" for index, name in enumerate(["a", "x1", "x2", "x3", "s"], start=1)}
        self._commits = {f"acme/acme-{name}": value for name, value in shas.items()}
        self._listed = ["acme/acme-a", "acme/acme-s"]
        self._manifests = {
            ("acme/acme-a", shas["a"]): json.dumps({"dependencies": {"acme-x1": "github:acme/acme-x1"}}),
            ("acme/acme-x1", shas["x1"]): json.dumps({"dependencies": {"acme-x2": "github:acme/acme-x2"}}),
            ("acme/acme-x2", shas["x2"]): json.dumps({"dependencies": {"acme-x3": "github:acme/acme-x3"}}),
            ("acme/acme-x3", shas["x3"]): json.dumps(
                {"dependencies": {"acme-z": "github:acme/acme-z", "acme-s": "github:acme/acme-s#fast"}}
            ),
            ("acme/acme-s", shas["s"]): json.dumps({"dependencies": {}}),
        }

    async def list_repositories(self, organization: str) -> List[RepositorySummary]:
        return [RepositorySummary(name, "main") for name in self._listed]

    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        if repo_full_name == "acme/acme-z":
            await asyncio.sleep(0.1)
            raise GitHubAPIError("Bad credentials", status=401)
        if repo_full_name == "acme/acme-s" and ref == "main":
            await asyncio.sleep(0.05)
        return await super().get_commit_sha(repo_full_name, ref)

    async def fetch_raw_file(self, repo_full_name: str, commit: str, path: str) -> Optional[str]:
        if repo_full_name == "acme/acme-s":
            await asyncio.sleep(1.0)
        return await super().fetch_raw_file(repo_full_name, commit, path)


class SlowClient(DummyClient):
    async def get_commit_sha(self, repo_full_name: str, ref: str) -> str:
        await asyncio.sleep(5)
        return await super().get_commit_sha(repo_full_name, ref)


def _settings(tmp_path: Path, **overrides: Any) -> CrawlSettings:
    values: Dict[str, Any] = {"organization": "acme", "output_path": tmp_path / "out" / "deps.json"}
    values.update(overrides)
    return CrawlSettings(**values)


@pytest.mark.asyncio
async def test_crawler_writes_artifact_and_report(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path)
    layout = build_output_layout(settings)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", DummyClient)

    report = await DependencyCrawler(settings, layout).run()

    artifact = json.loads(layout.artifact.read_text(encoding="utf-8"))
    assert artifact == {
        f"acme-lib@{LIB_SHA}": ["left-pad@^1.2.0"],
        f"acme-ok@{OK_SHA}": [f"acme-lib@{LIB_SHA}"],
    }
    assert layout.artifact.parent == tmp_path / "out"
    assert report["statistics"]["nodes"] == 2
    assert report["statistics"]["edges"] == 2
    assert report["statistics"]["repositories"] == 2
    assert report["statistics"]["requests"] > 0
    assert json.loads(layout.report.read_text(encoding="utf-8"))["organization"] == "acme"
    assert not layout.partial_artifact.exists()


@pytest.mark.asyncio
async def test_crawler_writes_nothing_on_fatal_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path)
    layout = build_output_layout(settings)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", BrokenClient)

    with pytest.raises(GitHubAPIError):
        await DependencyCrawler(settings, layout).run()

    assert not layout.artifact.exists()
    assert not layout.partial_artifact.exists()
    assert not layout.report.exists()


@pytest.mark.asyncio
async def test_crawler_flushes_partial_artifact_when_enabled(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    settings = _settings(tmp_path, write_partial_on_failure=True)
    layout = build_output_layout(settings)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", BrokenClient)

    with pytest.raises(GitHubAPIError):
        await DependencyCrawler(settings, layout).run()

    assert not layout.artifact.exists()
    partial = json.loads(layout.partial_artifact.read_text(encoding="utf-8"))
    assert partial[f"acme-ok@{OK_SHA}"] == [f"acme-lib@{LIB_SHA}"]
    assert layout.partial_artifact.name == "deps.partial.json"


@pytest.mark.asyncio
async def test_crawler_flushes_partial_artifact_when_failure_is_deep_in_a_chain(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    settings = _settings(tmp_path, write_partial_on_failure=True)
    layout = build_output_layout(settings)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", ChainClient)

    with pytest.raises(GitHubAPIError) as excinfo:
        await DependencyCrawler(settings, layout).run()

    assert excinfo.value.status == 401
    assert not layout.artifact.exists()
    assert json.loads(layout.partial_artifact.read_text(encoding="utf-8")) == {}


@pytest.mark.asyncio
async def test_crawler_enforces_run_deadline(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path, run_timeout_seconds=0.05)
    layout = build_output_layout(settings)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", SlowClient)

    with pytest.raises(CrawlTimeoutError):
        await DependencyCrawler(settings, layout).run()

    assert not layout.artifact.exists()


@pytest.mark.asyncio
async def test_crawler_requires_organization(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path, organization="")
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", DummyClient)

    with pytest.raises(ValueError):
        await DependencyCrawler(settings, build_output_layout(settings)).run()


@pytest.mark.asyncio
async def test_crawl_phase_stores_report_in_context(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path)
    monkeypatch.setattr("repodeps.crawling.crawler.GitHubClient", DummyClient)
    context = PipelineContext(crawl_settings=settings, output_layout=build_output_layout(settings))

    results = await PipelineRunner([CrawlPhase()], context).run()

    assert [result.name for result in results] == ["crawl"]
    assert results[0].succeeded
    assert context.extra["crawl"]["report"]["statistics"]["nodes"] == 2
